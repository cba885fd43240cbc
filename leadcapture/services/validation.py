"""Validation and sanitization of raw lead submissions."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from leadcapture.core.exceptions import ValidationError

KNOWN_FIELDS = frozenset({"name", "email", "company", "phone", "customFields"})

NAME_MIN_LENGTH = 2
NAME_MAX_LENGTH = 50
EMAIL_MAX_LENGTH = 254
COMPANY_MAX_LENGTH = 200
PHONE_MAX_LENGTH = 20
CUSTOM_KEY_MAX_LENGTH = 50
CUSTOM_VALUE_MAX_LENGTH = 500

_UNSAFE_CHARS = re.compile(r"[<>\"'&]")
_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERN = re.compile(r"^[0-9\s\-()+.]+$")
_NAME_PUNCTUATION = frozenset(" -'.")


@dataclass(frozen=True)
class SanitizedSubmission:
    name: str
    email: str
    company: Optional[str] = None
    phone: Optional[str] = None
    custom_fields: Dict[str, str] = field(default_factory=dict)
    # Number of custom entries offered by the caller, before capping
    submitted_custom_field_count: int = 0

    @property
    def email_domain(self) -> str:
        return self.email.rsplit("@", 1)[-1]

    def contact(self) -> Dict[str, Optional[str]]:
        return {
            "name": self.name,
            "email": self.email,
            "company": self.company,
            "phone": self.phone,
        }


def sanitize_string(value: str) -> str:
    """Trim and strip markup-significant characters."""
    return _UNSAFE_CHARS.sub("", value.strip()).strip()


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    return len(email) <= EMAIL_MAX_LENGTH and bool(_EMAIL_PATTERN.match(email))


def _is_valid_name(name: str) -> bool:
    return all(ch.isalpha() or ch in _NAME_PUNCTUATION for ch in name)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _required_string(payload: Mapping[str, Any], key: str, label: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string", field=key)
    return sanitize_string(value)


def _validate_name(payload: Mapping[str, Any]) -> str:
    name = _required_string(payload, "name", "Name")
    if len(name) < NAME_MIN_LENGTH:
        raise ValidationError(
            f"Name must be at least {NAME_MIN_LENGTH} characters long", field="name"
        )
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"Name must be at most {NAME_MAX_LENGTH} characters long", field="name"
        )
    if not _is_valid_name(name):
        raise ValidationError(
            "Name may only contain letters, spaces, hyphens, apostrophes and periods",
            field="name",
        )
    return name


def _validate_email(payload: Mapping[str, Any]) -> str:
    email = _required_string(payload, "email", "Email").lower()
    if not is_valid_email(email):
        raise ValidationError("Invalid email format", field="email")
    return email


def _validate_company(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if not isinstance(value, str):
        raise ValidationError("Company must be a string", field="company")
    company = sanitize_string(value)
    if len(company) > COMPANY_MAX_LENGTH:
        raise ValidationError(
            f"Company must be at most {COMPANY_MAX_LENGTH} characters long", field="company"
        )
    return company or None


def _validate_phone(value: Any) -> Optional[str]:
    if _is_blank(value):
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        raise ValidationError("Phone must be a string", field="phone")
    phone = sanitize_string(value)
    if not phone:
        return None
    if not _PHONE_PATTERN.match(phone):
        raise ValidationError(
            "Phone may only contain digits, spaces and + - ( ) . characters", field="phone"
        )
    if len(phone) > PHONE_MAX_LENGTH:
        raise ValidationError(
            f"Phone must be at most {PHONE_MAX_LENGTH} characters long", field="phone"
        )
    return phone


def _coerce_custom_value(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _collect_custom_fields(payload: Mapping[str, Any], max_fields: int) -> tuple[Dict[str, str], int]:
    candidates = []
    explicit = payload.get("customFields")
    if isinstance(explicit, Mapping):
        candidates.extend(explicit.items())
    candidates.extend((k, v) for k, v in payload.items() if k not in KNOWN_FIELDS)

    fields: Dict[str, str] = {}
    offered = 0
    for raw_key, raw_value in candidates:
        value = _coerce_custom_value(raw_value)
        if not isinstance(raw_key, str) or value is None:
            continue
        key = sanitize_string(raw_key)[:CUSTOM_KEY_MAX_LENGTH]
        if not key:
            continue
        offered += 1
        if len(fields) >= max_fields or key in fields:
            continue
        fields[key] = sanitize_string(value)[:CUSTOM_VALUE_MAX_LENGTH]
    return fields, offered


def validate_submission(payload: Any, max_custom_fields: int = 20) -> SanitizedSubmission:
    """Validate and sanitize a raw submission payload.

    Raises ``ValidationError`` tagged with the offending field. A missing email
    is reported before anything else so the caller always learns about it.
    Extra custom fields beyond ``max_custom_fields`` are dropped, never rejected.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Invalid JSON in request body")

    if _is_blank(payload.get("email")):
        raise ValidationError("Email is required", field="email")
    if _is_blank(payload.get("name")):
        raise ValidationError("Name is required", field="name")

    name = _validate_name(payload)
    email = _validate_email(payload)
    company = _validate_company(payload.get("company"))
    phone = _validate_phone(payload.get("phone"))
    custom_fields, offered = _collect_custom_fields(payload, max_custom_fields)

    return SanitizedSubmission(
        name=name,
        email=email,
        company=company,
        phone=phone,
        custom_fields=custom_fields,
        submitted_custom_field_count=offered,
    )
