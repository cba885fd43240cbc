"""Mautic-compatible export mapping for stored leads."""
from __future__ import annotations

from typing import Any, Dict, Tuple

from leadcapture.schemas.lead import LeadRecord


def split_name(name: str) -> Tuple[str, str]:
    """Split on the first space: ``"Mary Ann Smith"`` -> ``("Mary", "Ann Smith")``."""
    first, _, last = name.strip().partition(" ")
    return first, last.strip()


def to_export_record(lead: LeadRecord, field_prefix: str = "mautic_") -> Dict[str, Any]:
    firstname, lastname = split_name(lead.contact.name)
    record: Dict[str, Any] = {
        "email": lead.contact.email,
        "firstname": firstname,
        "lastname": lastname,
        "company": lead.contact.company or "",
        "phone": lead.contact.phone or "",
    }
    for key, value in lead.custom_fields.items():
        record[f"{field_prefix}{key}"] = value
    record.update(
        source=lead.source,
        created_at=lead.created_at,
        ip_address=lead.metadata.ip_address,
        user_agent=lead.metadata.user_agent,
        referrer=lead.metadata.referrer,
    )
    return record
