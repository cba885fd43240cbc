# leadcapture/services/retrieval.py
from __future__ import annotations

import hmac
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from leadcapture.core.exceptions import AuthenticationError, ValidationError
from leadcapture.core.logging import get_structlog_logger
from leadcapture.schemas.lead import (
    LeadCountResponse,
    LeadDeleteResponse,
    LeadListResponse,
    LeadRecord,
)
from leadcapture.services.export import to_export_record
from leadcapture.services.lead_store import LeadFilter, LeadStore
from leadcapture.services.pagination import decode_page_token
from leadcapture.services.validation import is_valid_email
from leadcapture.utils.timestamps import format_timestamp, normalize_timestamp, utc_now

logger = get_structlog_logger(__name__)

FORMATS = ("raw", "export")
MAX_LIMIT = 100

_UUID4_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE
)


def is_valid_lead_id(value: Optional[str]) -> bool:
    return bool(value) and bool(_UUID4_PATTERN.match(value))


@dataclass(frozen=True)
class LeadQuery:
    limit: int
    format: str = "raw"
    next_token: Optional[str] = None
    email: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    lead_id: Optional[str] = None

    def to_filter(self) -> LeadFilter:
        return LeadFilter(
            limit=self.limit,
            next_token=self.next_token,
            email=self.email,
            start_date=self.start_date,
            end_date=self.end_date,
        )


def _param(params: Mapping[str, str], name: str) -> Optional[str]:
    value = params.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_date_range(params: Mapping[str, str]) -> Tuple[Optional[str], Optional[str]]:
    """Validate ``startDate``/``endDate`` and return them in canonical form."""
    bounds = {}
    for name in ("startDate", "endDate"):
        raw = _param(params, name)
        if raw is None:
            bounds[name] = None
            continue
        normalized = normalize_timestamp(raw)
        if normalized is None:
            raise ValidationError(f"{name} must be an ISO 8601 timestamp", field=name)
        bounds[name] = normalized

    start_date, end_date = bounds["startDate"], bounds["endDate"]
    if start_date and end_date and start_date > end_date:
        raise ValidationError("startDate must not be after endDate", field="startDate")
    return start_date, end_date


def parse_query_params(params: Mapping[str, str], default_limit: int = 50) -> LeadQuery:
    raw_limit = _param(params, "limit")
    if raw_limit is None:
        limit = default_limit
    else:
        try:
            limit = int(raw_limit)
        except ValueError:
            limit = 0
        if not 1 <= limit <= MAX_LIMIT:
            raise ValidationError(
                f"Limit must be a number between 1 and {MAX_LIMIT}", field="limit"
            )

    email = _param(params, "email")
    if email is not None:
        email = email.lower()
        if not is_valid_email(email):
            raise ValidationError("Invalid email format", field="email")

    start_date, end_date = parse_date_range(params)

    fmt = _param(params, "format") or "raw"
    if fmt not in FORMATS:
        raise ValidationError('Format must be either "raw" or "export"', field="format")

    lead_id = _param(params, "leadId")
    if lead_id is not None and not is_valid_lead_id(lead_id):
        raise ValidationError("Invalid leadId format. Must be a valid UUID.", field="leadId")

    next_token = _param(params, "nextToken")
    if next_token is not None:
        decode_page_token(next_token)

    return LeadQuery(
        limit=limit,
        format=fmt,
        next_token=next_token,
        email=email,
        start_date=start_date,
        end_date=end_date,
        lead_id=lead_id,
    )


class RetrievalHandler:
    """Authenticated, filtered, paginated access to stored leads."""

    def __init__(
        self,
        store: LeadStore,
        api_key: str,
        default_page_size: int = 50,
        export_field_prefix: str = "mautic_",
    ):
        self.store = store
        self.api_key = api_key
        self.default_page_size = default_page_size
        self.export_field_prefix = export_field_prefix

    def authenticate(self, credential: Optional[str]) -> None:
        if not self.api_key:
            logger.error("auth.api_key_not_configured")
            raise AuthenticationError("Lead retrieval is not configured")
        if not credential:
            raise AuthenticationError("API key is required. Include X-Api-Key header.")
        if not hmac.compare_digest(credential.encode("utf-8"), self.api_key.encode("utf-8")):
            logger.warning("auth.invalid_api_key")
            raise AuthenticationError("Invalid API key")

    def _render(self, lead: LeadRecord, fmt: str) -> dict:
        if fmt == "export":
            return to_export_record(lead, self.export_field_prefix)
        return lead.to_wire()

    async def retrieve(self, credential: Optional[str], params: Mapping[str, str]) -> LeadListResponse:
        self.authenticate(credential)
        query = parse_query_params(params, default_limit=self.default_page_size)

        if query.lead_id:
            lead = await self.store.get_by_id(query.lead_id)
            return LeadListResponse(
                format=query.format,
                data=[self._render(lead, query.format)],
                count=1,
            )

        page = await self.store.query(query.to_filter())
        logger.info(
            "leads.retrieved",
            count=len(page.items),
            has_more=page.has_more,
            format=query.format,
            by_email=bool(query.email),
        )
        return LeadListResponse(
            format=query.format,
            data=[self._render(lead, query.format) for lead in page.items],
            count=len(page.items),
            next_token=page.next_token,
            has_more=page.has_more,
        )

    async def count(self, credential: Optional[str], params: Mapping[str, str]) -> LeadCountResponse:
        self.authenticate(credential)
        start_date, end_date = parse_date_range(params)
        total = await self.store.count(start_date, end_date)
        return LeadCountResponse(
            count=total,
            start_date=start_date,
            end_date=end_date,
            timestamp=format_timestamp(utc_now()),
        )

    async def erase(self, credential: Optional[str], lead_id: str) -> LeadDeleteResponse:
        self.authenticate(credential)
        if not is_valid_lead_id(lead_id):
            raise ValidationError("Invalid leadId format. Must be a valid UUID.", field="leadId")
        await self.store.delete(lead_id)
        logger.info("lead.erased", lead_id=lead_id)
        return LeadDeleteResponse(lead_id=lead_id)
