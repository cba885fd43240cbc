# leadcapture/services/submission.py
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from uuid import uuid4

from leadcapture.core.exceptions import (
    DuplicateLeadError,
    RateLimitExceededError,
    SpamRejectedError,
    ValidationError,
)
from leadcapture.core.logging import get_structlog_logger
from leadcapture.schemas.lead import Contact, LeadMetadata, LeadRecord, SubmitLeadResponse
from leadcapture.services.lead_store import LeadStore
from leadcapture.services.rate_limiter import RateLimiter
from leadcapture.services.spam import SpamFilter
from leadcapture.services.validation import validate_submission
from leadcapture.utils.timestamps import format_timestamp, utc_now

logger = get_structlog_logger(__name__)


@dataclass(frozen=True)
class RequestContext:
    """Transport-level facts about a submission, forwarded by the front door."""
    client_ip: str = "unknown"
    origin: Optional[str] = None
    user_agent: Optional[str] = None
    referrer: Optional[str] = None


def parse_json_body(body: bytes) -> Any:
    try:
        return json.loads(body or b"{}")
    except ValueError as e:
        raise ValidationError("Invalid JSON in request body") from e


def extract_client_ip(headers: Mapping[str, str], peer: Optional[str] = None) -> str:
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return peer or "unknown"


class SubmissionHandler:
    """Runs an inbound lead through validation, screening, throttling and storage."""

    def __init__(
        self,
        store: LeadStore,
        rate_limiter: RateLimiter,
        spam_filter: SpamFilter,
        max_requests_per_hour: int,
        max_custom_fields: int = 20,
        reject_duplicate_emails: bool = False,
        clock: Callable = utc_now,
    ):
        self.store = store
        self.rate_limiter = rate_limiter
        self.spam_filter = spam_filter
        self.max_requests_per_hour = max_requests_per_hour
        self.max_custom_fields = max_custom_fields
        self.reject_duplicate_emails = reject_duplicate_emails
        self.clock = clock

    async def submit(self, payload: Any, context: RequestContext) -> SubmitLeadResponse:
        log = logger.bind(client_ip=context.client_ip, origin=context.origin)

        submission = validate_submission(payload, max_custom_fields=self.max_custom_fields)

        verdict = self.spam_filter.evaluate(submission, context.user_agent)
        if verdict.is_spam:
            log.warning("spam.rejected", reason=verdict.reason)
            raise SpamRejectedError(reason=verdict.reason)
        if verdict.signals:
            log.info("spam.tolerated", reason=verdict.reason)

        decision = await self.rate_limiter.check(context.client_ip, self.max_requests_per_hour)
        if not decision.allowed:
            log.warning(
                "rate_limit.exceeded",
                current_count=decision.current_count,
                max_per_hour=decision.max_per_hour,
                reset_minutes=decision.reset_minutes,
            )
            raise RateLimitExceededError(reset_minutes=decision.reset_minutes)

        if self.reject_duplicate_emails and await self.store.email_exists(submission.email):
            log.info("lead.duplicate_email")
            raise DuplicateLeadError()

        now = format_timestamp(self.clock())
        record = LeadRecord(
            lead_id=str(uuid4()),
            created_at=now,
            updated_at=now,
            source=context.origin or "unknown",
            contact=Contact(**submission.contact()),
            custom_fields=submission.custom_fields,
            metadata=LeadMetadata(
                user_agent=context.user_agent or "unknown",
                ip_address=context.client_ip,
                referrer=context.referrer or "direct",
            ),
        )
        lead_id = await self.store.insert(record)

        await self.rate_limiter.record(context.client_ip)

        log.info("lead.stored", lead_id=lead_id, custom_fields=len(record.custom_fields))
        return SubmitLeadResponse(lead_id=lead_id)
