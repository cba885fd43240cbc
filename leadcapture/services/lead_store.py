# leadcapture/services/lead_store.py
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, TypeVar

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leadcapture.core.exceptions import (
    DuplicateLeadError,
    LeadNotFoundError,
    StorageError,
    ValidationError,
)
from leadcapture.core.logging import get_structlog_logger
from leadcapture.db.session import session_scope
from leadcapture.models.lead import Lead
from leadcapture.schemas.lead import Contact, LeadMetadata, LeadRecord
from leadcapture.services.pagination import PageCursor, decode_page_token, encode_page_token
from leadcapture.services.validation import KNOWN_FIELDS, validate_submission
from leadcapture.utils.timestamps import format_timestamp, utc_now

logger = get_structlog_logger(__name__)

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class LeadFilter:
    limit: int = 50
    next_token: Optional[str] = None
    email: Optional[str] = None
    start_date: Optional[str] = None  # canonical timestamps
    end_date: Optional[str] = None


@dataclass
class LeadPage:
    items: List[LeadRecord] = field(default_factory=list)
    next_token: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_token is not None


def _to_row(record: LeadRecord) -> Lead:
    return Lead(
        lead_id=record.lead_id,
        created_at=record.created_at,
        updated_at=record.updated_at,
        source=record.source,
        name=record.contact.name,
        email=record.contact.email,
        company=record.contact.company,
        phone=record.contact.phone,
        custom_fields=dict(record.custom_fields),
        user_agent=record.metadata.user_agent,
        ip_address=record.metadata.ip_address,
        referrer=record.metadata.referrer,
    )


def _to_record(row: Lead) -> LeadRecord:
    return LeadRecord(
        lead_id=row.lead_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        source=row.source,
        contact=Contact(
            name=row.name,
            email=row.email,
            company=row.company,
            phone=row.phone,
        ),
        custom_fields=dict(row.custom_fields or {}),
        metadata=LeadMetadata(
            user_agent=row.user_agent,
            ip_address=row.ip_address,
            referrer=row.referrer,
        ),
    )


def _date_predicates(start_date: Optional[str], end_date: Optional[str]) -> list:
    predicates = []
    if start_date:
        predicates.append(Lead.created_at >= start_date)
    if end_date:
        predicates.append(Lead.created_at <= end_date)
    return predicates


class LeadStore:
    """Durable lead storage with conditional insert and keyset pagination."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout_seconds: float = 10.0,
        max_page_size: int = MAX_PAGE_SIZE,
        max_custom_fields: int = 20,
        clock: Callable = utc_now,
    ):
        self.session_factory = session_factory
        self.timeout_seconds = timeout_seconds
        self.max_page_size = max_page_size
        self.max_custom_fields = max_custom_fields
        self.clock = clock

    async def _run(self, operation: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def _execute() -> T:
            async with session_scope(self.session_factory) as session:
                return await fn(session)

        try:
            return await asyncio.wait_for(_execute(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error("lead_store.timeout", operation=operation, timeout=self.timeout_seconds)
            raise StorageError(details={"operation": operation, "error": "timeout"}) from e
        except SQLAlchemyError as e:
            logger.error("lead_store.error", operation=operation, error=str(e))
            raise StorageError(details={"operation": operation, "error": str(e)}) from e

    async def insert(self, record: LeadRecord) -> str:
        """Store a new lead; fails if ``lead_id`` already exists."""

        async def _insert(session: AsyncSession) -> str:
            session.add(_to_row(record))
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                logger.warning("lead_store.duplicate", lead_id=record.lead_id)
                raise DuplicateLeadError(details={"lead_id": record.lead_id}) from e
            return record.lead_id

        lead_id = await self._run("insert", _insert)
        logger.info("lead_store.inserted", lead_id=lead_id)
        return lead_id

    async def get_by_id(self, lead_id: str) -> LeadRecord:
        async def _get(session: AsyncSession) -> Optional[Lead]:
            return await session.get(Lead, lead_id)

        row = await self._run("get_by_id", _get)
        if row is None:
            raise LeadNotFoundError(details={"lead_id": lead_id})
        return _to_record(row)

    async def query(self, lead_filter: LeadFilter) -> LeadPage:
        """Return one page of leads, newest first.

        With an email filter the (email, created_at) index serves the lookup;
        otherwise this is a bounded scan over created_at.
        """
        limit = max(1, min(lead_filter.limit, self.max_page_size))
        cursor = decode_page_token(lead_filter.next_token) if lead_filter.next_token else None

        conditions = _date_predicates(lead_filter.start_date, lead_filter.end_date)
        if lead_filter.email:
            conditions.append(Lead.email == lead_filter.email.lower())
        if cursor is not None:
            conditions.append(
                or_(
                    Lead.created_at < cursor.created_at,
                    and_(Lead.created_at == cursor.created_at, Lead.lead_id < cursor.lead_id),
                )
            )

        stmt = (
            select(Lead)
            .where(*conditions)
            .order_by(Lead.created_at.desc(), Lead.lead_id.desc())
            .limit(limit + 1)
        )

        async def _query(session: AsyncSession) -> List[Lead]:
            result = await session.execute(stmt)
            return list(result.scalars().all())

        rows = await self._run("query", _query)
        has_more = len(rows) > limit
        rows = rows[:limit]

        next_token = None
        if has_more:
            last = rows[-1]
            next_token = encode_page_token(PageCursor(created_at=last.created_at, lead_id=last.lead_id))

        logger.debug(
            "lead_store.queried",
            by_email=bool(lead_filter.email),
            returned=len(rows),
            has_more=has_more,
        )
        return LeadPage(items=[_to_record(row) for row in rows], next_token=next_token)

    async def count(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> int:
        stmt = select(func.count()).select_from(Lead).where(*_date_predicates(start_date, end_date))

        async def _count(session: AsyncSession) -> int:
            result = await session.execute(stmt)
            return int(result.scalar_one())

        return await self._run("count", _count)

    async def update(self, lead_id: str, changes: Mapping[str, Any]) -> LeadRecord:
        """Apply contact or custom-field changes to an existing lead.

        The merged contact is revalidated like a fresh submission. A supplied
        ``customFields`` object replaces the stored one. ``updated_at`` is
        refreshed; ``lead_id`` and ``created_at`` never change.
        """
        unknown = sorted(key for key in changes if key not in KNOWN_FIELDS)
        if unknown:
            raise ValidationError(f"Field cannot be updated: {unknown[0]}", field=unknown[0])

        async def _update(session: AsyncSession) -> LeadRecord:
            row = await session.get(Lead, lead_id)
            if row is None:
                raise LeadNotFoundError(details={"lead_id": lead_id})

            merged = {
                "name": row.name,
                "email": row.email,
                "company": row.company,
                "phone": row.phone,
                "customFields": dict(row.custom_fields or {}),
            }
            merged.update(changes)
            submission = validate_submission(merged, max_custom_fields=self.max_custom_fields)

            row.name = submission.name
            row.email = submission.email
            row.company = submission.company
            row.phone = submission.phone
            row.custom_fields = dict(submission.custom_fields)
            row.updated_at = format_timestamp(self.clock())
            await session.commit()
            return _to_record(row)

        record = await self._run("update", _update)
        logger.info("lead_store.updated", lead_id=lead_id, fields=sorted(changes))
        return record

    async def email_exists(self, email: str) -> bool:
        stmt = select(Lead.lead_id).where(Lead.email == email.lower()).limit(1)

        async def _exists(session: AsyncSession) -> bool:
            result = await session.execute(stmt)
            return result.first() is not None

        return await self._run("email_exists", _exists)

    async def delete(self, lead_id: str) -> None:
        """Erase a lead permanently (compliance requests)."""

        async def _delete(session: AsyncSession) -> int:
            result = await session.execute(delete(Lead).where(Lead.lead_id == lead_id))
            await session.commit()
            return result.rowcount

        if await self._run("delete", _delete) == 0:
            raise LeadNotFoundError(details={"lead_id": lead_id})
        logger.info("lead_store.deleted", lead_id=lead_id)

    async def ping(self) -> None:
        async def _ping(session: AsyncSession) -> Any:
            return await session.execute(select(1))

        await self._run("ping", _ping)
