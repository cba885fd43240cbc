# leadcapture/models/lead.py
from __future__ import annotations

from typing import Dict, Optional

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from leadcapture.db.base import Base


class Lead(Base):
    __tablename__ = "leads"

    lead_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    # Canonical ISO-8601 UTC strings (see leadcapture.utils.timestamps)
    created_at: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    updated_at: Mapped[str] = mapped_column(String(32), nullable=False)

    source: Mapped[str] = mapped_column(String(255), nullable=False, default="unknown")

    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(200))
    phone: Mapped[Optional[str]] = mapped_column(String(20))

    custom_fields: Mapped[Dict[str, str]] = mapped_column(JSON, nullable=False, default=dict)

    user_agent: Mapped[Optional[str]] = mapped_column(Text)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64))
    referrer: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("ix_leads_email_created_at", "email", "created_at"),
    )
