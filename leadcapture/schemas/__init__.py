# leadcapture/schemas/__init__.py
"""
Pydantic schemas for request/response validation and serialization.
"""

from leadcapture.schemas.lead import (
    Contact,
    ErrorEnvelope,
    HealthResponse,
    LeadCountResponse,
    LeadDeleteResponse,
    LeadListResponse,
    LeadMetadata,
    LeadRecord,
    SubmitLeadResponse,
)

__all__ = [
    "Contact",
    "ErrorEnvelope",
    "HealthResponse",
    "LeadCountResponse",
    "LeadDeleteResponse",
    "LeadListResponse",
    "LeadMetadata",
    "LeadRecord",
    "SubmitLeadResponse",
]
