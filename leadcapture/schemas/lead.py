# leadcapture/schemas/lead.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Contact(CamelModel):
    name: str = Field(min_length=2, max_length=50)
    email: str = Field(max_length=254)
    company: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=20)


class LeadMetadata(CamelModel):
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None


class LeadRecord(CamelModel):
    lead_id: str
    created_at: str
    updated_at: str
    source: str = "unknown"
    contact: Contact
    custom_fields: Dict[str, str] = Field(default_factory=dict)
    metadata: LeadMetadata = Field(default_factory=LeadMetadata)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class SubmitLeadResponse(CamelModel):
    success: bool = True
    lead_id: str
    message: str = "Lead submitted successfully"


class LeadListResponse(CamelModel):
    success: bool = True
    format: str
    data: List[Dict[str, Any]]
    count: int
    next_token: Optional[str] = None
    has_more: bool = False


class LeadCountResponse(CamelModel):
    success: bool = True
    count: int
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    timestamp: str


class LeadDeleteResponse(CamelModel):
    success: bool = True
    lead_id: str
    deleted: bool = True


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    checks: Dict[str, str] = Field(default_factory=dict)


class ErrorBody(BaseModel):
    code: str
    message: str
    field: Optional[str] = None


class ErrorEnvelope(BaseModel):
    success: bool = False
    error: ErrorBody
