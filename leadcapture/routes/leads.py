# leadcapture/routes/leads.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status

from leadcapture.schemas.lead import (
    ErrorEnvelope,
    LeadCountResponse,
    LeadDeleteResponse,
    LeadListResponse,
    SubmitLeadResponse,
)
from leadcapture.services.retrieval import RetrievalHandler
from leadcapture.services.submission import (
    RequestContext,
    SubmissionHandler,
    extract_client_ip,
    parse_json_body,
)

router = APIRouter(prefix="/leads", tags=["leads"])

ERROR_RESPONSES = {
    400: {"model": ErrorEnvelope},
    401: {"model": ErrorEnvelope},
    404: {"model": ErrorEnvelope},
    409: {"model": ErrorEnvelope},
    429: {"model": ErrorEnvelope},
    500: {"model": ErrorEnvelope},
}


def get_submission_handler(request: Request) -> SubmissionHandler:
    return request.app.state.submission_handler


def get_retrieval_handler(request: Request) -> RetrievalHandler:
    return request.app.state.retrieval_handler


def build_request_context(request: Request) -> RequestContext:
    headers = request.headers
    return RequestContext(
        client_ip=extract_client_ip(headers, request.client.host if request.client else None),
        origin=headers.get("origin"),
        user_agent=headers.get("user-agent"),
        referrer=headers.get("referer"),
    )


@router.post(
    "",
    response_model=SubmitLeadResponse,
    status_code=status.HTTP_200_OK,
    responses=ERROR_RESPONSES,
    summary="Submit a lead from a website form",
)
async def submit_lead(
    request: Request,
    handler: SubmissionHandler = Depends(get_submission_handler),
) -> SubmitLeadResponse:
    payload = parse_json_body(await request.body())
    return await handler.submit(payload, build_request_context(request))


@router.get(
    "",
    response_model=LeadListResponse,
    responses=ERROR_RESPONSES,
    summary="List, filter or export stored leads",
)
async def list_leads(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    handler: RetrievalHandler = Depends(get_retrieval_handler),
) -> LeadListResponse:
    return await handler.retrieve(x_api_key, request.query_params)


@router.get(
    "/count",
    response_model=LeadCountResponse,
    responses=ERROR_RESPONSES,
    summary="Count leads created in a date range",
)
async def count_leads(
    request: Request,
    x_api_key: Optional[str] = Header(default=None),
    handler: RetrievalHandler = Depends(get_retrieval_handler),
) -> LeadCountResponse:
    return await handler.count(x_api_key, request.query_params)


@router.delete(
    "/{lead_id}",
    response_model=LeadDeleteResponse,
    responses=ERROR_RESPONSES,
    summary="Erase a lead (compliance requests)",
)
async def erase_lead(
    lead_id: str,
    x_api_key: Optional[str] = Header(default=None),
    handler: RetrievalHandler = Depends(get_retrieval_handler),
) -> LeadDeleteResponse:
    return await handler.erase(x_api_key, lead_id)
