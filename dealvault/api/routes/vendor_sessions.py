from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Request, Response, status
from pydantic import Field

from dealvault.api.routes import route_helpers
from dealvault.api.routes.route_helpers import ApiModel
from dealvault.core.results import FailureCode, fail
from dealvault.db.session import SessionLocal
from dealvault.enforcement.vendor_sessions import (
    VENDOR_SESSION_MAX_HOURS,
    VENDOR_SESSION_MIN_HOURS,
    create_vendor_session,
    revoke_all_vendor_sessions,
    revoke_vendor_session,
)

router = APIRouter(tags=["vendor-sessions"])


class CreateVendorSessionRequest(ApiModel):
    business_ids: list[UUID] | None = None
    location_ids: list[str] | None = None
    duration_hours: int | None = Field(
        default=None,
        ge=VENDOR_SESSION_MIN_HOURS,
        le=VENDOR_SESSION_MAX_HOURS,
    )


class VendorSessionResponse(ApiModel):
    token: str
    session_id: UUID
    business_ids: list[UUID]
    location_ids: list[str]
    expires_at: datetime


class RevokeAllResponse(ApiModel):
    revoked: int


@router.post(
    "/vendor/sessions",
    response_model=VendorSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def open_vendor_session(
    request: Request,
    payload: CreateVendorSessionRequest | None = None,
) -> VendorSessionResponse:
    vendor = await route_helpers.resolve_vendor(request)
    body = payload or CreateVendorSessionRequest()
    async with SessionLocal.begin() as session:
        result = await create_vendor_session(
            session,
            vendor=vendor,
            business_ids=body.business_ids,
            location_ids=body.location_ids,
            duration_hours=body.duration_hours,
        )
    issued = route_helpers.unwrap(result)
    return VendorSessionResponse(
        token=issued.token,
        session_id=issued.session_id,
        business_ids=list(issued.business_ids),
        location_ids=list(issued.location_ids),
        expires_at=issued.expires_at,
    )


@router.delete("/vendor/sessions/current", status_code=status.HTTP_204_NO_CONTENT)
async def close_current_vendor_session(request: Request) -> Response:
    async with SessionLocal.begin() as session:
        revoked = await revoke_vendor_session(session, route_helpers.vendor_session_token(request))
    if not revoked:
        route_helpers.raise_for_failure(
            fail(FailureCode.INVALID_SESSION, "vendor session is invalid or expired")
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/vendor/sessions", response_model=RevokeAllResponse)
async def close_all_vendor_sessions(request: Request) -> RevokeAllResponse:
    vendor = await route_helpers.resolve_vendor(request)
    async with SessionLocal.begin() as session:
        revoked = await revoke_all_vendor_sessions(session, vendor.id)
    return RevokeAllResponse(revoked=revoked)
