from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import Field

from dealvault.api.routes import route_helpers
from dealvault.api.routes.route_helpers import ApiModel
from dealvault.core.results import FailureCode, fail
from dealvault.enforcement.issuance import EXTERNAL_REF_MAX_LENGTH, VoucherIssuanceService
from dealvault.enforcement.types import IssuedVoucher
from dealvault.services.rate_limit import check_issue_rate_limit

router = APIRouter(tags=["vouchers"])


class IssueVoucherRequest(ApiModel):
    external_ref: str = Field(min_length=1, max_length=EXTERNAL_REF_MAX_LENGTH)
    deal_id: UUID
    account_id: UUID | None = None


class IssueVoucherResponse(ApiModel):
    voucher_id: UUID
    validation_id: UUID
    qr_token: str
    status: str
    issued_at: datetime
    expires_at: datetime | None = None
    idempotent_replay: bool


def _as_response(issued: IssuedVoucher) -> IssueVoucherResponse:
    return IssueVoucherResponse(
        voucher_id=issued.voucher_id,
        validation_id=issued.validation_id,
        qr_token=issued.qr_token,
        status=issued.status,
        issued_at=issued.issued_at,
        expires_at=issued.expires_at,
        idempotent_replay=issued.idempotent_replay,
    )


@router.post(
    "/vouchers/issue",
    response_model=IssueVoucherResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_voucher(payload: IssueVoucherRequest, request: Request) -> JSONResponse:
    vendor = await route_helpers.resolve_vendor(request)

    decision = await check_issue_rate_limit(str(vendor.id))
    if not decision.allowed:
        route_helpers.raise_for_failure(
            fail(FailureCode.RATE_LIMITED, "too many issuance requests, slow down"),
            retry_after_seconds=decision.retry_after_seconds,
        )

    result = await VoucherIssuanceService.issue_voucher(
        actor=vendor,
        external_ref=payload.external_ref,
        deal_id=payload.deal_id,
        business_id=vendor.business_id,
        account_id=payload.account_id,
    )
    issued = route_helpers.unwrap(result)
    return JSONResponse(
        status_code=status.HTTP_200_OK if issued.idempotent_replay else status.HTTP_201_CREATED,
        content=_as_response(issued).model_dump(mode="json", by_alias=True),
    )
