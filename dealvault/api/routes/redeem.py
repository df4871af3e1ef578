from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Request
from pydantic import Field, model_validator

from dealvault.api.routes import route_helpers
from dealvault.api.routes.route_helpers import ApiModel
from dealvault.enforcement.redemption import VoucherRedemptionService

router = APIRouter(tags=["redemption"])


class RedeemRequest(ApiModel):
    voucher_id: UUID | None = None
    qr_token: str | None = Field(default=None, min_length=1, max_length=64)
    location_id: str | None = Field(default=None, min_length=1, max_length=64)
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def _exactly_one_identifier(self) -> RedeemRequest:
        if (self.voucher_id is None) == (self.qr_token is None):
            raise ValueError("provide exactly one of voucherId or qrToken")
        return self


class RedeemResponse(ApiModel):
    success: bool
    voucher_id: UUID
    deal_price: float
    message: str


@router.post("/redeem", response_model=RedeemResponse)
async def redeem_voucher(payload: RedeemRequest, request: Request) -> RedeemResponse:
    result = await VoucherRedemptionService.redeem_voucher(
        session_token=route_helpers.vendor_session_token(request),
        voucher_id=payload.voucher_id,
        qr_token=payload.qr_token,
        location_id=payload.location_id,
        metadata=payload.metadata,
    )
    outcome = route_helpers.unwrap(result)
    return RedeemResponse(
        success=True,
        voucher_id=outcome.voucher_id,
        deal_price=float(outcome.deal_price),
        message=outcome.message,
    )
