from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Query, Request

from dealvault.api.routes import route_helpers
from dealvault.api.routes.route_helpers import ApiModel
from dealvault.db.session import SessionLocal
from dealvault.identity.types import IdentityRole
from dealvault.visibility.service import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT, VoucherVisibilityService
from dealvault.visibility.types import AuditEntryView, Page, RedemptionView, VoucherView

router = APIRouter(tags=["visibility"])


class VoucherResponse(ApiModel):
    voucher_id: UUID
    deal_id: UUID
    business_id: UUID
    status: str
    display_status: str
    issued_at: datetime
    expires_at: datetime | None = None
    redeemed_at: datetime | None = None
    qr_token: str | None = None
    account_id: UUID | None = None


class VoucherPageResponse(ApiModel):
    items: list[VoucherResponse]
    total: int
    page: int
    limit: int


class RedemptionResponse(ApiModel):
    redemption_id: UUID
    voucher_id: UUID
    deal_id: UUID
    business_id: UUID
    vendor_user_id: UUID
    location_id: str | None = None
    original_value: float | None = None
    deal_price: float
    redeemed_at: datetime


class RedemptionPageResponse(ApiModel):
    items: list[RedemptionResponse]
    total: int
    page: int
    limit: int


class RedemptionHistoryResponse(ApiModel):
    voucher: VoucherResponse
    redemption: RedemptionResponse | None = None


class AuditEntryResponse(ApiModel):
    entry_id: int
    voucher_id: UUID | None = None
    action: str
    actor_role: str
    actor_user_id: UUID | None = None
    reason: str | None = None
    metadata: dict[str, Any]
    created_at: datetime


class AuditTrailResponse(ApiModel):
    voucher_id: UUID
    entries: list[AuditEntryResponse]


def _voucher_response(view: VoucherView) -> VoucherResponse:
    return VoucherResponse(
        voucher_id=view.voucher_id,
        deal_id=view.deal_id,
        business_id=view.business_id,
        status=view.status,
        display_status=view.display_status,
        issued_at=view.issued_at,
        expires_at=view.expires_at,
        redeemed_at=view.redeemed_at,
        qr_token=view.qr_token,
        account_id=view.account_id,
    )


def _redemption_response(view: RedemptionView) -> RedemptionResponse:
    return RedemptionResponse(
        redemption_id=view.redemption_id,
        voucher_id=view.voucher_id,
        deal_id=view.deal_id,
        business_id=view.business_id,
        vendor_user_id=view.vendor_user_id,
        location_id=view.location_id,
        original_value=float(view.original_value) if view.original_value is not None else None,
        deal_price=float(view.deal_price),
        redeemed_at=view.redeemed_at,
    )


def _audit_response(view: AuditEntryView) -> AuditEntryResponse:
    return AuditEntryResponse(
        entry_id=view.entry_id,
        voucher_id=view.voucher_id,
        action=view.action,
        actor_role=view.actor_role,
        actor_user_id=view.actor_user_id,
        reason=view.reason,
        metadata=view.metadata,
        created_at=view.created_at,
    )


def _voucher_page(page: Page[VoucherView]) -> VoucherPageResponse:
    return VoucherPageResponse(
        items=[_voucher_response(view) for view in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
    )


@router.get("/user/vouchers", response_model=VoucherPageResponse)
async def list_user_vouchers(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> VoucherPageResponse:
    identity = await route_helpers.resolve_identity(request)
    async with SessionLocal.begin() as session:
        result = await VoucherVisibilityService.list_user_vouchers(
            session,
            identity=identity,
            page=page,
            limit=limit,
        )
    return _voucher_page(route_helpers.unwrap(result))


@router.get("/user/vouchers/{voucher_id}", response_model=VoucherResponse)
async def get_user_voucher(voucher_id: UUID, request: Request) -> VoucherResponse:
    identity = await route_helpers.resolve_identity(request)
    async with SessionLocal.begin() as session:
        result = await VoucherVisibilityService.get_user_voucher(
            session,
            identity=identity,
            voucher_id=voucher_id,
        )
    return _voucher_response(route_helpers.unwrap(result))


@router.get("/vendor/vouchers", response_model=VoucherPageResponse)
async def list_vendor_vouchers(
    request: Request,
    status: str | None = Query(default=None, max_length=16),
    deal_id: UUID | None = Query(default=None, alias="dealId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> VoucherPageResponse:
    vendor = await route_helpers.resolve_vendor(request)
    async with SessionLocal.begin() as session:
        result = await VoucherVisibilityService.list_vendor_vouchers(
            session,
            vendor=vendor,
            status=status,
            deal_id=deal_id,
            page=page,
            limit=limit,
        )
    return _voucher_page(route_helpers.unwrap(result))


@router.get("/vendor/redemptions", response_model=RedemptionPageResponse)
async def list_vendor_redemptions(
    request: Request,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> RedemptionPageResponse:
    vendor = await route_helpers.resolve_vendor(request)
    async with SessionLocal.begin() as session:
        redemptions = await VoucherVisibilityService.list_vendor_redemptions(
            session,
            vendor=vendor,
            page=page,
            limit=limit,
        )
    return RedemptionPageResponse(
        items=[_redemption_response(view) for view in redemptions.items],
        total=redemptions.total,
        page=redemptions.page,
        limit=redemptions.limit,
    )


@router.get("/admin/vouchers", response_model=VoucherPageResponse)
async def list_admin_vouchers(
    request: Request,
    status: str | None = Query(default=None, max_length=16),
    business_id: UUID | None = Query(default=None, alias="businessId"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
) -> VoucherPageResponse:
    admin = await route_helpers.resolve_role(request, IdentityRole.ADMIN)
    async with SessionLocal.begin() as session:
        result = await VoucherVisibilityService.list_admin_vouchers(
            session,
            identity=admin,
            status=status,
            business_id=business_id,
            page=page,
            limit=limit,
        )
    return _voucher_page(route_helpers.unwrap(result))


@router.get("/vouchers/{voucher_id}/redemption-history", response_model=RedemptionHistoryResponse)
async def get_redemption_history(voucher_id: UUID, request: Request) -> RedemptionHistoryResponse:
    identity = await route_helpers.resolve_identity(request)
    async with SessionLocal.begin() as session:
        result = await VoucherVisibilityService.get_redemption_history(
            session,
            identity=identity,
            voucher_id=voucher_id,
        )
    history = route_helpers.unwrap(result)
    return RedemptionHistoryResponse(
        voucher=_voucher_response(history.voucher),
        redemption=(
            _redemption_response(history.redemption) if history.redemption is not None else None
        ),
    )


@router.get("/admin/vouchers/{voucher_id}/audit", response_model=AuditTrailResponse)
async def get_voucher_audit_trail(voucher_id: UUID, request: Request) -> AuditTrailResponse:
    admin = await route_helpers.resolve_role(request, IdentityRole.ADMIN)
    async with SessionLocal.begin() as session:
        result = await VoucherVisibilityService.get_audit_trail(
            session,
            identity=admin,
            voucher_id=voucher_id,
        )
    entries = route_helpers.unwrap(result)
    return AuditTrailResponse(
        voucher_id=voucher_id,
        entries=[_audit_response(view) for view in entries],
    )
