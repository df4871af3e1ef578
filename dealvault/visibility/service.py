"""Read-only projections of voucher and redemption state.

Nothing here writes. Status is read from the stored row; ``display_status``
only adds the read-time EXPIRED condition the redemption engine applies.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import assert_never
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.db.models.redemptions import Redemption
from dealvault.db.models.voucher_audit_logs import VoucherAuditLog
from dealvault.db.models.vouchers import Voucher
from dealvault.db.repo.identities_repo import IdentitiesRepo
from dealvault.db.repo.redemptions_repo import RedemptionsRepo
from dealvault.db.repo.voucher_audit_repo import VoucherAuditRepo
from dealvault.db.repo.vouchers_repo import VouchersRepo
from dealvault.enforcement.expiration import display_status
from dealvault.enforcement.types import VoucherStatus
from dealvault.identity.types import IdentityContext, IdentityRole, VendorContext
from dealvault.visibility.types import (
    AuditEntryView,
    Page,
    RedemptionHistory,
    RedemptionView,
    VoucherView,
)

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 50
VOUCHER_STATUSES = frozenset(status.value for status in VoucherStatus)


def normalize_paging(page: int | None, limit: int | None) -> tuple[int, int]:
    resolved_page = max(1, page or 1)
    resolved_limit = min(MAX_PAGE_LIMIT, max(1, limit or DEFAULT_PAGE_LIMIT))
    return resolved_page, resolved_limit


def _voucher_view(
    voucher: Voucher,
    *,
    now_utc: datetime,
    include_qr_token: bool,
    include_account: bool,
) -> VoucherView:
    return VoucherView(
        voucher_id=voucher.id,
        deal_id=voucher.deal_id,
        business_id=voucher.business_id,
        status=voucher.status,
        display_status=display_status(voucher.status, voucher.expires_at, now_utc=now_utc),
        issued_at=voucher.issued_at,
        expires_at=voucher.expires_at,
        redeemed_at=voucher.redeemed_at,
        qr_token=voucher.qr_token if include_qr_token else None,
        account_id=voucher.account_id if include_account else None,
    )


def _redemption_view(redemption: Redemption) -> RedemptionView:
    return RedemptionView(
        redemption_id=redemption.id,
        voucher_id=redemption.voucher_id,
        deal_id=redemption.deal_id,
        business_id=redemption.business_id,
        vendor_user_id=redemption.vendor_user_id,
        location_id=redemption.location_id,
        original_value=redemption.original_value,
        deal_price=redemption.deal_price,
        redeemed_at=redemption.redeemed_at,
    )


def _audit_view(entry: VoucherAuditLog) -> AuditEntryView:
    return AuditEntryView(
        entry_id=entry.id,
        voucher_id=entry.voucher_id,
        action=entry.action,
        actor_role=entry.actor_role,
        actor_user_id=entry.actor_user_id,
        reason=entry.reason,
        metadata=dict(entry.metadata_ or {}),
        created_at=entry.created_at,
    )


def _validated_status(status: str | None) -> Result[str | None]:
    if status is None:
        return Ok(None)
    normalized = status.strip().upper()
    if normalized not in VOUCHER_STATUSES:
        return fail(FailureCode.INVALID_INPUT, f"unknown voucher status: {status}")
    return Ok(normalized)


class VoucherVisibilityService:
    @staticmethod
    async def list_user_vouchers(
        session: AsyncSession,
        *,
        identity: IdentityContext,
        page: int | None = None,
        limit: int | None = None,
        now_utc: datetime | None = None,
    ) -> Result[Page[VoucherView]]:
        if identity.role is not IdentityRole.USER:
            return fail(FailureCode.FORBIDDEN, "USER role required")
        resolved_page, resolved_limit = normalize_paging(page, limit)
        vouchers, total = await VouchersRepo.list_page(
            session,
            account_id=identity.id,
            limit=resolved_limit,
            offset=(resolved_page - 1) * resolved_limit,
        )
        now = now_utc or datetime.now(timezone.utc)
        return Ok(
            Page(
                items=[
                    _voucher_view(voucher, now_utc=now, include_qr_token=True, include_account=True)
                    for voucher in vouchers
                ],
                total=total,
                page=resolved_page,
                limit=resolved_limit,
            )
        )

    @staticmethod
    async def get_user_voucher(
        session: AsyncSession,
        *,
        identity: IdentityContext,
        voucher_id: UUID,
        now_utc: datetime | None = None,
    ) -> Result[VoucherView]:
        if identity.role is not IdentityRole.USER:
            return fail(FailureCode.FORBIDDEN, "USER role required")
        voucher = await VouchersRepo.get_by_id(session, voucher_id)
        if voucher is None or voucher.account_id != identity.id:
            return fail(FailureCode.VOUCHER_NOT_FOUND, "voucher not found")
        return Ok(
            _voucher_view(
                voucher,
                now_utc=now_utc or datetime.now(timezone.utc),
                include_qr_token=True,
                include_account=True,
            )
        )

    @staticmethod
    async def list_vendor_vouchers(
        session: AsyncSession,
        *,
        vendor: VendorContext,
        status: str | None = None,
        deal_id: UUID | None = None,
        page: int | None = None,
        limit: int | None = None,
        now_utc: datetime | None = None,
    ) -> Result[Page[VoucherView]]:
        status_filter = _validated_status(status)
        if not status_filter.ok:
            return status_filter
        resolved_page, resolved_limit = normalize_paging(page, limit)
        vouchers, total = await VouchersRepo.list_page(
            session,
            business_id=vendor.business_id,
            deal_id=deal_id,
            status=status_filter.value,
            limit=resolved_limit,
            offset=(resolved_page - 1) * resolved_limit,
        )
        now = now_utc or datetime.now(timezone.utc)
        return Ok(
            Page(
                items=[
                    _voucher_view(voucher, now_utc=now, include_qr_token=False, include_account=False)
                    for voucher in vouchers
                ],
                total=total,
                page=resolved_page,
                limit=resolved_limit,
            )
        )

    @staticmethod
    async def list_vendor_redemptions(
        session: AsyncSession,
        *,
        vendor: VendorContext,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[RedemptionView]:
        resolved_page, resolved_limit = normalize_paging(page, limit)
        redemptions, total = await RedemptionsRepo.list_for_business(
            session,
            vendor.business_id,
            limit=resolved_limit,
            offset=(resolved_page - 1) * resolved_limit,
        )
        return Page(
            items=[_redemption_view(redemption) for redemption in redemptions],
            total=total,
            page=resolved_page,
            limit=resolved_limit,
        )

    @staticmethod
    async def list_admin_vouchers(
        session: AsyncSession,
        *,
        identity: IdentityContext,
        status: str | None = None,
        business_id: UUID | None = None,
        page: int | None = None,
        limit: int | None = None,
        now_utc: datetime | None = None,
    ) -> Result[Page[VoucherView]]:
        if identity.role is not IdentityRole.ADMIN:
            return fail(FailureCode.FORBIDDEN, "ADMIN role required")
        status_filter = _validated_status(status)
        if not status_filter.ok:
            return status_filter
        resolved_page, resolved_limit = normalize_paging(page, limit)
        vouchers, total = await VouchersRepo.list_page(
            session,
            business_id=business_id,
            status=status_filter.value,
            limit=resolved_limit,
            offset=(resolved_page - 1) * resolved_limit,
        )
        now = now_utc or datetime.now(timezone.utc)
        return Ok(
            Page(
                items=[
                    _voucher_view(voucher, now_utc=now, include_qr_token=False, include_account=True)
                    for voucher in vouchers
                ],
                total=total,
                page=resolved_page,
                limit=resolved_limit,
            )
        )

    @staticmethod
    async def _can_view_voucher(
        session: AsyncSession,
        *,
        identity: IdentityContext,
        voucher: Voucher,
    ) -> bool:
        if identity.role is IdentityRole.ADMIN:
            return True
        if identity.role is IdentityRole.VENDOR:
            ownership = await IdentitiesRepo.get_ownership_by_user(session, identity.id)
            return ownership is not None and ownership.business_id == voucher.business_id
        if identity.role is IdentityRole.USER:
            return voucher.account_id == identity.id
        assert_never(identity.role)

    @staticmethod
    async def get_redemption_history(
        session: AsyncSession,
        *,
        identity: IdentityContext,
        voucher_id: UUID,
        now_utc: datetime | None = None,
    ) -> Result[RedemptionHistory]:
        voucher = await VouchersRepo.get_by_id(session, voucher_id)
        if voucher is None or not await VoucherVisibilityService._can_view_voucher(
            session,
            identity=identity,
            voucher=voucher,
        ):
            return fail(FailureCode.VOUCHER_NOT_FOUND, "voucher not found")

        redemption = await RedemptionsRepo.get_by_voucher_id(session, voucher.id)
        return Ok(
            RedemptionHistory(
                voucher=_voucher_view(
                    voucher,
                    now_utc=now_utc or datetime.now(timezone.utc),
                    include_qr_token=False,
                    include_account=identity.role is not IdentityRole.VENDOR,
                ),
                redemption=_redemption_view(redemption) if redemption is not None else None,
            )
        )

    @staticmethod
    async def get_audit_trail(
        session: AsyncSession,
        *,
        identity: IdentityContext,
        voucher_id: UUID,
    ) -> Result[list[AuditEntryView]]:
        if identity.role is not IdentityRole.ADMIN:
            return fail(FailureCode.FORBIDDEN, "ADMIN role required")
        voucher = await VouchersRepo.get_by_id(session, voucher_id)
        if voucher is None:
            return fail(FailureCode.VOUCHER_NOT_FOUND, "voucher not found")
        entries = await VoucherAuditRepo.list_for_voucher(session, voucher_id)
        return Ok([_audit_view(entry) for entry in entries])
