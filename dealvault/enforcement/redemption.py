"""Voucher redemption: the only code path that moves a voucher to REDEEMED.

The vendor session is validated in its own short transaction. The voucher is
then re-read FOR UPDATE inside a SERIALIZABLE transaction and every check runs
against that row. A transaction that loses a serialization race re-reads the
voucher: if another redemption won, the caller gets VOUCHER_ALREADY_REDEEMED;
if the voucher is still ISSUED the conflict was on a shared row and the whole
transaction is retried a bounded number of times.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.config import get_settings
from dealvault.core.logging import bind_operation_context
from dealvault.core.results import Failure, FailureCode, Ok, Result, fail
from dealvault.db.errors import DbErrorKind, classify_db_error
from dealvault.db.models.vouchers import Voucher
from dealvault.db.repo.businesses_repo import BusinessesRepo
from dealvault.db.repo.deals_repo import DealsRepo
from dealvault.db.repo.redemptions_repo import RedemptionsRepo
from dealvault.db.repo.vouchers_repo import VouchersRepo
from dealvault.db.session import SessionLocal, serializable_transaction
from dealvault.enforcement.audit import append_audit_entry, record_redemption_failure
from dealvault.enforcement.errors import VoucherRejectedError
from dealvault.enforcement.expiration import is_expired
from dealvault.enforcement.qr_tokens import mask_qr_token
from dealvault.enforcement.types import AuditAction, RedemptionOutcome, VendorSessionContext, VoucherStatus
from dealvault.enforcement.vendor_sessions import validate_vendor_session

logger = structlog.get_logger(__name__)

REDEMPTION_CONSTRAINTS = ("uq_redemptions_voucher",)
REDEEMED_MESSAGE = "Voucher redeemed"
DEAL_ACTIVITY_TOUCH_INTERVAL = timedelta(minutes=5)


@dataclass(slots=True)
class _RedeemProgress:
    stage: str = "begin"
    voucher_id: UUID | None = None
    qr_token: str | None = None
    business_id: UUID | None = None
    extra: dict[str, object] = field(default_factory=dict)


def _check_redeemable(
    voucher: Voucher,
    *,
    vendor: VendorSessionContext,
    location_id: str | None,
    now_utc: datetime,
) -> None:
    if voucher.business_id not in vendor.business_ids:
        raise VoucherRejectedError(
            FailureCode.VENDOR_NOT_OWNER,
            "voucher belongs to a different business",
        )
    if voucher.status == VoucherStatus.REDEEMED.value:
        raise VoucherRejectedError(
            FailureCode.VOUCHER_ALREADY_REDEEMED,
            "voucher has already been redeemed",
        )
    if voucher.status != VoucherStatus.ISSUED.value:
        raise VoucherRejectedError(
            FailureCode.VOUCHER_NOT_ISSUED,
            f"voucher is {voucher.status.lower()} and cannot be redeemed",
        )
    if is_expired(voucher.expires_at, now_utc=now_utc):
        raise VoucherRejectedError(FailureCode.VOUCHER_EXPIRED, "voucher has expired")
    if vendor.location_ids and location_id is not None and location_id not in vendor.location_ids:
        raise VoucherRejectedError(
            FailureCode.LOCATION_UNAUTHORIZED,
            "location is not authorized for this session",
        )


class VoucherRedemptionService:
    @staticmethod
    async def _load_voucher_for_update(
        session: AsyncSession,
        *,
        voucher_id: UUID | None,
        qr_token: str | None,
    ) -> Voucher | None:
        if voucher_id is not None:
            return await VouchersRepo.get_by_id_for_update(session, voucher_id)
        if qr_token is not None:
            return await VouchersRepo.get_by_qr_token_for_update(session, qr_token)
        return None

    @staticmethod
    async def _redeem_in_transaction(
        session: AsyncSession,
        *,
        vendor: VendorSessionContext,
        voucher_id: UUID | None,
        qr_token: str | None,
        location_id: str | None,
        metadata: dict[str, object],
        now_utc: datetime,
        progress: _RedeemProgress,
    ) -> RedemptionOutcome:
        progress.stage = "load_voucher"
        voucher = await VoucherRedemptionService._load_voucher_for_update(
            session,
            voucher_id=voucher_id,
            qr_token=qr_token,
        )
        if voucher is None:
            # Unknown ids stay in voucher_ref only.
            progress.voucher_id = None
            raise VoucherRejectedError(FailureCode.VOUCHER_NOT_FOUND, "voucher not found")
        progress.voucher_id = voucher.id
        progress.business_id = voucher.business_id

        progress.stage = "checks"
        _check_redeemable(voucher, vendor=vendor, location_id=location_id, now_utc=now_utc)
        business = await BusinessesRepo.get_by_id(session, voucher.business_id)
        if business is None or business.status != "ACTIVE":
            raise VoucherRejectedError(FailureCode.BUSINESS_NOT_ACTIVE, "business is not active")
        deal = await DealsRepo.get_by_id(session, voucher.deal_id)
        if deal is None:
            raise VoucherRejectedError(FailureCode.FOREIGN_KEY_VIOLATION, "voucher deal is missing")

        progress.stage = "mark_redeemed"
        redeemed_context: dict[str, object] = {
            "vendor_session_id": str(vendor.session_id),
            "vendor_user_id": str(vendor.vendor_user_id),
            "location_id": location_id,
            "metadata": metadata,
        }
        updated = await VouchersRepo.mark_redeemed(
            session,
            voucher_id=voucher.id,
            business_id=voucher.business_id,
            redeemed_at=now_utc,
            redeemed_context=redeemed_context,
        )
        if updated != 1:
            raise VoucherRejectedError(
                FailureCode.VOUCHER_ALREADY_REDEEMED,
                "voucher has already been redeemed",
            )

        progress.stage = "insert_redemption"
        redemption = await RedemptionsRepo.create(
            session,
            voucher_id=voucher.id,
            deal_id=voucher.deal_id,
            business_id=voucher.business_id,
            vendor_user_id=vendor.vendor_user_id,
            location_id=location_id,
            original_value=deal.original_value,
            deal_price=deal.deal_price,
            metadata=metadata,
            redeemed_at=now_utc,
        )

        progress.stage = "audit"
        await append_audit_entry(
            session,
            action=AuditAction.REDEEMED,
            actor_role="VENDOR",
            now_utc=now_utc,
            voucher_id=voucher.id,
            business_id=voucher.business_id,
            actor_user_id=vendor.vendor_user_id,
            metadata={
                "redemption_id": str(redemption.id),
                "vendor_session_id": str(vendor.session_id),
                "location_id": location_id,
            },
        )

        progress.stage = "touch_deal"
        await DealsRepo.touch_last_active(
            session,
            voucher.deal_id,
            now_utc=now_utc,
            min_interval=DEAL_ACTIVITY_TOUCH_INTERVAL,
        )
        progress.stage = "commit"
        return RedemptionOutcome(
            voucher_id=voucher.id,
            redemption_id=redemption.id,
            deal_price=deal.deal_price,
            redeemed_at=now_utc,
            message=REDEEMED_MESSAGE,
        )

    @staticmethod
    async def _reread_after_conflict(progress: _RedeemProgress, *, attempt: int) -> Failure | None:
        """VOUCHER_ALREADY_REDEEMED when another redemption won, None to retry."""
        async with SessionLocal.begin() as session:
            if progress.voucher_id is not None:
                voucher = await VouchersRepo.get_by_id(session, progress.voucher_id)
            elif progress.qr_token is not None:
                voucher = await VouchersRepo.get_by_qr_token(session, progress.qr_token)
            else:
                voucher = None
        if voucher is not None and voucher.status == VoucherStatus.REDEEMED.value:
            progress.voucher_id = voucher.id
            progress.business_id = voucher.business_id
            return fail(FailureCode.VOUCHER_ALREADY_REDEEMED, "voucher has already been redeemed")
        logger.info(
            "voucher_redemption_retrying",
            stage=progress.stage,
            voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
            attempt=attempt,
        )
        return None

    @staticmethod
    async def _resolve_db_error(
        exc: DBAPIError,
        *,
        progress: _RedeemProgress,
        attempt: int,
    ) -> Failure | None:
        info = classify_db_error(exc, known_constraints=REDEMPTION_CONSTRAINTS)
        if info.kind is DbErrorKind.SERIALIZATION_FAILURE or info.violates("uq_redemptions_voucher"):
            return await VoucherRedemptionService._reread_after_conflict(progress, attempt=attempt)
        if info.kind is DbErrorKind.TIMEOUT:
            logger.warning(
                "voucher_redemption_timeout",
                stage=progress.stage,
                voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
                sqlstate=info.sqlstate,
            )
            return fail(FailureCode.TRANSACTION_TIMEOUT, "voucher redemption timed out, retry")

        logger.error(
            "voucher_redemption_system_error",
            stage=progress.stage,
            voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
            sqlstate=info.sqlstate,
            db_error=info.kind.value,
        )
        return fail(FailureCode.INTERNAL, "voucher redemption failed")

    @staticmethod
    async def _fail_attempt(
        failure: Failure,
        *,
        now_utc: datetime,
        vendor: VendorSessionContext | None,
        voucher_ref: str | None,
        progress: _RedeemProgress,
    ) -> Failure:
        logger.warning(
            "voucher_redemption_failed",
            failure_code=failure.code.value,
            stage=progress.stage,
            voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
        )
        try:
            await record_redemption_failure(
                failure=failure,
                now_utc=now_utc,
                voucher_id=progress.voucher_id,
                voucher_ref=voucher_ref,
                business_id=progress.business_id,
                actor_user_id=vendor.vendor_user_id if vendor is not None else None,
                metadata={
                    "stage": progress.stage,
                    "vendor_session_id": str(vendor.session_id) if vendor is not None else None,
                    **progress.extra,
                },
            )
        except Exception:
            logger.exception(
                "voucher_redemption_audit_failed",
                failure_code=failure.code.value,
                voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
            )
            return fail(FailureCode.INTERNAL, "voucher redemption failed")
        return failure

    @staticmethod
    async def redeem_voucher(
        *,
        session_token: str | None,
        voucher_id: UUID | None = None,
        qr_token: str | None = None,
        location_id: str | None = None,
        metadata: dict[str, object] | None = None,
        now_utc: datetime | None = None,
    ) -> Result[RedemptionOutcome]:
        now = now_utc or datetime.now(timezone.utc)
        normalized_qr = qr_token.strip() if qr_token else None
        normalized_location = location_id.strip() if location_id else None
        voucher_ref = str(voucher_id) if voucher_id is not None else (
            mask_qr_token(normalized_qr) if normalized_qr else None
        )
        progress = _RedeemProgress(voucher_id=voucher_id, qr_token=normalized_qr)
        if normalized_location:
            progress.extra["location_id"] = normalized_location

        bind_operation_context(operation="voucher_redeem", voucher_id=voucher_id)

        progress.stage = "session"
        async with SessionLocal.begin() as session:
            vendor = await validate_vendor_session(session, session_token, now_utc=now)
        if vendor is None:
            return await VoucherRedemptionService._fail_attempt(
                fail(FailureCode.INVALID_SESSION, "vendor session is invalid or expired"),
                now_utc=now,
                vendor=None,
                voucher_ref=voucher_ref,
                progress=progress,
            )
        bind_operation_context(vendor_session_id=vendor.session_id)

        if (voucher_id is None) == (normalized_qr is None):
            return await VoucherRedemptionService._fail_attempt(
                fail(FailureCode.INVALID_INPUT, "provide exactly one of voucherId or qrToken"),
                now_utc=now,
                vendor=vendor,
                voucher_ref=voucher_ref,
                progress=progress,
            )

        max_attempts = max(1, get_settings().voucher_redeem_max_attempts)
        for attempt in range(1, max_attempts + 1):
            try:
                async with serializable_transaction() as session:
                    outcome = await VoucherRedemptionService._redeem_in_transaction(
                        session,
                        vendor=vendor,
                        voucher_id=voucher_id,
                        qr_token=normalized_qr,
                        location_id=normalized_location,
                        metadata=dict(metadata or {}),
                        now_utc=now,
                        progress=progress,
                    )
            except VoucherRejectedError as exc:
                failure = exc.as_failure()
            except DBAPIError as exc:
                resolved = await VoucherRedemptionService._resolve_db_error(
                    exc,
                    progress=progress,
                    attempt=attempt,
                )
                if resolved is None:
                    continue
                failure = resolved
            except Exception:
                logger.exception(
                    "voucher_redemption_system_error",
                    stage=progress.stage,
                    voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
                )
                failure = fail(FailureCode.INTERNAL, "voucher redemption failed")
            else:
                logger.info(
                    "voucher_redeemed",
                    voucher_id=str(outcome.voucher_id),
                    redemption_id=str(outcome.redemption_id),
                    business_id=str(progress.business_id),
                    attempt=attempt,
                )
                return Ok(outcome)

            return await VoucherRedemptionService._fail_attempt(
                failure,
                now_utc=now,
                vendor=vendor,
                voucher_ref=voucher_ref,
                progress=progress,
            )

        logger.warning(
            "voucher_redemption_conflict_exhausted",
            attempts=max_attempts,
            voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
        )
        return await VoucherRedemptionService._fail_attempt(
            fail(FailureCode.SERIALIZATION_CONFLICT, "concurrent redemption conflict, retry"),
            now_utc=now,
            vendor=vendor,
            voucher_ref=voucher_ref,
            progress=progress,
        )
