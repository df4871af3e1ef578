"""Voucher issuance: the only code path that creates voucher rows.

One issuance is one SERIALIZABLE transaction that writes the validation row,
the voucher row and its audit entry together. The unique constraint on
``voucher_validations.external_ref`` is the duplicate detector; losing a race
on it, or on serialization, resolves into an idempotent replay of the voucher
that won.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.config import get_settings
from dealvault.core.logging import bind_operation_context
from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.db.errors import DbErrorKind, classify_db_error
from dealvault.db.models.voucher_validations import VoucherValidation
from dealvault.db.models.vouchers import Voucher
from dealvault.db.repo.vouchers_repo import VouchersRepo
from dealvault.db.session import SessionLocal, serializable_transaction
from dealvault.enforcement.audit import append_audit_entry
from dealvault.enforcement.errors import VoucherRejectedError
from dealvault.enforcement.expiration import compute_voucher_expiry
from dealvault.enforcement.gates import (
    require_active_business,
    require_active_deal,
    require_active_subscription,
)
from dealvault.enforcement.qr_tokens import generate_qr_token
from dealvault.enforcement.types import AuditAction, IssuedVoucher
from dealvault.identity.types import VendorContext

logger = structlog.get_logger(__name__)

EXTERNAL_REF_MAX_LENGTH = 128
EXTERNAL_REF_CONSTRAINT = "uq_voucher_validations_external_ref"
QR_TOKEN_CONSTRAINT = "uq_vouchers_qr_token"
VALIDATION_CONSTRAINT = "uq_vouchers_validation"
ISSUANCE_CONSTRAINTS = (EXTERNAL_REF_CONSTRAINT, QR_TOKEN_CONSTRAINT, VALIDATION_CONSTRAINT)


@dataclass(slots=True)
class _IssueProgress:
    stage: str = "begin"
    voucher_id: UUID | None = None


def normalize_external_ref(raw: str | None) -> str | None:
    if raw is None:
        return None
    value = raw.strip()
    if not value or len(value) > EXTERNAL_REF_MAX_LENGTH:
        return None
    return value


def _to_issued(voucher: Voucher, *, idempotent_replay: bool) -> IssuedVoucher:
    return IssuedVoucher(
        voucher_id=voucher.id,
        validation_id=voucher.validation_id,
        qr_token=voucher.qr_token,
        status=voucher.status,
        issued_at=voucher.issued_at,
        expires_at=voucher.expires_at,
        idempotent_replay=idempotent_replay,
    )


class VoucherIssuanceService:
    @staticmethod
    async def _replay_existing(
        session: AsyncSession,
        *,
        validation: VoucherValidation,
        business_id: UUID,
        deal_id: UUID,
    ) -> Result[IssuedVoucher]:
        # The reference is global; never hand another business its voucher.
        if validation.business_id != business_id or validation.deal_id != deal_id:
            return fail(
                FailureCode.EXTERNAL_REF_CONFLICT,
                "external reference was already used for a different deal",
            )
        voucher = await VouchersRepo.get_by_validation_id(session, validation.id)
        if voucher is None:
            return fail(FailureCode.INTERNAL, "voucher issuance failed")
        return Ok(_to_issued(voucher, idempotent_replay=True))

    @staticmethod
    async def _fetch_replay(
        *,
        external_ref: str,
        business_id: UUID,
        deal_id: UUID,
    ) -> Result[IssuedVoucher] | None:
        async with SessionLocal.begin() as session:
            validation = await VouchersRepo.get_validation_by_external_ref(session, external_ref)
            if validation is None:
                return None
            return await VoucherIssuanceService._replay_existing(
                session,
                validation=validation,
                business_id=business_id,
                deal_id=deal_id,
            )

    @staticmethod
    async def _issue_in_transaction(
        session: AsyncSession,
        *,
        actor: VendorContext,
        external_ref: str,
        deal_id: UUID,
        business_id: UUID,
        account_id: UUID | None,
        now_utc: datetime,
        progress: _IssueProgress,
    ) -> Result[IssuedVoucher]:
        progress.stage = "replay_lookup"
        existing = await VouchersRepo.get_validation_by_external_ref(session, external_ref)
        if existing is not None:
            return await VoucherIssuanceService._replay_existing(
                session,
                validation=existing,
                business_id=business_id,
                deal_id=deal_id,
            )

        progress.stage = "gates"
        subscription_gate = await require_active_subscription(session, business_id, now_utc=now_utc)
        if not subscription_gate.ok:
            raise VoucherRejectedError(subscription_gate.code, subscription_gate.message)
        business_gate = await require_active_business(session, business_id)
        if not business_gate.ok:
            raise VoucherRejectedError(business_gate.code, business_gate.message)
        deal_gate = await require_active_deal(session, deal_id, business_id)
        if not deal_gate.ok:
            raise VoucherRejectedError(deal_gate.code, deal_gate.message)

        settings = get_settings()
        expiry = compute_voucher_expiry(
            issued_at=now_utc,
            deal_expiration_hours=deal_gate.value.voucher_expiration_hours,
            default_hours=settings.voucher_default_expiration_hours,
            max_hours=settings.voucher_max_expiration_hours,
        )
        if not expiry.ok:
            raise VoucherRejectedError(expiry.code, expiry.message)

        progress.stage = "insert_validation"
        validation = await VouchersRepo.create_validation(
            session,
            business_id=business_id,
            deal_id=deal_id,
            external_ref=external_ref,
            created_at=now_utc,
        )

        progress.stage = "insert_voucher"
        voucher = await VouchersRepo.create_voucher(
            session,
            validation_id=validation.id,
            deal_id=deal_id,
            business_id=business_id,
            account_id=account_id,
            qr_token=generate_qr_token(now_utc=now_utc),
            issued_at=now_utc,
            expires_at=expiry.value,
        )
        progress.voucher_id = voucher.id

        progress.stage = "audit"
        await append_audit_entry(
            session,
            action=AuditAction.ISSUED,
            actor_role="VENDOR",
            now_utc=now_utc,
            voucher_id=voucher.id,
            business_id=business_id,
            actor_user_id=actor.id,
            metadata={
                "validation_id": str(validation.id),
                "deal_id": str(deal_id),
                "external_ref": external_ref,
            },
        )
        progress.stage = "commit"
        return Ok(_to_issued(voucher, idempotent_replay=False))

    @staticmethod
    async def issue_voucher(
        *,
        actor: VendorContext,
        external_ref: str | None,
        deal_id: UUID,
        business_id: UUID,
        account_id: UUID | None = None,
        now_utc: datetime | None = None,
    ) -> Result[IssuedVoucher]:
        normalized_ref = normalize_external_ref(external_ref)
        if normalized_ref is None:
            return fail(FailureCode.INVALID_INPUT, "externalRef is required")
        if actor.business_id != business_id:
            return fail(FailureCode.FORBIDDEN, "vendor may only issue for its own business")

        bind_operation_context(
            operation="voucher_issue",
            business_id=business_id,
            deal_id=deal_id,
        )
        settings = get_settings()
        max_attempts = max(1, settings.voucher_issue_max_attempts)
        for attempt in range(1, max_attempts + 1):
            issued_at = now_utc or datetime.now(timezone.utc)
            progress = _IssueProgress()
            try:
                async with serializable_transaction() as session:
                    result = await VoucherIssuanceService._issue_in_transaction(
                        session,
                        actor=actor,
                        external_ref=normalized_ref,
                        deal_id=deal_id,
                        business_id=business_id,
                        account_id=account_id,
                        now_utc=issued_at,
                        progress=progress,
                    )
            except VoucherRejectedError as exc:
                logger.info(
                    "voucher_issue_rejected",
                    failure_code=exc.code.value,
                    stage=progress.stage,
                )
                return exc.as_failure()
            except DBAPIError as exc:
                outcome = await VoucherIssuanceService._resolve_db_error(
                    exc,
                    external_ref=normalized_ref,
                    business_id=business_id,
                    deal_id=deal_id,
                    progress=progress,
                    attempt=attempt,
                )
                if outcome is None:
                    continue
                return outcome
            except Exception:
                logger.exception(
                    "voucher_issue_system_error",
                    stage=progress.stage,
                    voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
                    attempt=attempt,
                )
                return fail(FailureCode.INTERNAL, "voucher issuance failed")

            if result.ok:
                logger.info(
                    "voucher_replayed" if result.value.idempotent_replay else "voucher_issued",
                    voucher_id=str(result.value.voucher_id),
                    attempt=attempt,
                )
            else:
                logger.info("voucher_issue_rejected", failure_code=result.code.value, stage=progress.stage)
            return result

        logger.warning("voucher_issue_conflict_exhausted", attempts=max_attempts)
        return fail(FailureCode.SERIALIZATION_CONFLICT, "concurrent issuance conflict, retry")

    @staticmethod
    async def _resolve_db_error(
        exc: DBAPIError,
        *,
        external_ref: str,
        business_id: UUID,
        deal_id: UUID,
        progress: _IssueProgress,
        attempt: int,
    ) -> Result[IssuedVoucher] | None:
        """Map a failed issuance transaction to a result, or None to retry."""
        info = classify_db_error(exc, known_constraints=ISSUANCE_CONSTRAINTS)
        if info.violates(EXTERNAL_REF_CONSTRAINT) or info.kind is DbErrorKind.SERIALIZATION_FAILURE:
            replay = await VoucherIssuanceService._fetch_replay(
                external_ref=external_ref,
                business_id=business_id,
                deal_id=deal_id,
            )
            if replay is not None:
                logger.info(
                    "voucher_issue_race_resolved",
                    db_error=info.kind.value,
                    attempt=attempt,
                    replay_ok=replay.ok,
                )
                return replay
            logger.info("voucher_issue_retrying", db_error=info.kind.value, attempt=attempt)
            return None

        if info.violates(QR_TOKEN_CONSTRAINT):
            logger.warning("voucher_qr_token_collision", attempt=attempt)
            return None

        if info.kind is DbErrorKind.FOREIGN_KEY_VIOLATION:
            logger.info("voucher_issue_foreign_key_violation", stage=progress.stage)
            return fail(FailureCode.FOREIGN_KEY_VIOLATION, "unknown business, deal or account reference")

        if info.kind is DbErrorKind.TIMEOUT:
            logger.warning("voucher_issue_timeout", stage=progress.stage, sqlstate=info.sqlstate)
            return fail(FailureCode.TRANSACTION_TIMEOUT, "voucher issuance timed out, retry")

        logger.error(
            "voucher_issue_system_error",
            stage=progress.stage,
            voucher_id=str(progress.voucher_id) if progress.voucher_id else None,
            sqlstate=info.sqlstate,
            error_type=type(exc.orig).__name__ if exc.orig is not None else type(exc).__name__,
        )
        return fail(FailureCode.INTERNAL, "voucher issuance failed")
