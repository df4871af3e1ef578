from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.results import Failure
from dealvault.db.repo.voucher_audit_repo import VoucherAuditRepo
from dealvault.db.session import SessionLocal
from dealvault.enforcement.types import AuditAction


async def append_audit_entry(
    session: AsyncSession,
    *,
    action: AuditAction,
    actor_role: str,
    now_utc: datetime,
    voucher_id: UUID | None = None,
    voucher_ref: str | None = None,
    business_id: UUID | None = None,
    actor_user_id: UUID | None = None,
    reason: str | None = None,
    metadata: dict[str, object] | None = None,
) -> None:
    await VoucherAuditRepo.append(
        session,
        action=action.value,
        actor_role=actor_role,
        created_at=now_utc,
        voucher_id=voucher_id,
        voucher_ref=voucher_ref,
        business_id=business_id,
        actor_user_id=actor_user_id,
        reason=reason,
        metadata=metadata,
    )


async def record_redemption_failure(
    *,
    failure: Failure,
    now_utc: datetime,
    voucher_id: UUID | None,
    voucher_ref: str | None,
    business_id: UUID | None,
    actor_user_id: UUID | None,
    metadata: dict[str, object] | None = None,
) -> None:
    # Own transaction: the redemption transaction has already rolled back.
    async with SessionLocal.begin() as audit_session:
        await append_audit_entry(
            audit_session,
            action=AuditAction.REDEMPTION_FAILED,
            actor_role="VENDOR",
            now_utc=now_utc,
            voucher_id=voucher_id,
            voucher_ref=voucher_ref,
            business_id=business_id,
            actor_user_id=actor_user_id,
            reason=failure.code.value,
            metadata=metadata,
        )
