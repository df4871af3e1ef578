from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.voucher_audit_logs import VoucherAuditLog


class VoucherAuditRepo:
    @staticmethod
    async def append(
        session: AsyncSession,
        *,
        action: str,
        actor_role: str,
        created_at: datetime,
        voucher_id: UUID | None = None,
        voucher_ref: str | None = None,
        business_id: UUID | None = None,
        actor_user_id: UUID | None = None,
        reason: str | None = None,
        metadata: dict[str, object] | None = None,
    ) -> VoucherAuditLog:
        entry = VoucherAuditLog(
            voucher_id=voucher_id,
            voucher_ref=voucher_ref,
            business_id=business_id,
            actor_user_id=actor_user_id,
            actor_role=actor_role,
            action=action,
            reason=reason,
            metadata_=metadata or {},
            created_at=created_at,
        )
        session.add(entry)
        await session.flush()
        return entry

    @staticmethod
    async def list_for_voucher(session: AsyncSession, voucher_id: UUID) -> list[VoucherAuditLog]:
        stmt = (
            select(VoucherAuditLog)
            .where(VoucherAuditLog.voucher_id == voucher_id)
            .order_by(VoucherAuditLog.created_at.asc(), VoucherAuditLog.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_actions_for_voucher(session: AsyncSession, voucher_id: UUID) -> list[str]:
        stmt = (
            select(VoucherAuditLog.action)
            .where(VoucherAuditLog.voucher_id == voucher_id)
            .order_by(VoucherAuditLog.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
