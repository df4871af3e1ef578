from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.vendor_sessions import VendorSession


class VendorSessionsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        vendor_user_id: UUID,
        token_digest: str,
        business_ids: Sequence[UUID],
        location_ids: Sequence[str],
        expires_at: datetime,
        now_utc: datetime,
    ) -> VendorSession:
        vendor_session = VendorSession(
            id=uuid4(),
            vendor_user_id=vendor_user_id,
            token_digest=token_digest,
            business_ids=list(business_ids),
            location_ids=list(location_ids),
            is_active=True,
            expires_at=expires_at,
            last_activity_at=now_utc,
            created_at=now_utc,
        )
        session.add(vendor_session)
        await session.flush()
        return vendor_session

    @staticmethod
    async def get_active_by_digest(
        session: AsyncSession,
        token_digest: str,
    ) -> VendorSession | None:
        stmt = select(VendorSession).where(
            VendorSession.token_digest == token_digest,
            VendorSession.is_active.is_(True),
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def deactivate_by_digest(session: AsyncSession, token_digest: str) -> int:
        stmt = (
            update(VendorSession)
            .where(VendorSession.token_digest == token_digest, VendorSession.is_active.is_(True))
            .values(is_active=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def deactivate_all_for_vendor(session: AsyncSession, vendor_user_id: UUID) -> int:
        stmt = (
            update(VendorSession)
            .where(VendorSession.vendor_user_id == vendor_user_id, VendorSession.is_active.is_(True))
            .values(is_active=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def deactivate_expired(session: AsyncSession, *, now_utc: datetime) -> int:
        stmt = (
            update(VendorSession)
            .where(VendorSession.is_active.is_(True), VendorSession.expires_at <= now_utc)
            .values(is_active=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def touch_activity(session: AsyncSession, session_id: UUID, *, now_utc: datetime) -> int:
        stmt = (
            update(VendorSession)
            .where(VendorSession.id == session_id)
            .values(last_activity_at=now_utc)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def deactivate_by_id(session: AsyncSession, session_id: UUID) -> int:
        stmt = (
            update(VendorSession)
            .where(VendorSession.id == session_id, VendorSession.is_active.is_(True))
            .values(is_active=False)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
