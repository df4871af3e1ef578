from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.deals import Deal


class DealsRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, deal_id: UUID) -> Deal | None:
        return await session.get(Deal, deal_id)

    @staticmethod
    async def touch_last_active(
        session: AsyncSession,
        deal_id: UUID,
        *,
        now_utc: datetime,
        min_interval: timedelta,
    ) -> int:
        # Writes only when the stored stamp is older than min_interval.
        stmt = (
            update(Deal)
            .where(
                Deal.id == deal_id,
                or_(Deal.last_active_at.is_(None), Deal.last_active_at <= now_utc - min_interval),
            )
            .values(last_active_at=now_utc)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
