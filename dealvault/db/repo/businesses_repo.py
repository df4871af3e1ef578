from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.business_subscriptions import BusinessSubscription
from dealvault.db.models.businesses import Business


class BusinessesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, business_id: UUID) -> Business | None:
        return await session.get(Business, business_id)

    @staticmethod
    async def get_subscription(
        session: AsyncSession,
        business_id: UUID,
    ) -> BusinessSubscription | None:
        stmt = select(BusinessSubscription).where(BusinessSubscription.business_id == business_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def claim_owner_if_unset(
        session: AsyncSession,
        *,
        business_id: UUID,
        owner_user_id: UUID,
    ) -> int:
        stmt = (
            update(Business)
            .where(Business.id == business_id, Business.owner_user_id.is_(None))
            .values(owner_user_id=owner_user_id)
        )
        result = await session.execute(stmt)
        return result.rowcount or 0
