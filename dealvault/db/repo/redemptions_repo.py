from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.redemptions import Redemption


class RedemptionsRepo:
    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        voucher_id: UUID,
        deal_id: UUID,
        business_id: UUID,
        vendor_user_id: UUID,
        location_id: str | None,
        original_value: Decimal | None,
        deal_price: Decimal,
        metadata: dict[str, object],
        redeemed_at: datetime,
    ) -> Redemption:
        redemption = Redemption(
            id=uuid4(),
            voucher_id=voucher_id,
            deal_id=deal_id,
            business_id=business_id,
            vendor_user_id=vendor_user_id,
            location_id=location_id,
            original_value=original_value,
            deal_price=deal_price,
            metadata_=metadata,
            redeemed_at=redeemed_at,
        )
        session.add(redemption)
        await session.flush()
        return redemption

    @staticmethod
    async def get_by_voucher_id(session: AsyncSession, voucher_id: UUID) -> Redemption | None:
        stmt = select(Redemption).where(Redemption.voucher_id == voucher_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def count_for_voucher(session: AsyncSession, voucher_id: UUID) -> int:
        stmt = select(func.count(Redemption.id)).where(Redemption.voucher_id == voucher_id)
        return int(await session.scalar(stmt) or 0)

    @staticmethod
    async def list_for_business(
        session: AsyncSession,
        business_id: UUID,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Redemption], int]:
        stmt = (
            select(Redemption)
            .where(Redemption.business_id == business_id)
            .order_by(Redemption.redeemed_at.desc(), Redemption.id.desc())
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count(Redemption.id)).where(Redemption.business_id == business_id)
        result = await session.execute(stmt)
        total = await session.scalar(count_stmt)
        return list(result.scalars().all()), int(total or 0)
