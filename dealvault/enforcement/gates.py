from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.db.repo.businesses_repo import BusinessesRepo
from dealvault.db.repo.deals_repo import DealsRepo
from dealvault.enforcement.types import BusinessContext, DealContext


async def require_active_business(
    session: AsyncSession,
    business_id: UUID,
) -> Result[BusinessContext]:
    business = await BusinessesRepo.get_by_id(session, business_id)
    if business is None or business.status != "ACTIVE":
        return fail(FailureCode.BUSINESS_NOT_ACTIVE, "business is not active")
    return Ok(
        BusinessContext(
            id=business.id,
            owner_user_id=business.owner_user_id,
            status=business.status,
        )
    )


async def require_active_deal(
    session: AsyncSession,
    deal_id: UUID,
    business_id: UUID,
) -> Result[DealContext]:
    deal = await DealsRepo.get_by_id(session, deal_id)
    # A deal of another business answers exactly like a missing deal.
    if deal is None or deal.business_id != business_id:
        return fail(FailureCode.DEAL_NOT_FOUND, "deal not found")
    if deal.status != "ACTIVE":
        return fail(FailureCode.DEAL_NOT_ACTIVE, "deal is not active")
    return Ok(
        DealContext(
            id=deal.id,
            business_id=deal.business_id,
            status=deal.status,
            deal_price=deal.deal_price,
            original_value=deal.original_value,
            voucher_expiration_hours=deal.voucher_expiration_hours,
        )
    )


async def require_active_subscription(
    session: AsyncSession,
    business_id: UUID,
    *,
    now_utc: datetime,
) -> Result[UUID]:
    subscription = await BusinessesRepo.get_subscription(session, business_id)
    if subscription is None or subscription.status != "ACTIVE":
        return fail(FailureCode.SUBSCRIPTION_INACTIVE, "business subscription is not active")
    if subscription.ends_at is not None and subscription.ends_at <= now_utc:
        return fail(FailureCode.SUBSCRIPTION_INACTIVE, "business subscription has ended")
    return Ok(business_id)
