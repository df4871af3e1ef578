from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.user_identities import UserIdentity
from dealvault.db.models.vendor_ownerships import VendorOwnership


class IdentitiesRepo:
    @staticmethod
    async def get_by_id(session: AsyncSession, identity_id: UUID) -> UserIdentity | None:
        return await session.get(UserIdentity, identity_id)

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> UserIdentity | None:
        stmt = select(UserIdentity).where(UserIdentity.email == email.strip().lower())
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        session: AsyncSession,
        *,
        email: str,
        role: str,
        status: str = "ACTIVE",
    ) -> UserIdentity:
        identity = UserIdentity(
            id=uuid4(),
            email=email.strip().lower(),
            role=role,
            status=status,
        )
        session.add(identity)
        await session.flush()
        return identity

    @staticmethod
    async def get_ownership_by_user(session: AsyncSession, user_id: UUID) -> VendorOwnership | None:
        stmt = select(VendorOwnership).where(VendorOwnership.user_id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_ownership_by_business(
        session: AsyncSession,
        business_id: UUID,
    ) -> VendorOwnership | None:
        stmt = select(VendorOwnership).where(VendorOwnership.business_id == business_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_ownership(
        session: AsyncSession,
        *,
        user_id: UUID,
        business_id: UUID,
    ) -> VendorOwnership:
        ownership = VendorOwnership(id=uuid4(), user_id=user_id, business_id=business_id)
        session.add(ownership)
        await session.flush()
        return ownership
