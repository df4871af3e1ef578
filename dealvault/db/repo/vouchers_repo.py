from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.db.models.redemptions import Redemption
from dealvault.db.models.voucher_validations import VoucherValidation
from dealvault.db.models.vouchers import Voucher


class VouchersRepo:
    @staticmethod
    async def get_validation_by_external_ref(
        session: AsyncSession,
        external_ref: str,
    ) -> VoucherValidation | None:
        stmt = select(VoucherValidation).where(VoucherValidation.external_ref == external_ref)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create_validation(
        session: AsyncSession,
        *,
        business_id: UUID,
        deal_id: UUID,
        external_ref: str,
        created_at: datetime,
    ) -> VoucherValidation:
        validation = VoucherValidation(
            id=uuid4(),
            business_id=business_id,
            deal_id=deal_id,
            external_ref=external_ref,
            created_at=created_at,
        )
        session.add(validation)
        await session.flush()
        return validation

    @staticmethod
    async def create_voucher(
        session: AsyncSession,
        *,
        validation_id: UUID,
        deal_id: UUID,
        business_id: UUID,
        account_id: UUID | None,
        qr_token: str,
        issued_at: datetime,
        expires_at: datetime | None,
    ) -> Voucher:
        voucher = Voucher(
            id=uuid4(),
            validation_id=validation_id,
            deal_id=deal_id,
            business_id=business_id,
            account_id=account_id,
            qr_token=qr_token,
            status="ISSUED",
            issued_at=issued_at,
            expires_at=expires_at,
        )
        session.add(voucher)
        await session.flush()
        return voucher

    @staticmethod
    async def get_by_id(session: AsyncSession, voucher_id: UUID) -> Voucher | None:
        return await session.get(Voucher, voucher_id)

    @staticmethod
    async def get_by_validation_id(session: AsyncSession, validation_id: UUID) -> Voucher | None:
        stmt = select(Voucher).where(Voucher.validation_id == validation_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_id_for_update(session: AsyncSession, voucher_id: UUID) -> Voucher | None:
        stmt = select(Voucher).where(Voucher.id == voucher_id).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_qr_token_for_update(session: AsyncSession, qr_token: str) -> Voucher | None:
        stmt = select(Voucher).where(Voucher.qr_token == qr_token).with_for_update()
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_qr_token(session: AsyncSession, qr_token: str) -> Voucher | None:
        stmt = select(Voucher).where(Voucher.qr_token == qr_token)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_redeemed(
        session: AsyncSession,
        *,
        voucher_id: UUID,
        business_id: UUID,
        redeemed_at: datetime,
        redeemed_context: dict[str, object],
    ) -> int:
        stmt = (
            update(Voucher)
            .where(Voucher.id == voucher_id, Voucher.status == "ISSUED")
            .values(
                status="REDEEMED",
                redeemed_at=redeemed_at,
                redeemed_by_business_id=business_id,
                redeemed_context=redeemed_context,
            )
            .execution_options(synchronize_session="fetch")
        )
        result = await session.execute(stmt)
        return result.rowcount or 0

    @staticmethod
    async def list_page(
        session: AsyncSession,
        *,
        account_id: UUID | None = None,
        business_id: UUID | None = None,
        deal_id: UUID | None = None,
        status: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Voucher], int]:
        conditions = []
        if account_id is not None:
            conditions.append(Voucher.account_id == account_id)
        if business_id is not None:
            conditions.append(Voucher.business_id == business_id)
        if deal_id is not None:
            conditions.append(Voucher.deal_id == deal_id)
        if status is not None:
            conditions.append(Voucher.status == status)

        stmt = (
            select(Voucher)
            .where(*conditions)
            .order_by(Voucher.issued_at.desc(), Voucher.id.desc())
            .limit(limit)
            .offset(offset)
        )
        count_stmt = select(func.count(Voucher.id)).where(*conditions)
        result = await session.execute(stmt)
        total = await session.scalar(count_stmt)
        return list(result.scalars().all()), int(total or 0)

    @staticmethod
    async def list_redeemed_without_redemption(
        session: AsyncSession,
        *,
        limit: int = 100,
    ) -> list[UUID]:
        stmt = (
            select(Voucher.id)
            .where(
                Voucher.status == "REDEEMED",
                ~exists().where(Redemption.voucher_id == Voucher.id),
            )
            .order_by(Voucher.redeemed_at.asc().nullsfirst(), Voucher.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_redemptions_on_unredeemed(
        session: AsyncSession,
        *,
        limit: int = 100,
    ) -> list[UUID]:
        stmt = (
            select(Voucher.id)
            .join(Redemption, Redemption.voucher_id == Voucher.id)
            .where(Voucher.status != "REDEEMED")
            .order_by(Redemption.redeemed_at.asc(), Voucher.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
