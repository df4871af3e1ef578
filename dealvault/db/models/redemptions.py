from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from dealvault.db.models.base import Base


class Redemption(Base):
    __tablename__ = "redemptions"
    __table_args__ = (
        UniqueConstraint("voucher_id", name="uq_redemptions_voucher"),
        Index("idx_redemptions_business_redeemed", "business_id", "redeemed_at"),
        Index("idx_redemptions_vendor", "vendor_user_id"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    voucher_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("vouchers.id"),
        nullable=False,
    )
    deal_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("deals.id"), nullable=False)
    business_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("businesses.id"),
        nullable=False,
    )
    vendor_user_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("user_identities.id"),
        nullable=False,
    )
    location_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    original_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    deal_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
