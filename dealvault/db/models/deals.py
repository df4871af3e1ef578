from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from dealvault.db.models.base import Base


class Deal(Base):
    __tablename__ = "deals"
    __table_args__ = (
        CheckConstraint("status IN ('INACTIVE','ACTIVE','EXPIRED')", name="ck_deals_status"),
        CheckConstraint("deal_price >= 0", name="ck_deals_price_non_negative"),
        CheckConstraint(
            "voucher_expiration_hours IS NULL OR voucher_expiration_hours BETWEEN 1 AND 2160",
            name="ck_deals_voucher_expiration_hours",
        ),
        Index("idx_deals_business_status", "business_id", "status"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    business_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("businesses.id"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default=text("'INACTIVE'"))
    original_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    deal_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    voucher_expiration_hours: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_active_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("now()"),
    )
