from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from dealvault.db.models.base import Base


class Voucher(Base):
    __tablename__ = "vouchers"
    __table_args__ = (
        CheckConstraint(
            "status IN ('ISSUED','ASSIGNED','REDEEMED','EXPIRED')",
            name="ck_vouchers_status",
        ),
        CheckConstraint(
            "status <> 'REDEEMED' OR (redeemed_at IS NOT NULL AND redeemed_by_business_id IS NOT NULL)",
            name="ck_vouchers_redeemed_fields",
        ),
        CheckConstraint("expires_at IS NULL OR expires_at > issued_at", name="ck_vouchers_expiry_after_issue"),
        UniqueConstraint("validation_id", name="uq_vouchers_validation"),
        UniqueConstraint("qr_token", name="uq_vouchers_qr_token"),
        Index("idx_vouchers_business_status", "business_id", "status"),
        Index("idx_vouchers_account", "account_id"),
        Index("idx_vouchers_deal", "deal_id"),
    )

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    validation_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("voucher_validations.id"),
        nullable=False,
    )
    deal_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), ForeignKey("deals.id"), nullable=False)
    business_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("businesses.id"),
        nullable=False,
    )
    account_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("user_identities.id"),
        nullable=True,
    )
    qr_token: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    redeemed_by_business_id: Mapped[UUID | None] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("businesses.id"),
        nullable=True,
    )
    redeemed_context: Mapped[dict[str, object] | None] = mapped_column(JSONB, nullable=True)
