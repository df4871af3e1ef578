from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, mapped_column

from dealvault.db.models.base import Base


class VoucherAuditLog(Base):
    __tablename__ = "voucher_audit_logs"
    __table_args__ = (
        CheckConstraint(
            "action IN ('ISSUED','REDEEMED','REDEMPTION_FAILED')",
            name="ck_voucher_audit_logs_action",
        ),
        Index("idx_voucher_audit_logs_voucher_created", "voucher_id", "created_at"),
        Index("idx_voucher_audit_logs_action_created", "action", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    # No FK: failed lookups are audited with the reference the caller sent.
    voucher_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    voucher_ref: Mapped[str | None] = mapped_column(String(96), nullable=True)
    business_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    actor_user_id: Mapped[UUID | None] = mapped_column(PG_UUID(as_uuid=True), nullable=True)
    actor_role: Mapped[str] = mapped_column(String(16), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(64), nullable=True)
    metadata_: Mapped[dict[str, object]] = mapped_column(
        "metadata",
        JSONB,
        nullable=False,
        server_default=text("'{}'::jsonb"),
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
