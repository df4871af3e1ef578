"""v1_voucher_core_tables

Revision ID: 5c1e2a9d7b40
Revises:
Create Date: 2026-10-12 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5c1e2a9d7b40"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def upgrade() -> None:
    op.create_table(
        "user_identities",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("role IN ('USER','VENDOR','ADMIN')", name="ck_user_identities_role"),
        sa.CheckConstraint("status IN ('ACTIVE','SUSPENDED')", name="ck_user_identities_status"),
        sa.UniqueConstraint("email", name="uq_user_identities_email"),
    )
    op.create_index("idx_user_identities_role", "user_identities", ["role"])

    op.create_table(
        "businesses",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("owner_user_id", _uuid(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('DRAFT','ACTIVE','SUSPENDED')", name="ck_businesses_status"),
        sa.ForeignKeyConstraint(["owner_user_id"], ["user_identities.id"]),
    )
    op.create_index("idx_businesses_owner", "businesses", ["owner_user_id"])

    op.create_table(
        "vendor_ownerships",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("user_id", _uuid(), nullable=False),
        sa.Column("business_id", _uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["user_id"], ["user_identities.id"]),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.UniqueConstraint("user_id", name="uq_vendor_ownerships_user"),
        sa.UniqueConstraint("business_id", name="uq_vendor_ownerships_business"),
    )

    op.create_table(
        "business_subscriptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("business_id", _uuid(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint(
            "status IN ('ACTIVE','PAST_DUE','CANCELED')",
            name="ck_business_subscriptions_status",
        ),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.UniqueConstraint("business_id", name="uq_business_subscriptions_business"),
    )

    op.create_table(
        "deals",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("business_id", _uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'INACTIVE'")),
        sa.Column("original_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("deal_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("voucher_expiration_hours", sa.Integer(), nullable=True),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("status IN ('INACTIVE','ACTIVE','EXPIRED')", name="ck_deals_status"),
        sa.CheckConstraint("deal_price >= 0", name="ck_deals_price_non_negative"),
        sa.CheckConstraint(
            "voucher_expiration_hours IS NULL OR voucher_expiration_hours BETWEEN 1 AND 2160",
            name="ck_deals_voucher_expiration_hours",
        ),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
    )
    op.create_index("idx_deals_business_status", "deals", ["business_id", "status"])

    op.create_table(
        "voucher_validations",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("business_id", _uuid(), nullable=False),
        sa.Column("deal_id", _uuid(), nullable=False),
        sa.Column("external_ref", sa.String(128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"]),
        sa.UniqueConstraint("external_ref", name="uq_voucher_validations_external_ref"),
    )
    op.create_index("idx_voucher_validations_business", "voucher_validations", ["business_id"])

    op.create_table(
        "vouchers",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("validation_id", _uuid(), nullable=False),
        sa.Column("deal_id", _uuid(), nullable=False),
        sa.Column("business_id", _uuid(), nullable=False),
        sa.Column("account_id", _uuid(), nullable=True),
        sa.Column("qr_token", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("redeemed_by_business_id", _uuid(), nullable=True),
        sa.Column("redeemed_context", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.CheckConstraint(
            "status IN ('ISSUED','ASSIGNED','REDEEMED','EXPIRED')",
            name="ck_vouchers_status",
        ),
        sa.CheckConstraint(
            "status <> 'REDEEMED' OR (redeemed_at IS NOT NULL AND redeemed_by_business_id IS NOT NULL)",
            name="ck_vouchers_redeemed_fields",
        ),
        sa.CheckConstraint("expires_at IS NULL OR expires_at > issued_at", name="ck_vouchers_expiry_after_issue"),
        sa.ForeignKeyConstraint(["validation_id"], ["voucher_validations.id"]),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"]),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["account_id"], ["user_identities.id"]),
        sa.ForeignKeyConstraint(["redeemed_by_business_id"], ["businesses.id"]),
        sa.UniqueConstraint("validation_id", name="uq_vouchers_validation"),
        sa.UniqueConstraint("qr_token", name="uq_vouchers_qr_token"),
    )
    op.create_index("idx_vouchers_business_status", "vouchers", ["business_id", "status"])
    op.create_index("idx_vouchers_account", "vouchers", ["account_id"])
    op.create_index("idx_vouchers_deal", "vouchers", ["deal_id"])

    op.create_table(
        "redemptions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("voucher_id", _uuid(), nullable=False),
        sa.Column("deal_id", _uuid(), nullable=False),
        sa.Column("business_id", _uuid(), nullable=False),
        sa.Column("vendor_user_id", _uuid(), nullable=False),
        sa.Column("location_id", sa.String(64), nullable=True),
        sa.Column("original_value", sa.Numeric(10, 2), nullable=True),
        sa.Column("deal_price", sa.Numeric(10, 2), nullable=False),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("redeemed_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["voucher_id"], ["vouchers.id"]),
        sa.ForeignKeyConstraint(["deal_id"], ["deals.id"]),
        sa.ForeignKeyConstraint(["business_id"], ["businesses.id"]),
        sa.ForeignKeyConstraint(["vendor_user_id"], ["user_identities.id"]),
        sa.UniqueConstraint("voucher_id", name="uq_redemptions_voucher"),
    )
    op.create_index("idx_redemptions_business_redeemed", "redemptions", ["business_id", "redeemed_at"])
    op.create_index("idx_redemptions_vendor", "redemptions", ["vendor_user_id"])

    op.create_table(
        "voucher_audit_logs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("voucher_id", _uuid(), nullable=True),
        sa.Column("voucher_ref", sa.String(96), nullable=True),
        sa.Column("business_id", _uuid(), nullable=True),
        sa.Column("actor_user_id", _uuid(), nullable=True),
        sa.Column("actor_role", sa.String(16), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("reason", sa.String(64), nullable=True),
        sa.Column(
            "metadata",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "action IN ('ISSUED','REDEEMED','REDEMPTION_FAILED')",
            name="ck_voucher_audit_logs_action",
        ),
    )
    op.create_index(
        "idx_voucher_audit_logs_voucher_created",
        "voucher_audit_logs",
        ["voucher_id", "created_at"],
    )
    op.create_index(
        "idx_voucher_audit_logs_action_created",
        "voucher_audit_logs",
        ["action", "created_at"],
    )

    op.create_table(
        "vendor_sessions",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("vendor_user_id", _uuid(), nullable=False),
        sa.Column("token_digest", sa.String(64), nullable=False),
        sa.Column("business_ids", postgresql.ARRAY(_uuid()), nullable=False),
        sa.Column(
            "location_ids",
            postgresql.ARRAY(sa.String(64)),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["vendor_user_id"], ["user_identities.id"]),
        sa.UniqueConstraint("token_digest", name="uq_vendor_sessions_token_digest"),
    )
    op.create_index(
        "idx_vendor_sessions_vendor_active",
        "vendor_sessions",
        ["vendor_user_id", "is_active"],
    )
    op.create_index(
        "idx_vendor_sessions_active_expires",
        "vendor_sessions",
        ["is_active", "expires_at"],
    )


def downgrade() -> None:
    op.drop_table("vendor_sessions")
    op.drop_table("voucher_audit_logs")
    op.drop_table("redemptions")
    op.drop_table("vouchers")
    op.drop_table("voucher_validations")
    op.drop_table("deals")
    op.drop_table("business_subscriptions")
    op.drop_table("vendor_ownerships")
    op.drop_table("businesses")
    op.drop_table("user_identities")
