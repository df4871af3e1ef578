"""v1_voucher_storage_guards

Revision ID: 8d3f4b6a2c19
Revises: 5c1e2a9d7b40
Create Date: 2026-10-12 09:30:00.000000
"""

from collections.abc import Sequence

from alembic import op

revision: str = "8d3f4b6a2c19"
down_revision: str | None = "5c1e2a9d7b40"
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

APPEND_ONLY_TABLES = ("redemptions", "voucher_audit_logs", "vendor_ownerships")


def upgrade() -> None:
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_vouchers_redeemed_immutable()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            IF OLD.status = 'REDEEMED' THEN
                RAISE EXCEPTION 'voucher % is REDEEMED and immutable', OLD.id;
            END IF;
            IF TG_OP = 'DELETE' THEN
                RETURN OLD;
            END IF;
            RETURN NEW;
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_vouchers_redeemed_immutable
        BEFORE UPDATE OR DELETE ON vouchers
        FOR EACH ROW
        EXECUTE FUNCTION fn_vouchers_redeemed_immutable();
        """
    )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_reject_append_only_change()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
        END;
        $$;
        """
    )
    for table_name in APPEND_ONLY_TABLES:
        op.execute(
            f"""
            CREATE TRIGGER trg_{table_name}_append_only
            BEFORE UPDATE OR DELETE ON {table_name}
            FOR EACH ROW
            EXECUTE FUNCTION fn_reject_append_only_change();
            """
        )

    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_user_identities_role_immutable()
        RETURNS trigger
        LANGUAGE plpgsql
        AS $$
        BEGIN
            IF NEW.role IS DISTINCT FROM OLD.role THEN
                RAISE EXCEPTION 'identity % role is immutable', OLD.id;
            END IF;
            RETURN NEW;
        END;
        $$;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_user_identities_role_immutable
        BEFORE UPDATE ON user_identities
        FOR EACH ROW
        EXECUTE FUNCTION fn_user_identities_role_immutable();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS trg_user_identities_role_immutable ON user_identities;")
    op.execute("DROP FUNCTION IF EXISTS fn_user_identities_role_immutable();")
    for table_name in APPEND_ONLY_TABLES:
        op.execute(f"DROP TRIGGER IF EXISTS trg_{table_name}_append_only ON {table_name};")
    op.execute("DROP FUNCTION IF EXISTS fn_reject_append_only_change();")
    op.execute("DROP TRIGGER IF EXISTS trg_vouchers_redeemed_immutable ON vouchers;")
    op.execute("DROP FUNCTION IF EXISTS fn_vouchers_redeemed_immutable();")
