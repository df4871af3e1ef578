"""Storage-level guards for the voucher tables.

Every statement here is plain PostgreSQL DDL. The initial migration carries
the same definitions; tests that build the schema from ORM metadata apply
these on top.
"""

from __future__ import annotations

APPEND_ONLY_TABLES = ("redemptions", "voucher_audit_logs", "vendor_ownerships")

VOUCHER_TERMINAL_STATE_FUNCTION = """
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

VOUCHER_TERMINAL_STATE_TRIGGER = """
CREATE TRIGGER trg_vouchers_redeemed_immutable
BEFORE UPDATE OR DELETE ON vouchers
FOR EACH ROW
EXECUTE FUNCTION fn_vouchers_redeemed_immutable();
"""

APPEND_ONLY_FUNCTION = """
CREATE OR REPLACE FUNCTION fn_reject_append_only_change()
RETURNS trigger
LANGUAGE plpgsql
AS $$
BEGIN
    RAISE EXCEPTION '% is append-only', TG_TABLE_NAME;
END;
$$;
"""

IDENTITY_ROLE_FUNCTION = """
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

IDENTITY_ROLE_TRIGGER = """
CREATE TRIGGER trg_user_identities_role_immutable
BEFORE UPDATE ON user_identities
FOR EACH ROW
EXECUTE FUNCTION fn_user_identities_role_immutable();
"""


def append_only_trigger(table_name: str) -> str:
    return (
        f"CREATE TRIGGER trg_{table_name}_append_only "
        f"BEFORE UPDATE OR DELETE ON {table_name} "
        "FOR EACH ROW EXECUTE FUNCTION fn_reject_append_only_change();"
    )


def create_statements() -> list[str]:
    statements = [
        VOUCHER_TERMINAL_STATE_FUNCTION,
        VOUCHER_TERMINAL_STATE_TRIGGER,
        APPEND_ONLY_FUNCTION,
        IDENTITY_ROLE_FUNCTION,
        IDENTITY_ROLE_TRIGGER,
    ]
    statements.extend(append_only_trigger(table_name) for table_name in APPEND_ONLY_TABLES)
    return statements


def drop_statements() -> list[str]:
    statements = [
        f"DROP TRIGGER IF EXISTS trg_{table_name}_append_only ON {table_name};"
        for table_name in APPEND_ONLY_TABLES
    ]
    statements.extend(
        [
            "DROP TRIGGER IF EXISTS trg_user_identities_role_immutable ON user_identities;",
            "DROP TRIGGER IF EXISTS trg_vouchers_redeemed_immutable ON vouchers;",
            "DROP FUNCTION IF EXISTS fn_user_identities_role_immutable();",
            "DROP FUNCTION IF EXISTS fn_reject_append_only_change();",
            "DROP FUNCTION IF EXISTS fn_vouchers_redeemed_immutable();",
        ]
    )
    return statements
