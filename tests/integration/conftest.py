from __future__ import annotations

import pytest
from sqlalchemy import text

from dealvault.core.integration_db_safety import assert_safe_integration_db
from dealvault.db.models import Base
from dealvault.db.session import engine
from dealvault.db.triggers import create_statements, drop_statements

TRUNCATE_TABLES = (
    "voucher_audit_logs",
    "redemptions",
    "vouchers",
    "voucher_validations",
    "vendor_sessions",
    "deals",
    "business_subscriptions",
    "vendor_ownerships",
    "businesses",
    "user_identities",
)

TRUNCATE_SQL = f"TRUNCATE TABLE {', '.join(TRUNCATE_TABLES)} RESTART IDENTITY CASCADE"

_schema_ready = False


@pytest.fixture(scope="session", autouse=True)
def guard_integration_db_target() -> None:
    assert_safe_integration_db(str(engine.url))


async def _ensure_schema() -> None:
    global _schema_ready
    if _schema_ready:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for statement in [*drop_statements(), *create_statements()]:
            await conn.execute(text(statement))
    _schema_ready = True


@pytest.fixture(autouse=True)
async def cleanup_db() -> None:
    # Dispose pooled connections between tests to avoid cross-event-loop asyncpg reuse.
    await engine.dispose()

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:  # pragma: no cover - environment-dependent
        pytest.skip(f"Postgres is required for integration tests: {exc}")

    await _ensure_schema()
    # TRUNCATE does not fire the row-level append-only triggers.
    async with engine.begin() as conn:
        await conn.execute(text(TRUNCATE_SQL))

    yield

    await engine.dispose()
