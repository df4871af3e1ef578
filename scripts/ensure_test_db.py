from __future__ import annotations

import asyncio

import asyncpg
from sqlalchemy.engine import make_url

from dealvault.core.config import get_settings
from dealvault.core.integration_db_safety import assess_integration_db_safety


async def _ensure_database_exists(database_url: str) -> str:
    verdict = assess_integration_db_safety(database_url)
    if not verdict.is_safe:
        raise RuntimeError(f"Refusing to create database: {verdict.reason}")

    parsed = make_url(database_url)
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")
    db_name = verdict.target.database_name
    if not db_name.replace("_", "").isalnum():
        raise RuntimeError(f"Unsupported database name '{db_name}'.")

    conn = await asyncpg.connect(
        host=parsed.host or "localhost",
        port=int(parsed.port or 5432),
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return f"exists db={db_name}"
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return f"created db={db_name}"
    finally:
        await conn.close()


def main() -> int:
    outcome = asyncio.run(_ensure_database_exists(get_settings().database_url))
    print(f"ensure_test_db: {outcome}")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
