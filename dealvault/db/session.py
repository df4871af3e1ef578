from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from dealvault.core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=10,
)
SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

# Same pool, every connection checked out through it runs SERIALIZABLE.
serializable_engine = engine.execution_options(isolation_level="SERIALIZABLE")
SerializableSessionLocal = async_sessionmaker(
    bind=serializable_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def dispose_engine() -> None:
    await engine.dispose()


async def _apply_transaction_timeouts(
    session: AsyncSession,
    *,
    lock_timeout_ms: int,
    statement_timeout_ms: int,
) -> None:
    await session.execute(
        text("SELECT set_config('lock_timeout', :value, true)"),
        {"value": f"{int(lock_timeout_ms)}ms"},
    )
    await session.execute(
        text("SELECT set_config('statement_timeout', :value, true)"),
        {"value": f"{int(statement_timeout_ms)}ms"},
    )


@asynccontextmanager
async def serializable_transaction(
    *,
    lock_timeout_ms: int | None = None,
    statement_timeout_ms: int | None = None,
) -> AsyncIterator[AsyncSession]:
    """Open one SERIALIZABLE transaction with bounded lock wait and statement time.

    Commits when the block exits normally, rolls back on any exception.
    """
    current = get_settings()
    async with SerializableSessionLocal.begin() as session:
        await _apply_transaction_timeouts(
            session,
            lock_timeout_ms=lock_timeout_ms or current.voucher_tx_lock_timeout_ms,
            statement_timeout_ms=statement_timeout_ms or current.voucher_tx_statement_timeout_ms,
        )
        yield session
