from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from dealvault.db.session import dispose_engine

T = TypeVar("T")


async def _with_fresh_pool(job: Callable[[], Awaitable[T]]) -> T:
    # Pooled connections are bound to the loop that opened them; each
    # asyncio.run gets a new loop, so the pool is reset on both sides.
    await dispose_engine()
    try:
        return await job()
    finally:
        await dispose_engine()


def run_async_job(job: Callable[[], Awaitable[T]]) -> T:
    return asyncio.run(_with_fresh_pool(job))
