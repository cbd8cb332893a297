"""Run async application code from synchronous Celery tasks.

Each task run gets its own event loop (asyncio.run) and therefore its own
engine: pooled async connections are bound to the loop that created them.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import settings
from domain.common.unit_of_work import UnitOfWorkFactory
from infrastructure.database import build_engine
from infrastructure.unit_of_work import uow_factory

T = TypeVar("T")


def run_with_uow(fn: Callable[[UnitOfWorkFactory], Awaitable[T]]) -> T:
    async def _run() -> T:
        engine = build_engine(settings.database.url)
        try:
            session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
            return await fn(uow_factory(session_factory))
        finally:
            await engine.dispose()

    return asyncio.run(_run())
