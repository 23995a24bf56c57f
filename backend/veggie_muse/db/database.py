"""
Async engine and session factory for the History Ledger store.

Hosted Postgres usually hands out ``postgres://`` or ``postgresql://`` URLs;
those are rewritten to the asyncpg driver. Any other URL (sqlite+aiosqlite in
tests) is used as given.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

# The engine is built at import time, before the app module runs its own load_dotenv.
load_dotenv(override=True)

_ASYNC_DRIVER_PREFIXES = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
}


def async_database_url(url: str) -> str:
    for prefix, replacement in _ASYNC_DRIVER_PREFIXES.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


DATABASE_URL = async_database_url(os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost/veggie_muse"))

engine = create_async_engine(
    DATABASE_URL,
    echo=os.getenv("SQL_ECHO", "").lower() in ("1", "true", "yes"),
    pool_pre_ping=True,
)
ledger_session_factory = async_sessionmaker(engine, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request."""
    async with ledger_session_factory() as session:
        yield session
