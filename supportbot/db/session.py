"""
DATABASE SESSION MANAGEMENT
===========================

The store is reached through one `Database` object built at process start
(see `main.lifespan`) and injected into every repository. Nothing below
creates an engine at import time.

SESSION USAGE
-------------

**Repositories** take an optional session and wrap their work in
`database.session(session)`:

```python
class ChatRepository:
    def __init__(self, database: Database):
        self.database = database

    async def count_turns(self, chat_id: str, session: AsyncSession = None) -> int:
        async with self.database.session(session) as db:
            ...
```

- With a session passed in, the caller owns commit/rollback/close.
- Without one, a fresh session is opened, committed on success, rolled back
  on error and closed.

**FastAPI routes** that need raw access use `get_db`, which pulls the
`Database` off `request.app.state.services`.

ENVIRONMENT VARIABLES
---------------------

- DATABASE_URL: connection string; postgresql:// is rewritten to postgresql+asyncpg://
- SQL_NULLPOOL: NullPool (true) or QueuePool (false), default true
- SQL_POOL_SIZE / SQL_MAX_OVERFLOW / SQL_POOL_TIMEOUT / SQL_POOL_RECYCLE
- SQL_ECHO: log all SQL statements
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from .base import Base

logger = logging.getLogger("supportbot.db.session")


def normalize_database_url(url: str) -> str:
    """Route plain PostgreSQL URLs through the asyncpg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


class Database:
    """Owns the async engine and session factory for one process."""

    def __init__(self, url: str, *, nullpool: bool = True, pool_size: int = 5,
                 max_overflow: int = 10, pool_timeout: int = 30,
                 pool_recycle: int = 1800, echo: bool = False):
        if not url:
            raise RuntimeError("DATABASE_URL is not set. Configure it in .env or the environment.")
        self.url = normalize_database_url(url)

        engine_kwargs: Dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
        # SQLite (tests, local dev) keeps SQLAlchemy's default pool
        if not self.url.startswith("sqlite"):
            if nullpool:
                engine_kwargs["poolclass"] = NullPool
            else:
                engine_kwargs.update({
                    "pool_size": pool_size,
                    "max_overflow": max_overflow,
                    "pool_timeout": pool_timeout,
                    "pool_recycle": pool_recycle,
                })

        self.engine: AsyncEngine = create_async_engine(self.url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_config(cls, db_config: Dict[str, Any]) -> "Database":
        return cls(
            db_config["url"],
            nullpool=db_config.get("nullpool", True),
            pool_size=db_config.get("pool_size", 5),
            max_overflow=db_config.get("max_overflow", 10),
            pool_timeout=db_config.get("pool_timeout", 30),
            pool_recycle=db_config.get("pool_recycle", 1800),
            echo=db_config.get("echo", False),
        )

    @asynccontextmanager
    async def session(self, session: Optional[AsyncSession] = None):
        """
        Async context manager used by repositories.
        - If an existing session is provided, yields it without managing lifecycle.
        - If none is provided, creates a session and handles commit/rollback/close.
        """
        if session is not None:
            yield session
            return
        async with self.session_factory() as s:
            try:
                yield s
                await s.commit()
            except Exception:
                await s.rollback()
                raise

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    async def dispose(self) -> None:
        await self.engine.dispose()


async def init_db(database: Database) -> None:
    """Create any missing tables for the registered models."""
    # Import models so their tables are registered on Base.metadata
    from . import models  # noqa: F401

    async with database.engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ready")


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency yielding a session from the injected Database.

    Usage:
        @router.get("/items/")
        async def read_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    database: Database = request.app.state.services["database"]
    async with database.session() as session:
        yield session
