"""
Database handle for the Orders Service.

Uses SQLAlchemy async engine (aiosqlite for local/test, any async driver in
production). The handle is constructed explicitly, opened once on startup and
closed on shutdown, then injected into the services that need it.
"""
import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""
    pass


def to_async_url(url: str) -> str:
    """Convert sqlite:///... → sqlite+aiosqlite:///... for the async driver."""
    if url.startswith("sqlite:///"):
        return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
    return url


class Database:
    """Explicit open/close lifecycle around an async engine and session factory."""

    def __init__(self, url: str, *, echo: bool = False):
        self.url = to_async_url(url)
        self.echo = echo
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    async def open(self, *, create_tables: bool = True) -> None:
        """Create the engine and (optionally) all tables."""
        if self._engine is not None:
            return

        engine_kwargs = {}
        if ":memory:" in self.url:
            # A single shared connection keeps the in-memory DB alive
            engine_kwargs = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }

        self._engine = create_async_engine(self.url, echo=self.echo, future=True, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )

        if create_tables:
            # Import models so Base.metadata knows about them
            import db_models  # noqa: F401

            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created (or already exist)")

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database connection closed")

    def session(self) -> AsyncSession:
        """New session for one unit of work. Use as an async context manager."""
        if self._sessionmaker is None:
            raise RuntimeError("Database is not open")
        return self._sessionmaker()

    async def ping(self) -> bool:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True


# ── Default handle ──────────────────────────────────────────────────

database = Database(settings.database_url, echo=settings.database_echo)

