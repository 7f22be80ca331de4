"""
Database Configuration for the Entitlements Service

Async SQLAlchemy engine and session management.

PostgreSQL (asyncpg) is the production target. SQLite (aiosqlite) is
accepted for local runs and tests; it is configured so that foreign-key
cascades and SAVEPOINTs behave the way the ledger relies on.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
    AsyncEngine,
)

from app.config.settings import settings
from app.infrastructure.exceptions import ConfigurationError, TransientError


def normalize_database_url(database_url: str) -> str:
    """Force the asyncpg driver on plain PostgreSQL URLs."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return database_url


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    Enable foreign keys and real SAVEPOINTs on a SQLite engine.

    pysqlite opens transactions lazily and ignores foreign keys by default;
    the one-active retry needs SAVEPOINT and user deletion needs CASCADE.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Sessions keep loaded attributes after commit; flushes are explicit."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


class DatabaseManager:
    """
    Owns the process-wide engine and session factory.

    Singleton so every request shares one connection pool.
    """

    _instance: Optional["DatabaseManager"] = None
    _engine: Optional[AsyncEngine] = None
    _session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        if not settings.database_url:
            raise ConfigurationError(
                "DATABASE_URL is required",
                missing_keys=["DATABASE_URL"],
            )

        database_url = normalize_database_url(settings.database_url)

        if database_url.startswith("sqlite"):
            self._engine = create_async_engine(database_url, echo=settings.database_echo)
            configure_sqlite(self._engine)
        else:
            self._engine = create_async_engine(
                database_url,
                echo=settings.database_echo,
                pool_pre_ping=True,
                pool_size=settings.database_pool_size,
                max_overflow=settings.database_max_overflow,
                pool_timeout=settings.database_pool_timeout,
            )

        self._session_factory = build_session_factory(self._engine)

    async def close(self) -> None:
        """Dispose of the pool; the next access reconnects."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


# Global instance (lazy initialization)
_db_manager: Optional[DatabaseManager] = None


def get_db_manager() -> DatabaseManager:
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session; one per request, shared by every service.

    Commits what the handler left pending and rolls back on error.
    Connection-level failures surface as TransientError (503).
    """
    db = get_db_manager()
    async with db.session_factory() as session:
        try:
            yield session
            await session.commit()
        except OperationalError as e:
            await session.rollback()
            raise TransientError("Database unavailable", operation="session", original_error=e)
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context() -> AsyncGenerator[AsyncSession, None]:
    """
    Session for scripts and jobs outside a request.

    Usage:
        async with get_session_context() as session:
            await PlanCatalogService(session).list_plans()
    """
    db = get_db_manager()
    async with db.session_factory() as session:
        try:
            yield session
            await session.commit()
        except OperationalError as e:
            await session.rollback()
            raise TransientError("Database unavailable", operation="session", original_error=e)
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Verify connectivity on startup."""
    db = get_db_manager()
    async with db.session_factory() as session:
        await session.execute(text("SELECT 1"))


async def close_db() -> None:
    db = get_db_manager()
    await db.close()
