# school_results/core/database.py
"""Database connection and session management using SQLAlchemy."""
import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from .config import Settings

logger = logging.getLogger(__name__)


def enable_sqlite_transactions(engine: AsyncEngine):
    """Let SQLAlchemy emit BEGIN itself so SQLite savepoints nest correctly."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


class Database:
    """Owns the async engine and session factory for one process.

    Opened in the application lifespan and disposed at shutdown; components
    receive sessions through ``get_db`` rather than importing an engine.
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, **engine_kwargs)
        self.session_factory = async_sessionmaker(
            self.engine,
            expire_on_commit=False,
            class_=AsyncSession,
            autoflush=False,  # Manual control over flushing
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        if settings.is_sqlite:
            # File-backed SQLite is used for local runs and tests
            database = cls(settings.database_url, poolclass=NullPool, echo=settings.db_echo)
            enable_sqlite_transactions(database.engine)
            return database

        return cls(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            pool_recycle=settings.db_pool_recycle,
            pool_pre_ping=True,
            echo=settings.db_echo,
            connect_args={
                "command_timeout": 60,
                "server_settings": {
                    "application_name": settings.app_name,
                    "statement_timeout": "60s",
                    "idle_in_transaction_session_timeout": "60s",  # Prevent hanging transactions
                    "lock_timeout": "30s",  # Prevent long waits on row locks
                },
            },
        )

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def health_check(self) -> bool:
        """Fast health check"""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    async def create_all(self):
        """Create every table from model metadata (local development and tests)"""
        from ..models import Base

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def dispose(self):
        await self.engine.dispose()
        logger.info("Database connections closed")


def get_database(request: Request) -> Database:
    database: Optional[Database] = getattr(request.app.state, "db", None)
    if database is None:
        raise RuntimeError("Database is not initialised; is the application lifespan running?")
    return database


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for API requests with proper error handling"""
    database = get_database(request)
    async with database.session() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise
