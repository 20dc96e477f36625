from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from storyjobs.config.settings import Settings, get_settings
from storyjobs.v1.core.exceptions import ConfigurationError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class Database:
    """Database connection and session management."""

    def __init__(self, settings: Settings):
        if not settings.database_url:
            raise ConfigurationError(
                "DATABASE_URL must be set for the job store",
                details={"setting": "database_url"},
            )

        self.settings = settings
        engine_kwargs = {"echo": settings.debug and settings.log_level == "DEBUG"}
        if not settings.is_sqlite:
            # SQLite uses a single-connection pool without sizing options
            engine_kwargs.update(
                pool_size=settings.db_pool_size,
                max_overflow=settings.db_max_overflow,
                pool_timeout=settings.db_pool_timeout,
                pool_recycle=settings.db_pool_recycle,
            )

        try:
            self.engine = create_async_engine(settings.database_url, **engine_kwargs)
        except (ArgumentError, ModuleNotFoundError) as e:
            raise ConfigurationError(
                "Invalid DATABASE_URL for the job store",
                details={"error": str(e)},
            ) from e

        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create tables directly, for local SQLite stores without migrations."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """Close database connections."""
        await self.engine.dispose()


# Global database instance
_database: Database | None = None


def get_database(settings: Settings = Depends(get_settings)) -> Database:
    """Get or create the global database instance."""
    global _database
    if _database is None:
        _database = Database(settings)
    return _database


async def get_session(
    database: Database = Depends(get_database),
) -> AsyncGenerator[AsyncSession, None]:
    """Dependency injection for database sessions."""
    async with database.SessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

