import logging
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()
logger = logging.getLogger("NotifyQueue.Model")

class Model:
    """Holds the shared async engine and session factory for all models."""

    # This will be set by the application bootstrap
    _engine = None
    _session_factory = None
    _is_enabled = False

    @classmethod
    def configure(cls, connection_string: str, **engine_options):
        """Configure the database connection."""
        cls._engine = create_async_engine(connection_string, **engine_options)
        cls._session_factory = sessionmaker(
            cls._engine, expire_on_commit=False, class_=AsyncSession
        )
        cls._is_enabled = True
        logger.info("Database connection configured")

    @classmethod
    async def cleanup(cls):
        """Cleanup database connections and close the engine."""
        if cls._engine is not None:
            await cls._engine.dispose()
            cls._engine = None
            cls._session_factory = None
            cls._is_enabled = False
            logger.info("Database connections closed")

    @classmethod
    async def get_session(cls) -> Optional[AsyncSession]:
        """Get a new session for database operations."""
        if not cls._is_enabled:
            logger.warning("Database operations attempted while the database is disabled")
            return None

        if cls._session_factory is None:
            raise RuntimeError("Database not configured. Call Model.configure() first.")
        return cls._session_factory()

    @classmethod
    async def create_tables(cls):
        """Create all tables defined in models."""
        if not cls._is_enabled:
            logger.info("Skipping table creation as the database is disabled")
            return

        async with cls._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created")
