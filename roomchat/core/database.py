# roomchat/core/database.py
"""Database connection and session management using SQLAlchemy."""
from typing import AsyncGenerator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import text
import logging

from .config import Settings

logger = logging.getLogger(__name__)


def build_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine, with pool tuning only where the driver pools connections"""
    if settings.database_url.startswith("postgresql"):
        return create_async_engine(
            settings.database_url,
            pool_size=15,
            max_overflow=25,
            pool_timeout=60,
            pool_recycle=1800,
            pool_pre_ping=True,
            echo=False,
            connect_args={
                "command_timeout": 60,
                "server_settings": {
                    "jit": "off",
                    "application_name": f"{settings.app_name}_api",
                    "idle_in_transaction_session_timeout": "60s",
                    "lock_timeout": "30s",
                }
            }
        )
    return create_async_engine(settings.database_url, echo=False)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession,
        autoflush=False,
    )


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for API requests with proper error handling"""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Database session error: {e}")
            await session.rollback()
            raise


async def create_tables(engine: AsyncEngine):
    from ..models.base import Base
    from .. import models  # noqa: F401  registers every table on Base.metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured")


async def health_check_db(engine: AsyncEngine) -> bool:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False
