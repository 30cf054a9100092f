"""
Database session management with SQLAlchemy async
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    future=True
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Get database session"""
    async with async_session_maker() as session:
        yield session


async def init_models(bind: AsyncEngine = engine) -> None:
    """Create all import tables that do not exist yet."""
    # Register models on the metadata before create_all
    from models.base import Base
    import models.import_configuration  # noqa: F401
    import models.import_execution_history  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Import tables created")
