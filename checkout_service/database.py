from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
import logging

from . import config

logger = logging.getLogger(__name__)

Base = declarative_base()


def create_engine(database_url: str = config.DATABASE_URL, echo: bool = False) -> AsyncEngine:
    # Hide password
    logger.info(f"Creating engine with URL: {database_url.replace(config.DATABASE_PASSWORD, '***')}")
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Use async_sessionmaker for SQLAlchemy 2.0+
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Development/testing only. Use a migration tool in production."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables check complete.")
