"""Database configuration and session management."""

from typing import Tuple

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

DATABASE_URL = "sqlite+aiosqlite:///./autotrader.db"

Base = declarative_base()


def create_session_maker(database_url: str = DATABASE_URL) -> Tuple[AsyncEngine, async_sessionmaker]:
    """Create an async engine and its session factory for ``database_url``."""
    engine = create_async_engine(database_url, echo=False)
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    return engine, session_maker


async def init_db(engine: AsyncEngine) -> None:
    """Initialize the database, creating all tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
