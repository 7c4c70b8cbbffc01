"""
Database utilities and connection management
"""

import os
import logging
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from typing import AsyncGenerator, Dict, Any

logger = logging.getLogger(__name__)

# Database URL from environment
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost:5432/plumbprep_db")


def _engine_options(url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "echo": os.getenv("DEBUG", "false").lower() == "true",
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql"):
        options.update(
            pool_recycle=300,
            pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
            max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
        )
    return options


# Create async engine
engine = create_async_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

class Base(DeclarativeBase):
    """Base class for all database models"""
    pass

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session; uncommitted work is rolled back on error"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise

def get_async_session() -> AsyncSession:
    """Session for work outside a request (webhooks, background tasks)"""
    return AsyncSessionLocal()

async def ping_database() -> bool:
    """True if the database answers a trivial query"""
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return False

async def create_tables():
    """Create all database tables (development only, does not seed)"""
    async with engine.begin() as conn:
        # Import all models to ensure they're registered
        from app.models import user, referral, monthly_commission, bulk_enrollment
        await conn.run_sync(Base.metadata.create_all)
