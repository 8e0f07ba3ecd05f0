# carsearch/db/session.py
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.pool import NullPool
from carsearch.config import settings
from carsearch.db.base_class import Base

# Settings already normalized the URL to postgresql+psycopg://
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    poolclass=NullPool,  # NullPool is recommended with PgBouncer
    connect_args={
        "application_name": "carsearch",
        "prepare_threshold": None,  # Disable prepared statements
    }
)

async_session_factory = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

async def init_db():
    """Initialize database tables."""
    # Models must be imported so their tables are registered on Base.metadata
    from carsearch.db import models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def close_db():
    """Close database engine and clean up connections."""
    await engine.dispose()
