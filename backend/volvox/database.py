"""Async SQLAlchemy engine for the record store.

Routes get a session through ``get_db`` and wrap it in a ``RecordStore``:

    @router.get("/posts")
    async def list_posts(db: AsyncSession = Depends(get_db)):
        return await RecordStore(db).list("posts")
"""
import logging

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from volvox.config import settings
from volvox.models import Base

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    # SQLite picks its own pool class
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 10, "max_overflow": 20}


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    pool_pre_ping=True,
    **_engine_options(settings.DATABASE_URL),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(bind: AsyncEngine = engine) -> None:
    """Create the documents table if it does not exist yet."""
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Record store tables ready ({bind.url.get_backend_name()})")


async def get_db():
    """FastAPI dependency that yields an async DB session."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()
