from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy import text
from config import settings
from app.database.models import Base
from loguru import logger


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    if url.startswith("sqlite"):
        # sqlite has no server-side pool to tune
        return create_async_engine(url, echo=echo, connect_args={"timeout": 30})

    return create_async_engine(
        url,
        echo=echo,
        pool_size=20,  # connections to keep in pool
        max_overflow=10,  # add connections if pool is exhausted
        pool_timeout=30,  # sec to wait for connection from pool
        pool_recycle=3600,  # recycle connections after 1 hour
        pool_pre_ping=True,  # verify connections before using them
    )


#async engine with connection pooling
engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db(bind: AsyncEngine = engine):
    try:
        async with bind.begin() as conn:
            # test connection
            await conn.execute(text("SELECT 1"))
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database connection successful")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        raise


async def get_session() -> AsyncSession:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def close_db():
    await engine.dispose()
    logger.info("Database connections closed")
