from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.core.config import get_settings


settings = get_settings()

engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_timeout=settings.db_timeout_seconds,
    connect_args={
        "timeout": settings.db_timeout_seconds,
        "command_timeout": settings.db_timeout_seconds,
    },
)

SessionLocal = async_sessionmaker(bind=engine, expire_on_commit=False)


async def get_db_session():
    async with SessionLocal() as session:
        yield session
