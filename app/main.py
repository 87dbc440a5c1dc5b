import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from app.core.auth_middleware import session_cookie_middleware
from app.core.config import get_settings
from app.core.errors import register_exception_handlers
from app.db.postgres import engine
from app.db.redis import close_redis, redis_client
from app.modules.ai.router import router as ai_router
from app.modules.auth.router import router as auth_router
from app.modules.forms.router import router as forms_router
from app.modules.usage.router import router as usage_router


settings = get_settings()
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Warm up connections to fail fast on misconfig
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    if settings.token_store_backend == "redis":
        await redis_client.ping()

    yield

    await close_redis()
    await engine.dispose()


def create_app(use_lifespan: bool = True) -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        debug=settings.debug,
        lifespan=lifespan if use_lifespan else None,
    )
    application.middleware("http")(session_cookie_middleware)
    register_exception_handlers(application)

    application.include_router(auth_router)
    application.include_router(forms_router)
    application.include_router(usage_router)
    application.include_router(ai_router)

    @application.get("/health")
    async def healthcheck():
        return {"status": "ok"}

    return application


app = create_app()
