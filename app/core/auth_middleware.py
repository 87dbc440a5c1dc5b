import logging

from fastapi import Depends, Request

from app.core.config import get_settings
from app.core.errors import AuthError
from app.db.redis import get_token_store
from app.modules.auth.service import MagicLinkManager, SessionManager, SessionRecord
from app.stores.token_store import TokenStore


logger = logging.getLogger("app.auth")
settings = get_settings()


def get_token_from_cookie(request: Request) -> str | None:
    return request.cookies.get(settings.session_cookie_name)


async def session_cookie_middleware(request: Request, call_next):
    request.state.session_token = get_token_from_cookie(request)
    return await call_next(request)


def get_session_manager(store: TokenStore = Depends(get_token_store)) -> SessionManager:
    return SessionManager(store)


def get_magic_link_manager(store: TokenStore = Depends(get_token_store)) -> MagicLinkManager:
    return MagicLinkManager(store)


def get_request_token(request: Request) -> str | None:
    return getattr(request.state, "session_token", None) or get_token_from_cookie(request)


async def require_session(
    request: Request,
    sessions: SessionManager = Depends(get_session_manager),
) -> SessionRecord:
    token = get_request_token(request)
    if not token:
        raise AuthError("Not authenticated")

    record = await sessions.validate(token)
    if record is None:
        raise AuthError()
    return record
