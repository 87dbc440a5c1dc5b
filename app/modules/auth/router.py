import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_middleware import (
    get_magic_link_manager,
    get_request_token,
    get_session_manager,
    require_session,
)
from app.core.config import get_settings
from app.core.errors import AuthError, StoreError
from app.core.schemas import ApiResponse
from app.db.postgres import get_db_session
from app.modules.auth.schemas import AuthStartData, AuthStartRequest, SessionData
from app.modules.auth.service import (
    MagicLinkManager,
    SessionManager,
    SessionRecord,
    build_magic_link,
    find_or_create_user,
    get_user_by_email,
    log_magic_link,
    normalize_email,
)


router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("app.auth")
settings = get_settings()

LOGIN_PATH = "/login"
FORM_PATH = "/form"


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        settings.session_cookie_name,
        token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.cookie_samesite,
        domain=settings.cookie_domain,
        max_age=settings.session_ttl_seconds,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(settings.session_cookie_name, path="/", domain=settings.cookie_domain)


def _login_redirect(error_code: str) -> RedirectResponse:
    return RedirectResponse(f"{LOGIN_PATH}?{urlencode({'error': error_code})}")


@router.post("/start", response_model=ApiResponse[AuthStartData], response_model_exclude_none=True)
async def start_auth(
    payload: AuthStartRequest,
    session: AsyncSession = Depends(get_db_session),
    magic_links: MagicLinkManager = Depends(get_magic_link_manager),
):
    email = normalize_email(payload.email)

    await find_or_create_user(session, email)
    token = await magic_links.issue(email)
    link = build_magic_link(token)

    # Delivery is handed off to an external channel; the log line stands in for it
    log_magic_link(email, link)

    data = AuthStartData(email=email, magic_link=link if settings.expose_magic_link else None)
    return ApiResponse(data=data)


@router.get("/verify")
async def verify_magic_link(
    token: str | None = None,
    session: AsyncSession = Depends(get_db_session),
    magic_links: MagicLinkManager = Depends(get_magic_link_manager),
    sessions: SessionManager = Depends(get_session_manager),
):
    if not token:
        return _login_redirect("invalid_token")

    try:
        email = await magic_links.redeem(token)
        if not email:
            return _login_redirect("expired_token")

        user = await get_user_by_email(session, email)
        if not user:
            logger.warning("Verified magic link for unknown user %s", email)
            return _login_redirect("user_not_found")

        session_token = await sessions.create(str(user.id), user.email)
    except (StoreError, SQLAlchemyError):
        logger.exception("Store unavailable during magic link verification")
        return _login_redirect("server_error")
    except Exception:
        logger.exception("Magic link verification failed")
        return _login_redirect("verification_failed")

    response = RedirectResponse(FORM_PATH)
    set_session_cookie(response, session_token)
    return response


@router.get("/session", response_model=ApiResponse[SessionData], response_model_exclude_none=True)
async def get_session(current: SessionRecord = Depends(require_session)):
    data = SessionData(
        user_id=current.user_id,
        email=current.email,
        expires_at=int(current.expires_at.timestamp() * 1000),
    )
    return ApiResponse(data=data)


@router.post("/refresh", response_model=ApiResponse[SessionData], response_model_exclude_none=True)
async def refresh_session(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
):
    token = get_request_token(request)
    if not token:
        raise AuthError("Not authenticated")

    new_token = await sessions.refresh(token)
    if not new_token:
        raise AuthError()

    current = await sessions.validate(new_token)
    if current is None:
        raise AuthError()

    set_session_cookie(response, new_token)
    data = SessionData(
        user_id=current.user_id,
        email=current.email,
        expires_at=int(current.expires_at.timestamp() * 1000),
    )
    return ApiResponse(data=data, message="Session refreshed")


@router.post("/logout", response_model=ApiResponse[None], response_model_exclude_none=True)
async def logout(
    request: Request,
    response: Response,
    sessions: SessionManager = Depends(get_session_manager),
):
    token = get_request_token(request)
    if token:
        await sessions.delete(token)

    clear_session_cookie(response)
    return ApiResponse(message="Logged out successfully")
