import enum
import logging
import secrets
from datetime import datetime, timedelta

from pydantic import BaseModel, ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, utcnow
from app.core.config import get_settings
from app.core.errors import StoreError
from app.db.models import User
from app.stores.token_store import TokenStore


logger = logging.getLogger("app.auth")

MAGIC_LINK_PREFIX = "magic:"
SESSION_PREFIX = "session:"

settings = get_settings()


class TokenFailure(str, enum.Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MALFORMED = "malformed"


class MagicLinkRecord(BaseModel):
    email: str
    expires_at: datetime


class SessionRecord(BaseModel):
    user_id: str
    email: str
    expires_at: datetime


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _generate_token() -> str:
    return secrets.token_urlsafe(32)


def _ttl_seconds(expires_at: datetime, now: datetime) -> int:
    return max(1, int((expires_at - now).total_seconds()))


class MagicLinkManager:
    """Issues single-use login tokens bound to an email address."""

    def __init__(
        self,
        store: TokenStore,
        ttl_minutes: int = settings.magic_link_ttl_minutes,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    async def issue(self, email: str) -> str:
        token = _generate_token()
        now = self.clock()
        record = MagicLinkRecord(email=normalize_email(email), expires_at=now + self.ttl)
        await self.store.put(
            MAGIC_LINK_PREFIX + token,
            record.model_dump_json(),
            _ttl_seconds(record.expires_at, now),
        )
        return token

    async def redeem(self, token: str) -> str | None:
        # pop consumes the token before the expiry check, so an expired
        # entry is removed on the way out as well
        raw = await self.store.pop(MAGIC_LINK_PREFIX + token)
        if raw is None:
            return self._reject(TokenFailure.NOT_FOUND)

        try:
            record = MagicLinkRecord.model_validate_json(raw)
        except PydanticValidationError:
            return self._reject(TokenFailure.MALFORMED)

        if record.expires_at < self.clock():
            return self._reject(TokenFailure.EXPIRED)

        return record.email

    @staticmethod
    def _reject(reason: TokenFailure) -> None:
        logger.info("Magic link rejected: reason=%s", reason.value)
        return None


class SessionManager:
    """Opaque bearer sessions with absolute expiry."""

    def __init__(
        self,
        store: TokenStore,
        ttl_hours: int = settings.session_ttl_hours,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)
        self.clock = clock

    async def create(self, user_id: str, email: str) -> str:
        token = _generate_token()
        now = self.clock()
        record = SessionRecord(user_id=str(user_id), email=email, expires_at=now + self.ttl)
        await self.store.put(
            SESSION_PREFIX + token,
            record.model_dump_json(),
            _ttl_seconds(record.expires_at, now),
        )
        return token

    def _parse(self, raw: str | None) -> tuple[SessionRecord | None, TokenFailure | None]:
        if raw is None:
            return None, TokenFailure.NOT_FOUND
        try:
            record = SessionRecord.model_validate_json(raw)
        except PydanticValidationError:
            return None, TokenFailure.MALFORMED
        if record.expires_at < self.clock():
            return None, TokenFailure.EXPIRED
        return record, None

    async def validate(self, token: str) -> SessionRecord | None:
        key = SESSION_PREFIX + token
        record, failure = self._parse(await self.store.get(key))
        if failure is None:
            return record

        if failure is not TokenFailure.NOT_FOUND:
            await self.store.delete(key)
        logger.info("Session rejected: reason=%s", failure.value)
        return None

    async def delete(self, token: str) -> None:
        await self.store.delete(SESSION_PREFIX + token)

    async def refresh(self, token: str) -> str | None:
        """Rotate a valid session.

        The old token is consumed before the new one is issued, so at most
        one of them is ever valid. If the new session cannot be stored the
        old record is put back before the error propagates.
        """
        key = SESSION_PREFIX + token
        raw = await self.store.pop(key)
        record, failure = self._parse(raw)
        if failure is not None:
            logger.info("Session refresh rejected: reason=%s", failure.value)
            return None

        try:
            return await self.create(record.user_id, record.email)
        except StoreError:
            logger.warning("Session refresh failed, restoring previous session")
            await self.store.put(key, raw, _ttl_seconds(record.expires_at, self.clock()))
            raise


def log_magic_link(email: str, link: str) -> None:
    logger.info("Magic link generated for %s: %s", email, link)


def build_magic_link(token: str) -> str:
    return f"{settings.public_base_url.rstrip('/')}/api/auth/verify?token={token}"


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    stmt = select(User).where(User.email == normalize_email(email))
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def find_or_create_user(session: AsyncSession, email: str) -> User:
    email = normalize_email(email)
    user = await get_user_by_email(session, email)
    if user:
        return user

    user = User(email=email)
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        # concurrent first login for the same address
        await session.rollback()
        user = await get_user_by_email(session, email)
        if user is None:
            raise
        return user

    logger.info("Created user for %s", email)
    return user
