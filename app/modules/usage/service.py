"""Per-user ledger of metered AI calls and the sliding-window limiter on top.

The limiter is a pre-check: callers run ``check_rate_limit`` before the gated
action and ``record_usage`` only after it succeeded. The two steps are not
atomic, so concurrent requests from one user can each see the same count and
be admitted together. This is accepted as a soft anti-abuse limit; it is not
a billing cap.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.db.models import AIUsageRecord


logger = logging.getLogger("app.usage")

DEFAULT_WINDOW_MINUTES = 5


class AIEndpoint(str, enum.Enum):
    AUTOFILL = "autofill"
    IMPROVE = "improve"
    VALIDATE = "validate"


@dataclass(frozen=True)
class UsageStats:
    count: int
    total_tokens: int
    total_cost: float


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    remaining: int
    reset_at: datetime


def _as_uuid(user_id) -> uuid.UUID:
    return user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))


def evaluate_window(
    count: int,
    oldest_created_at: datetime | None,
    max_requests: int,
    window_minutes: int,
    now: datetime,
) -> RateLimitStatus:
    window = timedelta(minutes=window_minutes)
    reset_at = oldest_created_at + window if oldest_created_at is not None else now + window
    return RateLimitStatus(
        allowed=count < max_requests,
        remaining=max(0, max_requests - count),
        reset_at=reset_at,
    )


async def record_usage(
    session: AsyncSession,
    user_id,
    endpoint: AIEndpoint,
    tokens_used: int,
    cost_estimate: float,
    now: datetime | None = None,
) -> AIUsageRecord:
    record = AIUsageRecord(
        user_id=_as_uuid(user_id),
        endpoint=AIEndpoint(endpoint).value,
        tokens_used=tokens_used,
        cost_estimate=Decimal(str(cost_estimate)),
        created_at=now or utcnow(),
    )
    session.add(record)
    await session.flush()
    logger.debug("Recorded %s usage for user=%s tokens=%s", record.endpoint, user_id, tokens_used)
    return record


async def get_window_stats(
    session: AsyncSession,
    user_id,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    now: datetime | None = None,
) -> UsageStats:
    window_start = (now or utcnow()) - timedelta(minutes=window_minutes)
    stmt = select(
        func.count(AIUsageRecord.id),
        func.coalesce(func.sum(AIUsageRecord.tokens_used), 0),
        func.coalesce(func.sum(AIUsageRecord.cost_estimate), 0),
    ).where(
        AIUsageRecord.user_id == _as_uuid(user_id),
        AIUsageRecord.created_at > window_start,
    )
    result = await session.execute(stmt)
    count, total_tokens, total_cost = result.one()
    return UsageStats(
        count=int(count or 0),
        total_tokens=int(total_tokens or 0),
        total_cost=float(total_cost or 0),
    )


async def get_oldest_in_window(
    session: AsyncSession,
    user_id,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    now: datetime | None = None,
) -> datetime | None:
    window_start = (now or utcnow()) - timedelta(minutes=window_minutes)
    stmt = select(func.min(AIUsageRecord.created_at)).where(
        AIUsageRecord.user_id == _as_uuid(user_id),
        AIUsageRecord.created_at > window_start,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def check_rate_limit(
    session: AsyncSession,
    user_id,
    max_requests: int,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    now: datetime | None = None,
) -> RateLimitStatus:
    now = now or utcnow()
    stats = await get_window_stats(session, user_id, window_minutes, now=now)
    oldest = await get_oldest_in_window(session, user_id, window_minutes, now=now) if stats.count else None
    status = evaluate_window(stats.count, oldest, max_requests, window_minutes, now)
    if not status.allowed:
        logger.info("Rate limit reached for user=%s count=%s reset_at=%s", user_id, stats.count, status.reset_at)
    return status
