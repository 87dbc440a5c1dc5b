"""Tests for the usage ledger and sliding-window rate limiter."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app.core.errors import RateLimitError
from app.db.models import AIUsageRecord
from app.modules.usage.service import (
    AIEndpoint,
    check_rate_limit,
    evaluate_window,
    get_window_stats,
    record_usage,
)


T0 = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
USER_ID = "6f1c2f4e-6f53-4a4f-8f4a-2d1d8f7f0c11"


def _check(ledger: list[datetime], now: datetime, max_requests: int = 10, window_minutes: int = 5):
    """Evaluate the limiter the way the SQL queries see ``ledger`` at ``now``."""
    window_start = now - timedelta(minutes=window_minutes)
    in_window = [ts for ts in ledger if ts > window_start]
    return evaluate_window(len(in_window), min(in_window, default=None), max_requests, window_minutes, now)


@pytest.mark.unit
def test_limit_reached_then_recovers_one_at_a_time():
    ledger = [T0 + timedelta(seconds=6 * i) for i in range(10)]

    blocked = _check(ledger, T0 + timedelta(minutes=1))
    assert blocked.allowed is False
    assert blocked.remaining == 0
    assert blocked.reset_at == T0 + timedelta(minutes=5)

    recovered = _check(ledger, T0 + timedelta(minutes=5, seconds=1))
    assert recovered.allowed is True
    assert recovered.remaining == 1


@pytest.mark.unit
def test_allowed_again_at_reported_reset_time():
    ledger = [T0 + timedelta(seconds=30 * i) for i in range(10)]
    now = T0 + timedelta(minutes=4, seconds=40)

    blocked = _check(ledger, now)
    assert not blocked.allowed

    assert _check(ledger, blocked.reset_at).allowed
    assert _check(ledger, blocked.reset_at + timedelta(seconds=1)).allowed


@pytest.mark.unit
def test_empty_window_resets_a_full_window_from_now():
    status = _check([], T0)

    assert status.allowed is True
    assert status.remaining == 10
    assert status.reset_at == T0 + timedelta(minutes=5)


@pytest.mark.unit
def test_remaining_never_negative():
    ledger = [T0 + timedelta(seconds=i) for i in range(12)]

    status = _check(ledger, T0 + timedelta(seconds=30))

    assert status.remaining == 0
    assert not status.allowed


@pytest.mark.unit
async def test_check_rate_limit_queries_window(mock_session):
    oldest = T0 - timedelta(minutes=3)
    stats_result = MagicMock()
    stats_result.one.return_value = (10, 1500, 0.00015)
    oldest_result = MagicMock()
    oldest_result.scalar_one_or_none.return_value = oldest
    mock_session.execute.side_effect = [stats_result, oldest_result]

    status = await check_rate_limit(mock_session, USER_ID, max_requests=10, window_minutes=5, now=T0)

    assert status.allowed is False
    assert status.remaining == 0
    assert status.reset_at == oldest + timedelta(minutes=5)
    assert mock_session.execute.await_count == 2


@pytest.mark.unit
async def test_check_rate_limit_skips_oldest_lookup_when_window_empty(mock_session):
    status = await check_rate_limit(mock_session, USER_ID, max_requests=10, now=T0)

    assert status.allowed is True
    assert status.remaining == 10
    assert status.reset_at == T0 + timedelta(minutes=5)
    assert mock_session.execute.await_count == 1


@pytest.mark.unit
async def test_window_stats_aggregates(mock_session):
    mock_session.execute.return_value.one.return_value = (3, 900, 0.00009)

    stats = await get_window_stats(mock_session, USER_ID, 5, now=T0)

    assert stats.count == 3
    assert stats.total_tokens == 900
    assert stats.total_cost == pytest.approx(0.00009)


@pytest.mark.unit
async def test_record_usage_appends_entry(mock_session):
    record = await record_usage(mock_session, USER_ID, AIEndpoint.IMPROVE, 250, 0.000025, now=T0)

    mock_session.add.assert_called_once()
    added = mock_session.add.call_args.args[0]
    assert isinstance(added, AIUsageRecord)
    assert added is record
    assert record.endpoint == "improve"
    assert record.tokens_used == 250
    assert record.created_at == T0


@pytest.mark.unit
async def test_record_usage_rejects_unknown_endpoint(mock_session):
    with pytest.raises(ValueError):
        await record_usage(mock_session, USER_ID, "summarize", 1, 0.0)


@pytest.mark.unit
def test_rate_limit_error_body():
    error = RateLimitError(T0 + timedelta(seconds=90, milliseconds=200), now=T0)

    body = error.to_body()

    assert error.status_code == 429
    assert body["success"] is False
    assert body["resetIn"] == 91
    assert body["resetAt"] == int((T0 + timedelta(seconds=90, milliseconds=200)).timestamp() * 1000)
