import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.errors import RateLimitError
from app.modules.ai.client import Generation, TextGenerationClient
from app.modules.usage.service import AIEndpoint, check_rate_limit, record_usage


logger = logging.getLogger("app.ai")
settings = get_settings()


async def run_metered(
    session: AsyncSession,
    user_id: str,
    endpoint: AIEndpoint,
    client: TextGenerationClient,
    prompt: str,
) -> tuple[Generation, int]:
    """Run one gated generation and return it with the remaining allowance."""
    now = utcnow()
    limit = await check_rate_limit(
        session,
        user_id,
        settings.ai_rate_limit_max,
        settings.ai_rate_limit_window_minutes,
        now=now,
    )
    if not limit.allowed:
        raise RateLimitError(limit.reset_at, now=now)

    generation = await client.generate(prompt)

    await record_usage(
        session,
        user_id,
        endpoint,
        generation.tokens_used,
        client.estimate_cost(generation.tokens_used),
    )
    await session.commit()

    logger.info("AI %s call for user=%s tokens=%s", endpoint.value, user_id, generation.tokens_used)
    return generation, max(0, limit.remaining - 1)
