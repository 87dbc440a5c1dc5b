from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_middleware import require_session
from app.core.clock import utcnow
from app.core.config import get_settings
from app.core.schemas import ApiResponse
from app.db.postgres import get_db_session
from app.modules.auth.service import SessionRecord
from app.modules.usage.schemas import UsageData
from app.modules.usage.service import check_rate_limit, get_window_stats


router = APIRouter(prefix="/api/ai", tags=["usage"])
settings = get_settings()


@router.get("/usage", response_model=ApiResponse[UsageData], response_model_exclude_none=True)
async def get_usage(
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
):
    now = utcnow()
    window = settings.ai_rate_limit_window_minutes
    limit = await check_rate_limit(session, current.user_id, settings.ai_rate_limit_max, window, now=now)
    stats = await get_window_stats(session, current.user_id, window, now=now)

    data = UsageData(
        requests_used=stats.count,
        requests_limit=settings.ai_rate_limit_max,
        remaining=limit.remaining,
        reset_at=int(limit.reset_at.timestamp() * 1000),
        total_tokens=stats.total_tokens,
        total_cost=stats.total_cost,
    )
    return ApiResponse(data=data)
