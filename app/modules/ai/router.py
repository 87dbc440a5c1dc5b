import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_middleware import require_session
from app.core.errors import UpstreamError
from app.core.schemas import ApiResponse
from app.db.postgres import get_db_session
from app.modules.ai.client import TextGenerationClient, get_text_client
from app.modules.ai.prompts import autofill_prompt, improve_prompt, parse_json_payload, validate_prompt
from app.modules.ai.schemas import (
    AutofillData,
    AutofillRequest,
    ImproveData,
    ImproveRequest,
    ValidateData,
    ValidateRequest,
    ValidationIssue,
)
from app.modules.ai.service import run_metered
from app.modules.auth.service import SessionRecord
from app.modules.usage.service import AIEndpoint


router = APIRouter(prefix="/api/ai", tags=["ai"])
logger = logging.getLogger("app.ai")


@router.post("/autofill", response_model=ApiResponse[AutofillData], response_model_exclude_none=True)
async def autofill(
    payload: AutofillRequest,
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
    client: TextGenerationClient = Depends(get_text_client),
):
    generation, remaining = await run_metered(
        session, current.user_id, AIEndpoint.AUTOFILL, client, autofill_prompt(payload.resume_text)
    )
    try:
        extracted = parse_json_payload(generation.text)
    except ValueError as exc:
        raise UpstreamError(f"Unparseable autofill response: {generation.text[:200]!r}") from exc
    if not isinstance(extracted, dict):
        raise UpstreamError("Autofill response is not a JSON object")

    data = AutofillData(extracted=extracted, tokens_used=generation.tokens_used, remaining=remaining)
    return ApiResponse(data=data)


@router.post("/improve", response_model=ApiResponse[ImproveData], response_model_exclude_none=True)
async def improve(
    payload: ImproveRequest,
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
    client: TextGenerationClient = Depends(get_text_client),
):
    generation, remaining = await run_metered(
        session, current.user_id, AIEndpoint.IMPROVE, client, improve_prompt(payload.text, payload.field)
    )
    data = ImproveData(
        original=payload.text,
        improved=generation.text.strip(),
        tokens_used=generation.tokens_used,
        remaining=remaining,
    )
    return ApiResponse(data=data)


@router.post("/validate", response_model=ApiResponse[ValidateData], response_model_exclude_none=True)
async def validate(
    payload: ValidateRequest,
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
    client: TextGenerationClient = Depends(get_text_client),
):
    form_data = payload.form_data.model_dump(mode="json", by_alias=True)
    generation, remaining = await run_metered(
        session, current.user_id, AIEndpoint.VALIDATE, client, validate_prompt(form_data)
    )

    issues: list[ValidationIssue] = []
    try:
        raw_issues = parse_json_payload(generation.text)
        if isinstance(raw_issues, list):
            issues = [ValidationIssue.model_validate(item) for item in raw_issues]
    except ValueError:
        # pydantic's ValidationError is a ValueError too
        logger.warning("Discarding unparseable validation response")

    data = ValidateData(issues=issues, tokens_used=generation.tokens_used, remaining=remaining)
    return ApiResponse(data=data)
