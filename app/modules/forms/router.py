from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth_middleware import require_session
from app.core.schemas import ApiResponse
from app.db.postgres import get_db_session
from app.modules.auth.service import SessionRecord
from app.modules.forms.schemas import FormSaveRequest, ProgressData, SubmissionData, SubmissionSummary
from app.modules.forms.service import list_submissions, load_progress, save_progress, submit_form


router = APIRouter(prefix="/api/forms", tags=["forms"])


@router.post("/save", response_model=ApiResponse[None], response_model_exclude_none=True)
async def save_form_progress(
    payload: FormSaveRequest,
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
):
    await save_progress(session, current.user_id, payload.current_step, payload.form_data.to_payload())
    return ApiResponse(message="Progress saved successfully")


@router.get("/progress", response_model=ApiResponse[ProgressData], response_model_exclude_none=True)
async def get_form_progress(
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
):
    snapshot = await load_progress(session, current.user_id)
    if snapshot is None:
        return ApiResponse(message="No saved progress")

    data = ProgressData(
        current_step=snapshot.current_step,
        form_data=snapshot.form_data,
        updated_at=int(snapshot.updated_at.timestamp() * 1000) if snapshot.updated_at else None,
    )
    return ApiResponse(data=data)


@router.post("/submit", response_model=ApiResponse[SubmissionData], response_model_exclude_none=True)
async def submit_form_data(
    form_data: dict[str, Any] = Body(...),
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
):
    submission = await submit_form(session, current.user_id, form_data)
    return ApiResponse(data=SubmissionData(submission_id=str(submission.id)))


@router.get(
    "/submissions",
    response_model=ApiResponse[list[SubmissionSummary]],
    response_model_exclude_none=True,
)
async def get_submissions(
    current: SessionRecord = Depends(require_session),
    session: AsyncSession = Depends(get_db_session),
):
    submissions = await list_submissions(session, current.user_id)
    data = [
        SubmissionSummary(id=str(s.id), form_data=s.form_data, submitted_at=s.submitted_at)
        for s in submissions
    ]
    return ApiResponse(data=data)
