import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import utcnow
from app.core.errors import ValidationError
from app.db.models import FormProgress, FormSubmission
from app.modules.forms.schemas import TOTAL_STEPS, validate_complete


logger = logging.getLogger("app.forms")


@dataclass(frozen=True)
class ProgressSnapshot:
    current_step: int
    form_data: dict[str, Any]
    updated_at: datetime | None = None


def _as_uuid(user_id) -> uuid.UUID:
    return user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))


async def save_progress(
    session: AsyncSession,
    user_id,
    current_step: int,
    form_data: dict[str, Any],
) -> None:
    """Insert or overwrite the single progress row of ``user_id``.

    The stored payload is replaced as a whole; nothing from an earlier save
    survives unless the caller sends it again.
    """
    if not 1 <= current_step <= TOTAL_STEPS:
        raise ValidationError("Invalid form data", fields={"currentStep": "must be between 1 and 4"})

    now = utcnow()
    stmt = insert(FormProgress).values(
        id=uuid.uuid4(),
        user_id=_as_uuid(user_id),
        current_step=current_step,
        form_data=form_data,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[FormProgress.user_id],
        set_={
            "current_step": stmt.excluded.current_step,
            "form_data": stmt.excluded.form_data,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await session.execute(stmt)
    await session.commit()


async def load_progress(session: AsyncSession, user_id) -> ProgressSnapshot | None:
    stmt = select(FormProgress).where(FormProgress.user_id == _as_uuid(user_id))
    result = await session.execute(stmt)
    progress = result.scalar_one_or_none()
    if progress is None:
        return None
    return ProgressSnapshot(
        current_step=progress.current_step,
        form_data=progress.form_data or {},
        updated_at=progress.updated_at,
    )


async def _delete_progress(session: AsyncSession, user_id) -> None:
    await session.execute(delete(FormProgress).where(FormProgress.user_id == _as_uuid(user_id)))


async def clear_progress(session: AsyncSession, user_id) -> None:
    await _delete_progress(session, user_id)
    await session.commit()


async def submit_form(session: AsyncSession, user_id, form_data: dict[str, Any] | None) -> FormSubmission:
    # the client gates each step, but its state may be older than the last save
    complete = validate_complete(form_data)

    submission = FormSubmission(
        id=uuid.uuid4(),
        user_id=_as_uuid(user_id),
        form_data=complete.model_dump(mode="json", by_alias=True),
        submitted_at=utcnow(),
    )
    session.add(submission)
    await session.flush()
    await _delete_progress(session, user_id)
    await session.commit()

    logger.info("Form submitted for user=%s submission=%s", user_id, submission.id)
    return submission


async def list_submissions(session: AsyncSession, user_id) -> list[FormSubmission]:
    stmt = (
        select(FormSubmission)
        .where(FormSubmission.user_id == _as_uuid(user_id))
        .order_by(FormSubmission.submitted_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
