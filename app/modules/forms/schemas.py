from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError as PydanticValidationError, create_model

from app.core.errors import ValidationError
from app.core.schemas import CamelModel


TOTAL_STEPS = 4


class Step1Personal(CamelModel):
    full_name: str = Field(..., min_length=2, alias="fullName")
    email: EmailStr
    phone: str = Field(..., min_length=10)
    location: str = Field(..., min_length=2)


class Step2Experience(CamelModel):
    current_position: str = Field(..., min_length=2, alias="currentPosition")
    company: str = Field(..., min_length=2)
    years_of_experience: float = Field(..., ge=0, le=70, alias="yearsOfExperience")
    key_achievements: str = Field(..., min_length=10, alias="keyAchievements")


class Step3Skills(CamelModel):
    primary_skills: str = Field(..., min_length=5, alias="primarySkills")
    programming_languages: str = Field(..., min_length=2, alias="programmingLanguages")
    frameworks_and_tools: str = Field(..., min_length=2, alias="frameworksAndTools")


class Step4Motivation(CamelModel):
    motivation: str = Field(..., min_length=20)
    start_date: str = Field(..., min_length=1, alias="startDate")
    expected_salary: str | None = Field(default=None, alias="expectedSalary")


STEP_MODELS: dict[int, type[BaseModel]] = {
    1: Step1Personal,
    2: Step2Experience,
    3: Step3Skills,
    4: Step4Motivation,
}


def step_key(step: int) -> str:
    return f"step{step}"


def _partial(model: type[BaseModel]) -> type[BaseModel]:
    """Copy of ``model`` where every field may be missing, for drafts."""
    fields = {
        name: (Any, Field(default=None, alias=info.alias))
        for name, info in model.model_fields.items()
    }
    config = ConfigDict(extra="ignore", populate_by_name=True)
    return create_model(f"Partial{model.__name__}", __config__=config, **fields)


class CompleteFormData(BaseModel):
    step1: Step1Personal
    step2: Step2Experience
    step3: Step3Skills
    step4: Step4Motivation


PartialStep1 = _partial(Step1Personal)
PartialStep2 = _partial(Step2Experience)
PartialStep3 = _partial(Step3Skills)
PartialStep4 = _partial(Step4Motivation)


class PartialFormData(BaseModel):
    step1: PartialStep1 | None = None
    step2: PartialStep2 | None = None
    step3: PartialStep3 | None = None
    step4: PartialStep4 | None = None

    def to_payload(self) -> dict[str, dict[str, Any]]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FormSaveRequest(CamelModel):
    current_step: int = Field(..., ge=1, le=TOTAL_STEPS, alias="currentStep")
    form_data: PartialFormData = Field(default_factory=PartialFormData, alias="formData")


class ProgressData(CamelModel):
    current_step: int = Field(alias="currentStep")
    form_data: dict[str, Any] = Field(alias="formData")
    updated_at: int | None = Field(default=None, alias="updatedAt")


class SubmissionData(CamelModel):
    submission_id: str = Field(alias="submissionId")
    message: str = "Form submitted successfully"


class SubmissionSummary(CamelModel):
    id: str
    form_data: dict[str, Any] = Field(alias="formData")
    submitted_at: datetime = Field(alias="submittedAt")


def _field_errors(exc: PydanticValidationError, prefix: str = "") -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"])
        errors.setdefault(f"{prefix}{path}", err["msg"])
    return errors


def validate_step(step: int, data: dict[str, Any] | None) -> dict[str, str]:
    """Validate one step's payload; an empty dict means the step is valid."""
    model = STEP_MODELS.get(step)
    if model is None:
        raise ValueError(f"unknown step {step}")
    try:
        model.model_validate(data or {})
    except PydanticValidationError as exc:
        return _field_errors(exc)
    return {}


def validate_complete(form_data: dict[str, Any] | None) -> CompleteFormData:
    try:
        return CompleteFormData.model_validate(form_data or {})
    except PydanticValidationError as exc:
        raise ValidationError("Invalid or incomplete form data", fields=_field_errors(exc)) from exc
