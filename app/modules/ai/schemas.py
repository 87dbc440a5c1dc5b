from typing import Any, Literal

from pydantic import BaseModel, Field

from app.core.schemas import CamelModel
from app.modules.forms.schemas import CompleteFormData


ImprovableField = Literal["keyAchievements", "primarySkills", "motivation"]


class AutofillRequest(CamelModel):
    resume_text: str = Field(..., min_length=50, alias="resumeText")


class ImproveRequest(BaseModel):
    text: str = Field(..., min_length=5)
    field: ImprovableField


class ValidateRequest(CamelModel):
    form_data: CompleteFormData = Field(alias="formData")


class MeteredData(CamelModel):
    tokens_used: int = Field(alias="tokensUsed")
    remaining: int


class AutofillData(MeteredData):
    extracted: dict[str, Any]


class ImproveData(MeteredData):
    original: str
    improved: str


class ValidationIssue(BaseModel):
    field: str
    message: str
    severity: Literal["warning", "suggestion"] = "suggestion"


class ValidateData(MeteredData):
    issues: list[ValidationIssue]
