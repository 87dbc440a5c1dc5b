from pydantic import BaseModel, EmailStr, Field

from app.core.schemas import CamelModel


class AuthStartRequest(BaseModel):
    email: EmailStr = Field(..., max_length=320)


class AuthStartData(CamelModel):
    email: EmailStr
    message: str = "Magic link generated"
    magic_link: str | None = Field(default=None, alias="magicLink")


class SessionData(CamelModel):
    user_id: str = Field(alias="userId")
    email: str
    expires_at: int = Field(alias="expiresAt")
