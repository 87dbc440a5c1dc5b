from pydantic import Field

from app.core.schemas import CamelModel


class UsageData(CamelModel):
    requests_used: int = Field(alias="requestsUsed")
    requests_limit: int = Field(alias="requestsLimit")
    remaining: int
    reset_at: int = Field(alias="resetAt")
    total_tokens: int = Field(alias="totalTokens")
    total_cost: float = Field(alias="totalCost")
