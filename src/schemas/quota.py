from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QuotaResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    used: int
    limit: int
    plan_tier: str = Field(alias="planTier")
    reset_at: datetime = Field(alias="resetAt")
