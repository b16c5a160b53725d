from typing import Any
from pydantic import BaseModel, Field


class BriefInput(BaseModel):
    id: str
    client_id: str | None = None
    industry: str | None = None
    budget: float | None = None
    timeline_weeks: int | None = None
    modules: list[str] = Field(default_factory=list)


class PartnerInput(BaseModel):
    id: str
    industry: str | None = None
    services: list[str] = Field(default_factory=list)
    rating: int | None = Field(default=None, ge=0, le=5)
    hourly_rate_min: float | None = None
    hourly_rate_max: float | None = None


class CreateMatchRequest(BaseModel):
    brief: BriefInput
    partner: PartnerInput
    client_id: str | None = None


class LikeRequest(BaseModel):
    liked: bool


class SaveRequest(BaseModel):
    saved: bool = True


class ConvertRequest(BaseModel):
    contract_value: int | None = Field(default=None, ge=0)


class SwipeRequest(BaseModel):
    liked: bool


class GamificationResponse(BaseModel):
    stats: dict[str, Any]
    new_achievements: list[dict[str, Any]] = Field(default_factory=list)
