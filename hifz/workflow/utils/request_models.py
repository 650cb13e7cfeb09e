from __future__ import annotations

import datetime as dt
from typing import Any, Mapping

from pydantic import BaseModel, Field, model_validator

from hifz.utils.scheduler import QUALITY_THRESHOLD, calculate_next_review
from hifz.utils.types import Card, ReviewResult, ScheduleUpdate


class ReviewRequest(BaseModel):
    quality: int = Field(..., ge=0, le=5, description="SM-2 recall quality (0 blackout .. 5 perfect)")
    response_time: float = Field(..., gt=0, description="Seconds taken to recite the ayah")
    accuracy: float = Field(..., ge=0, le=100, description="Recitation accuracy percentage")
    was_correct: bool | None = Field(None, description="Defaults to quality >= 3 when omitted")

    @model_validator(mode="after")
    def _default_correctness(self) -> "ReviewRequest":
        if self.was_correct is None:
            self.was_correct = self.quality >= QUALITY_THRESHOLD
        return self

    def to_result(self) -> ReviewResult:
        return ReviewResult(
            quality=self.quality,
            response_time=self.response_time,
            accuracy=self.accuracy,
            was_correct=bool(self.was_correct),
        )


class ScheduleRequest(BaseModel):
    daily_target: int = Field(default=10, ge=0, description="Maximum cards per day")
    days_ahead: int = Field(default=7, ge=1, le=365, description="Number of calendar days to project")
    due_limit: int = Field(default=20, ge=0, description="Maximum cards listed as due now")


def schedule_review(card: Card, payload: Mapping[str, Any], now: dt.datetime | None = None) -> ScheduleUpdate:
    """Validate a raw review payload and schedule it; raises pydantic.ValidationError."""
    request = ReviewRequest.model_validate(dict(payload))
    return calculate_next_review(card, request.to_result(), now=now)
