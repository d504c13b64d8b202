# ABOUTME: Validated partial-update payloads, one per record type.
# ABOUTME: Only raw counters are settable; derived scores, categories and ranks are engine-owned.

from __future__ import annotations

from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidInputError
from .schemas import RiskFactorKind

U = TypeVar("U", bound="RawUpdate")


class RawUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly provided by the caller."""
        return self.model_dump(exclude_unset=True, exclude_none=True)


class EngagementUpdate(RawUpdate):
    completion_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    time_spent: Optional[float] = Field(default=None, ge=0)
    lectures_watched: Optional[int] = Field(default=None, ge=0)
    quizzes_attempted: Optional[int] = Field(default=None, ge=0)
    average_quiz_score: Optional[float] = Field(default=None, ge=0, le=100)
    assignments_submitted: Optional[int] = Field(default=None, ge=0)
    questions_asked: Optional[int] = Field(default=None, ge=0)
    discussions_participated: Optional[int] = Field(default=None, ge=0)


class MomentumUpdate(RawUpdate):
    enrollments: Optional[int] = Field(default=None, ge=0)
    completions: Optional[int] = Field(default=None, ge=0)
    reviews: Optional[int] = Field(default=None, ge=0)
    questions: Optional[int] = Field(default=None, ge=0)


class ProductivityUpdate(RawUpdate):
    courses_created: Optional[int] = Field(default=None, ge=0)
    lectures_uploaded: Optional[int] = Field(default=None, ge=0)
    notes_uploaded: Optional[int] = Field(default=None, ge=0)
    assignments_created: Optional[int] = Field(default=None, ge=0)
    quizzes_added: Optional[int] = Field(default=None, ge=0)


class LectureQualityUpdate(RawUpdate):
    watch_duration: Optional[float] = Field(default=None, ge=0)
    total_duration: Optional[float] = Field(default=None, ge=0)
    likes: Optional[int] = Field(default=None, ge=0)
    dislikes: Optional[int] = Field(default=None, ge=0)
    engagement_score: Optional[float] = Field(default=None, ge=0, le=100)


class LeaderboardMetrics(RawUpdate):
    revenue: Optional[float] = Field(default=None, ge=0)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    views: Optional[int] = Field(default=None, ge=0)
    enrollments: Optional[int] = Field(default=None, ge=0)


class RiskFactorInput(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    factor: RiskFactorKind
    weight: float = Field(ge=0, le=100)


class DropoutUpdate(RawUpdate):
    historical_completion_rate: Optional[float] = Field(default=None, ge=0, le=100)
    risk_factors: Optional[List[RiskFactorInput]] = None


def parse_update(model: Type[U], payload: Any) -> U:
    """Coerce a mapping (or an existing model) into ``model``.

    Validation problems are re-raised as :class:`InvalidInputError` so callers
    only deal with the engine's own taxonomy.
    """

    if isinstance(payload, model):
        return payload
    if payload is None:
        payload = {}
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError(f"Invalid {model.__name__}: {exc.errors()}") from exc
