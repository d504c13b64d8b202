# ABOUTME: Defines the scored record types persisted by every analytics domain.
# ABOUTME: Centralizes ownership keys, category enums and dict serialization.

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InteractionKind(str, Enum):
    REPLAY = "replay"
    SKIP = "skip"
    PAUSE = "pause"
    REWIND = "rewind"


class EngagementCategory(str, Enum):
    HIGHLY_ENGAGED = "highly_engaged"
    MODERATELY_ENGAGED = "moderately_engaged"
    LOW_ENGAGED = "low_engaged"
    AT_RISK = "at_risk"


class ProductivityCategory(str, Enum):
    EXCEPTIONAL = "exceptional"
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    NEEDS_IMPROVEMENT = "needs_improvement"


class QualityCategory(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class HeatColor(str, Enum):
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"


class RiskFactorKind(str, Enum):
    LENGTH = "length"
    COMPLEXITY = "complexity"
    PREREQUISITES = "prerequisites"
    ENGAGEMENT = "engagement"
    ASSESSMENTS = "assessments"
    CONTENT_DENSITY = "content_density"
    PACING = "pacing"


class Intervention(str, Enum):
    BREAK_DOWN_CONTENT = "break_down_content"
    ADD_EXAMPLES = "add_examples"
    INCLUDE_INTERACTIVE_ELEMENTS = "include_interactive_elements"
    PROVIDE_ADDITIONAL_RESOURCES = "provide_additional_resources"
    ADJUST_PACING = "adjust_pacing"
    ADD_ASSESSMENT_CHECKPOINT = "add_assessment_checkpoint"
    OFFER_PEER_SUPPORT = "offer_peer_support"


class PredictionMethod(str, Enum):
    POLYNOMIAL_REGRESSION = "polynomial_regression"
    MOVING_AVERAGE = "moving_average"
    HYBRID = "hybrid"


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


class _Record:
    """Mixin giving dataclass records a JSON-friendly ``to_dict``."""

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _plain(getattr(self, f.name)) for f in fields(self)}


@dataclass
class StudentInteraction(_Record):
    student_id: str
    kind: InteractionKind
    occurred_at: datetime


@dataclass
class ConfusionBucket(_Record):
    """Interaction counters for one lecture around an anchor timestamp (seconds)."""

    bucket_id: str
    lecture_id: str
    course_id: str
    timestamp: float
    replay_count: int = 0
    skip_count: int = 0
    pause_count: int = 0
    watch_time_sum: float = 0.0
    watch_time_count: int = 0
    average_watch_time: int = 0
    confusion_score: int = 0
    student_interactions: List[StudentInteraction] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return self.bucket_id


@dataclass
class RiskFactor(_Record):
    factor: RiskFactorKind
    weight: float


@dataclass
class DropoutPrediction(_Record):
    course_id: str
    lecture_id: str
    position: int
    historical_completion_rate: float
    dropoff_probability: float
    prediction_method: PredictionMethod
    confidence: int = 0
    risk_factors: List[RiskFactor] = field(default_factory=list)
    interventions: List[Intervention] = field(default_factory=list)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.course_id, self.lecture_id)


@dataclass
class EngagementRecord(_Record):
    student_id: str
    course_id: str
    completion_percentage: float = 0.0
    time_spent: float = 0.0
    lectures_watched: int = 0
    quizzes_attempted: int = 0
    average_quiz_score: float = 0.0
    assignments_submitted: int = 0
    questions_asked: int = 0
    discussions_participated: int = 0
    engagement_score: int = 0
    engagement_category: EngagementCategory = EngagementCategory.AT_RISK
    last_updated: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> Tuple[str, str]:
        return (self.student_id, self.course_id)

    @property
    def activity_count(self) -> int:
        return self.lectures_watched + self.quizzes_attempted + self.assignments_submitted

    @property
    def participation_count(self) -> int:
        return self.questions_asked + self.discussions_participated


@dataclass
class MomentumRecord(_Record):
    course_id: str
    day: date
    enrollments: int = 0
    completions: int = 0
    reviews: int = 0
    questions: int = 0
    momentum_score: int = 0
    engagement_rate: int = 0
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> Tuple[str, date]:
        return (self.course_id, self.day)


@dataclass
class ProductivityRecord(_Record):
    educator_id: str
    week_start: date
    courses_created: int = 0
    lectures_uploaded: int = 0
    notes_uploaded: int = 0
    assignments_created: int = 0
    quizzes_added: int = 0
    productivity_score: int = 0
    productivity_category: ProductivityCategory = ProductivityCategory.NEEDS_IMPROVEMENT
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> Tuple[str, date]:
        return (self.educator_id, self.week_start)


@dataclass
class LectureQualityRecord(_Record):
    lecture_id: str
    course_id: str
    watch_duration: float = 0.0
    total_duration: float = 0.0
    likes: int = 0
    dislikes: int = 0
    engagement_score: float = 0.0
    watch_duration_score: int = 0
    engagement_score_normalized: float = 0.0
    like_dislike_score: int = 50
    quality_score: int = 0
    quality_category: QualityCategory = QualityCategory.POOR
    heat_score: int = 0
    heat_color: HeatColor = HeatColor.RED
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return self.lecture_id


@dataclass
class LeaderboardEntry(_Record):
    course_id: str
    revenue: float = 0.0
    rating: float = 0.0
    views: int = 0
    enrollments: int = 0
    revenue_score: int = 0
    rating_score: int = 0
    views_score: int = 0
    enrollments_score: int = 0
    composite_score: int = 0
    rank: Optional[int] = None
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def key(self) -> str:
        return self.course_id
