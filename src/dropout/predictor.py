# ABOUTME: Predicts per-lecture drop-off from a course's ordered completion rates.
# ABOUTME: Polynomial-trend and moving-average methods, risk factors, interventions and confidence.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from src.common.config import DropoutConfig
from src.common.errors import InvalidInputError, NotFoundError
from src.common.normalization import clamp, round_half_up
from src.common.schemas import (
    DropoutPrediction,
    Intervention,
    PredictionMethod,
    RiskFactor,
    RiskFactorKind,
    utc_now,
)
from src.common.sources import LearningDataSource, Lecture, ProgressRecord
from src.common.store import DROPOUT, RecordStore
from src.common.updates import DropoutUpdate, parse_update

from .regression import fit, predict
from .smoothing import moving_average

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_INSUFFICIENT_DATA = "insufficient_data"
STATUS_DEGENERATE_FIT = "degenerate_fit"

LONG_LECTURE_SECONDS = 1800
HIGH_DROPOFF = 70
LOW_COMPLETION = 50
MAX_FACTOR_WEIGHT = 80
ENGAGEMENT_FACTOR_WEIGHT = 70
MOVING_AVERAGE_SCALE = 5

METHOD_FACTORS = {
    PredictionMethod.POLYNOMIAL_REGRESSION: 0.85,
    PredictionMethod.MOVING_AVERAGE: 0.65,
}
DEFAULT_METHOD_FACTOR = 0.75

INTERVENTIONS = {
    RiskFactorKind.LENGTH: Intervention.BREAK_DOWN_CONTENT,
    RiskFactorKind.ENGAGEMENT: Intervention.INCLUDE_INTERACTIVE_ELEMENTS,
    RiskFactorKind.COMPLEXITY: Intervention.ADD_EXAMPLES,
}


@dataclass(frozen=True)
class LecturePoint:
    """One lecture of a course with its 1-based position and observed completion rate."""

    lecture: Lecture
    position: int
    completion_rate: Optional[int]


@dataclass
class DropoutBatchResult:
    course_id: str
    method: PredictionMethod
    status: str
    predictions: List[DropoutPrediction] = field(default_factory=list)
    valid_points: int = 0

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def completion_rate(progress: Sequence[ProgressRecord]) -> Optional[int]:
    """Percentage of progress records marked complete, None when there are none."""

    if not progress:
        return None
    completed = sum(1 for p in progress if p.is_completed)
    return round_half_up(100 * completed / len(progress))


def risk_factors_for(duration: float, dropoff_probability: float, actual_rate: float) -> List[RiskFactor]:
    factors: List[RiskFactor] = []
    if duration > LONG_LECTURE_SECONDS:
        factors.append(RiskFactor(RiskFactorKind.LENGTH, min(MAX_FACTOR_WEIGHT, duration / 60)))
    if dropoff_probability > HIGH_DROPOFF:
        factors.append(RiskFactor(RiskFactorKind.ENGAGEMENT, ENGAGEMENT_FACTOR_WEIGHT))
    if actual_rate < LOW_COMPLETION:
        factors.append(RiskFactor(RiskFactorKind.COMPLEXITY, min(MAX_FACTOR_WEIGHT, 100 - actual_rate)))
    return factors


def interventions_for(factors: Sequence[RiskFactor]) -> List[Intervention]:
    present = {f.factor for f in factors}
    return [action for kind, action in INTERVENTIONS.items() if kind in present]


def confidence_for(historical_completion_rate: float, method: PredictionMethod) -> int:
    history = min(max(historical_completion_rate, 0) / 100, 1)
    method_factor = METHOD_FACTORS.get(method, DEFAULT_METHOD_FACTOR)
    return round_half_up(100 * (0.6 * history + 0.4 * method_factor))


def risk_blend_probability(historical_completion_rate: float, factors: Sequence[RiskFactor]) -> int:
    """Drop-off estimate for hand-curated risk factors.

    With no factors this is simply the share of students who did not complete.
    """

    if not factors:
        return int(clamp(round_half_up(100 - historical_completion_rate)))
    weighted = sum(f.weight for f in factors)
    raw = min(1.0, weighted / (len(factors) * 100))
    history_penalty = (100 - historical_completion_rate) / 100
    return int(clamp(round_half_up((0.7 * raw + 0.3 * history_penalty) * 100)))


def polynomial_dropoffs(
    points: Sequence[LecturePoint], window: int = 3, degree: int = 2
) -> Optional[List[float]]:
    """
    Drop-off for every point with a rate, from a polynomial fitted to the smoothed rates.

    Returns None when the regression cannot be solved.
    """

    valid = [p for p in points if p.completion_rate is not None]
    smoothed = moving_average([p.completion_rate for p in valid], window)
    coefficients = fit([p.position for p in valid], smoothed, degree)
    if coefficients is None:
        return None
    return [clamp(100 - predict(coefficients, p.position)) for p in valid]


def moving_average_dropoffs(points: Sequence[LecturePoint], window: int = 3) -> List[float]:
    """Penalize lectures that fall below their local trend, five points per percent."""

    rates = [p.completion_rate for p in points if p.completion_rate is not None]
    averages = moving_average(rates, window)
    return [clamp((avg - rate) * MOVING_AVERAGE_SCALE) for avg, rate in zip(averages, rates)]


def build_prediction(
    course_id: str, point: LecturePoint, dropoff_probability: float, method: PredictionMethod
) -> DropoutPrediction:
    rate = point.completion_rate
    factors = risk_factors_for(point.lecture.duration, dropoff_probability, rate)
    return DropoutPrediction(
        course_id=course_id,
        lecture_id=point.lecture.lecture_id,
        position=point.position,
        historical_completion_rate=rate,
        dropoff_probability=dropoff_probability,
        prediction_method=method,
        confidence=confidence_for(rate, method),
        risk_factors=factors,
        interventions=interventions_for(factors),
    )


class DropoutService:
    """Runs drop-off prediction batches for a course and serves the stored predictions."""

    def __init__(self, store: RecordStore, source: LearningDataSource, config: Optional[DropoutConfig] = None):
        self.store = store
        self.source = source
        self.config = config or DropoutConfig()

    def _require_course(self, course_id: str) -> None:
        if self.source.get_course(course_id) is None:
            raise NotFoundError("course", course_id)

    def lecture_points(self, course_id: str) -> List[LecturePoint]:
        self._require_course(course_id)
        return [
            LecturePoint(lecture, position, completion_rate(self.source.list_progress(lecture.lecture_id)))
            for position, lecture in enumerate(self.source.list_lectures(course_id), start=1)
        ]

    def recompute_batch(
        self,
        course_id: str,
        method: Union[str, PredictionMethod] = PredictionMethod.POLYNOMIAL_REGRESSION,
        window: Optional[int] = None,
    ) -> DropoutBatchResult:
        try:
            method = PredictionMethod(method)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown prediction method: {method!r}") from exc
        if method == PredictionMethod.HYBRID:
            raise InvalidInputError("Hybrid predictions are not computed in batch")
        window = self.config.smoothing_window if window is None else window
        if window < 1:
            raise InvalidInputError(f"Moving average window must be >= 1, got {window}")

        points = self.lecture_points(course_id)
        valid = [p for p in points if p.completion_rate is not None]
        required = self.config.min_regression_points if method == PredictionMethod.POLYNOMIAL_REGRESSION else 1

        if len(valid) < required:
            logger.warning(
                "Insufficient data for %s on course %s: %d lectures with progress, need %d",
                method.value, course_id, len(valid), required,
            )
            return DropoutBatchResult(course_id, method, STATUS_INSUFFICIENT_DATA, valid_points=len(valid))

        if method == PredictionMethod.POLYNOMIAL_REGRESSION:
            dropoffs = polynomial_dropoffs(valid, window, self.config.regression_degree)
            if dropoffs is None:
                logger.warning("Polynomial fit failed for course %s", course_id)
                return DropoutBatchResult(course_id, method, STATUS_DEGENERATE_FIT, valid_points=len(valid))
        else:
            dropoffs = moving_average_dropoffs(valid, window)

        predictions = [build_prediction(course_id, p, d, method) for p, d in zip(valid, dropoffs)]
        stored = self.store.put_many(DROPOUT, predictions)
        logger.info("Stored %d %s predictions for course %s", len(stored), method.value, course_id)
        return DropoutBatchResult(course_id, method, STATUS_OK, stored, valid_points=len(valid))

    def get(self, course_id: str, lecture_id: str) -> DropoutPrediction:
        record = self.store.get(DROPOUT, (course_id, lecture_id))
        if record is None:
            raise NotFoundError("dropout prediction", f"{course_id}/{lecture_id}")
        return record

    def get_many(self, course_id: str, threshold: Optional[float] = None) -> List[DropoutPrediction]:
        """Predictions at or above ``threshold`` in lecture order."""

        self._require_course(course_id)
        threshold = self.config.default_threshold if threshold is None else threshold
        records = self.store.find(
            DROPOUT, lambda r: r.course_id == course_id and r.dropoff_probability >= threshold
        )
        return sorted(records, key=lambda r: r.position)

    def high_risk(self, course_id: str) -> List[DropoutPrediction]:
        self._require_course(course_id)
        cutoff = self.config.high_risk_threshold
        records = self.store.find(
            DROPOUT, lambda r: r.course_id == course_id and r.dropoff_probability >= cutoff
        )
        return sorted(records, key=lambda r: (-r.dropoff_probability, r.position))

    def summary(self, course_id: str) -> Dict[str, Any]:
        self._require_course(course_id)
        records = self.store.find(DROPOUT, lambda r: r.course_id == course_id)
        if not records:
            return {
                "total_predictions": 0,
                "high_risk_count": 0,
                "average_dropoff_probability": 0,
                "highest_risk_lecture": None,
            }
        cutoff = self.config.high_risk_threshold
        average = sum(r.dropoff_probability for r in records) / len(records)
        # max() keeps the first of equal maxima; order by position so that is the earliest lecture.
        highest = max(sorted(records, key=lambda r: r.position), key=lambda r: r.dropoff_probability)
        return {
            "total_predictions": len(records),
            "high_risk_count": sum(1 for r in records if r.dropoff_probability >= cutoff),
            "average_dropoff_probability": round(average, 2),
            "highest_risk_lecture": {
                "lecture_id": highest.lecture_id,
                "position": highest.position,
                "dropoff_probability": highest.dropoff_probability,
                "confidence": highest.confidence,
            },
        }

    def ingest(self, course_id: str, lecture_id: str, update: Union[DropoutUpdate, Dict[str, Any]]) -> DropoutPrediction:
        """Apply an edited completion rate or risk-factor list and recompute probability and confidence."""

        update = parse_update(DropoutUpdate, update)
        changes = update.changes()
        self._require_course(course_id)
        lecture = self.source.get_lecture(lecture_id)
        if lecture is None or lecture.course_id != course_id:
            raise NotFoundError("lecture", lecture_id)

        def create() -> DropoutPrediction:
            lectures = self.source.list_lectures(course_id)
            position = next(i for i, l in enumerate(lectures, start=1) if l.lecture_id == lecture_id)
            return DropoutPrediction(
                course_id=course_id,
                lecture_id=lecture_id,
                position=position,
                historical_completion_rate=0,
                dropoff_probability=0,
                prediction_method=PredictionMethod.HYBRID,
            )

        def apply(record: DropoutPrediction) -> None:
            if "historical_completion_rate" in changes:
                record.historical_completion_rate = update.historical_completion_rate
            if update.risk_factors is not None:
                record.risk_factors = [RiskFactor(f.factor, f.weight) for f in update.risk_factors]
                record.interventions = interventions_for(record.risk_factors)
            record.dropoff_probability = risk_blend_probability(
                record.historical_completion_rate, record.risk_factors
            )
            record.confidence = confidence_for(record.historical_completion_rate, record.prediction_method)
            record.updated_at = utc_now()

        key = (course_id, lecture_id)
        return self.store.find_one_and_update(DROPOUT, lambda r: r.key == key, apply, upsert=create)
