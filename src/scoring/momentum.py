# ABOUTME: Daily course momentum from enrollments, completions, reviews and questions.
# ABOUTME: Atomic per-day upserts, batch recompute from raw activity, and range summaries for charts.

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

from src.common.config import ReportingConfig
from src.common.errors import InvalidInputError, NotFoundError
from src.common.frames import column_mean, column_total, records_frame
from src.common.normalization import MetricWeight, normalize, round_half_up, weighted_percentage
from src.common.schemas import MomentumRecord, utc_now
from src.common.sources import LearningDataSource
from src.common.store import MOMENTUM, RecordStore
from src.common.updates import MomentumUpdate, parse_update

logger = logging.getLogger(__name__)

MOMENTUM_WEIGHTS = {
    "enrollments": MetricWeight(0.30, cap=50),
    "completions": MetricWeight(0.30, cap=30),
    "reviews": MetricWeight(0.20, cap=20),
    "questions": MetricWeight(0.20, cap=25),
}

TREND_COLUMNS = ["day", "momentum_score", "engagement_rate", "enrollments", "completions", "reviews", "questions"]


def momentum_score(record: MomentumRecord) -> int:
    return weighted_percentage(
        (normalize(getattr(record, name), w.cap), w.weight) for name, w in MOMENTUM_WEIGHTS.items()
    )


def engagement_rate(enrollments: int, completions: int) -> int:
    """Completions per enrollment as a capped percentage; 0 with no enrollments."""

    if enrollments <= 0:
        return 0
    return round_half_up(min(completions / enrollments, 1) * 100)


def recompute_momentum(record: MomentumRecord) -> MomentumRecord:
    record.momentum_score = momentum_score(record)
    record.engagement_rate = engagement_rate(record.enrollments, record.completions)
    record.updated_at = utc_now()
    return record


class MomentumService:
    def __init__(self, store: RecordStore, source: LearningDataSource, reporting: Optional[ReportingConfig] = None):
        self.store = store
        self.source = source
        self.reporting = reporting or ReportingConfig()

    def _require_course(self, course_id: str) -> None:
        if self.source.get_course(course_id) is None:
            raise NotFoundError("course", course_id)

    def _upsert(self, course_id: str, day: date, mutate) -> MomentumRecord:
        key = (course_id, day)

        def apply(record: MomentumRecord) -> None:
            mutate(record)
            recompute_momentum(record)

        return self.store.find_one_and_update(
            MOMENTUM,
            lambda r: r.key == key,
            apply,
            upsert=lambda: MomentumRecord(course_id=course_id, day=day),
        )

    def ingest(self, course_id: str, day: date, update: Union[MomentumUpdate, Dict[str, Any]]) -> MomentumRecord:
        """Set the day's counters to the given values."""

        changes = parse_update(MomentumUpdate, update).changes()
        self._require_course(course_id)

        def assign(record: MomentumRecord) -> None:
            for name, value in changes.items():
                setattr(record, name, value)

        return self._upsert(course_id, day, assign)

    def increment(self, course_id: str, day: date, update: Union[MomentumUpdate, Dict[str, Any]]) -> MomentumRecord:
        """Add the given deltas to the day's counters in one atomic step."""

        deltas = parse_update(MomentumUpdate, update).changes()
        self._require_course(course_id)

        def add(record: MomentumRecord) -> None:
            for name, delta in deltas.items():
                setattr(record, name, getattr(record, name) + delta)

        return self._upsert(course_id, day, add)

    def get(self, course_id: str, day: date) -> MomentumRecord:
        record = self.store.get(MOMENTUM, (course_id, day))
        if record is None:
            raise NotFoundError("momentum record", f"{course_id}/{day.isoformat()}")
        return record

    def get_many(self, course_id: str, start: date, end: date) -> List[MomentumRecord]:
        if start > end:
            raise InvalidInputError(f"start {start} is after end {end}")
        records = self.store.find(MOMENTUM, lambda r: r.course_id == course_id and start <= r.day <= end)
        return sorted(records, key=lambda r: r.day)

    def _window(self, days: Optional[int], today: Optional[date]):
        days = self.reporting.momentum_days if days is None else days
        if days < 1:
            raise InvalidInputError(f"days must be >= 1, got {days}")
        today = today or utc_now().date()
        return days, today

    def recompute_batch(self, course_id: str, days: Optional[int] = None, today: Optional[date] = None) -> List[MomentumRecord]:
        """Rebuild the last ``days`` daily records (today included) from raw activity counts."""

        self._require_course(course_id)
        days, today = self._window(days, today)
        records = []
        for offset in range(days - 1, -1, -1):
            day = today - timedelta(days=offset)
            activity = self.source.count_daily_activity(course_id, day)
            records.append(
                self.ingest(
                    course_id,
                    day,
                    MomentumUpdate(
                        enrollments=activity.enrollments,
                        completions=activity.completions,
                        reviews=activity.reviews,
                        questions=activity.questions,
                    ),
                )
            )
        logger.info("Recomputed %d days of momentum for course %s", len(records), course_id)
        return records

    def summary(self, course_id: str, days: Optional[int] = None, today: Optional[date] = None) -> Dict[str, Any]:
        days, today = self._window(days, today)
        frame = records_frame(self.get_many(course_id, today - timedelta(days=days), today), TREND_COLUMNS)
        if frame.empty:
            return {}
        return {
            "average_momentum": round(column_mean(frame, "momentum_score"), 2),
            "average_engagement": round(column_mean(frame, "engagement_rate"), 2),
            "total_enrollments": column_total(frame, "enrollments"),
            "total_completions": column_total(frame, "completions"),
            "total_reviews": column_total(frame, "reviews"),
            "total_questions": column_total(frame, "questions"),
        }

    def trend(self, course_id: str, days: Optional[int] = None, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Chart rows in date order, dates as ISO strings."""

        days, today = self._window(days, today)
        frame = records_frame(self.get_many(course_id, today - timedelta(days=days), today), TREND_COLUMNS)
        return frame.rename(columns={"day": "date"}).to_dict("records")

    def compare(
        self, course_ids: List[str], days: Optional[int] = None, today: Optional[date] = None
    ) -> Dict[str, Any]:
        """Daily records of several courses over the same window, grouped by course."""

        if not course_ids:
            raise InvalidInputError("At least one course id is required")
        for course_id in course_ids:
            self._require_course(course_id)
        days, today = self._window(days, today)
        start = today - timedelta(days=days)
        wanted = set(course_ids)
        records = self.store.find(MOMENTUM, lambda r: r.course_id in wanted and start <= r.day <= today)

        grouped: Dict[str, Dict[str, Any]] = {}
        for record in sorted(records, key=lambda r: (r.course_id, r.day)):
            if record.course_id not in grouped:
                course = self.source.get_course(record.course_id)
                grouped[record.course_id] = {"course": {"id": course.course_id, "title": course.title}, "data": []}
            grouped[record.course_id]["data"].append(record)
        return {
            "courses": grouped,
            "period": {"start_date": start.isoformat(), "end_date": today.isoformat(), "days": days},
        }
