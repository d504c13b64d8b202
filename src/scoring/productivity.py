# ABOUTME: Weekly educator productivity from courses, lectures and notes produced.
# ABOUTME: Monday-aligned weeks, atomic upserts and increments, history, summaries and recommendations.

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

from src.common.config import ReportingConfig
from src.common.errors import InvalidInputError, NotFoundError
from src.common.frames import column_mean, column_total, records_frame
from src.common.normalization import MetricWeight, categorize, normalize, weighted_percentage
from src.common.schemas import ProductivityCategory, ProductivityRecord, utc_now
from src.common.sources import LearningDataSource
from src.common.store import PRODUCTIVITY, RecordStore
from src.common.updates import ProductivityUpdate, parse_update

logger = logging.getLogger(__name__)

# Assignments and quizzes are tracked but do not feed the score.
PRODUCTIVITY_WEIGHTS = {
    "courses_created": MetricWeight(0.30, cap=2),
    "lectures_uploaded": MetricWeight(0.40, cap=10),
    "notes_uploaded": MetricWeight(0.30, cap=15),
}

PRODUCTIVITY_THRESHOLDS = [
    (90, ProductivityCategory.EXCEPTIONAL),
    (75, ProductivityCategory.HIGH),
    (60, ProductivityCategory.MODERATE),
    (40, ProductivityCategory.LOW),
]

SUMMARY_COLUMNS = [
    "week_start",
    "productivity_score",
    "courses_created",
    "lectures_uploaded",
    "notes_uploaded",
    "assignments_created",
    "quizzes_added",
]


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""

    return day - timedelta(days=day.weekday())


def productivity_score(record: ProductivityRecord) -> int:
    return weighted_percentage(
        (normalize(getattr(record, name), w.cap), w.weight) for name, w in PRODUCTIVITY_WEIGHTS.items()
    )


def recompute_productivity(record: ProductivityRecord) -> ProductivityRecord:
    record.productivity_score = productivity_score(record)
    record.productivity_category = categorize(
        record.productivity_score, PRODUCTIVITY_THRESHOLDS, ProductivityCategory.NEEDS_IMPROVEMENT
    )
    record.updated_at = utc_now()
    return record


class ProductivityService:
    def __init__(self, store: RecordStore, source: LearningDataSource, reporting: Optional[ReportingConfig] = None):
        self.store = store
        self.source = source
        self.reporting = reporting or ReportingConfig()

    def _require_educator(self, educator_id: str) -> None:
        if not self.source.has_educator(educator_id):
            raise NotFoundError("educator", educator_id)

    def _upsert(self, educator_id: str, week: date, mutate) -> ProductivityRecord:
        week = week_start(week)
        key = (educator_id, week)

        def apply(record: ProductivityRecord) -> None:
            mutate(record)
            recompute_productivity(record)

        return self.store.find_one_and_update(
            PRODUCTIVITY,
            lambda r: r.key == key,
            apply,
            upsert=lambda: ProductivityRecord(educator_id=educator_id, week_start=week),
        )

    def ingest(self, educator_id: str, week: date, update: Union[ProductivityUpdate, Dict[str, Any]]) -> ProductivityRecord:
        """Set counters for the week containing ``week``."""

        changes = parse_update(ProductivityUpdate, update).changes()
        self._require_educator(educator_id)

        def assign(record: ProductivityRecord) -> None:
            for name, value in changes.items():
                setattr(record, name, value)

        return self._upsert(educator_id, week, assign)

    def increment(self, educator_id: str, week: date, update: Union[ProductivityUpdate, Dict[str, Any]]) -> ProductivityRecord:
        deltas = parse_update(ProductivityUpdate, update).changes()
        self._require_educator(educator_id)

        def add(record: ProductivityRecord) -> None:
            for name, delta in deltas.items():
                setattr(record, name, getattr(record, name) + delta)

        return self._upsert(educator_id, week, add)

    def recompute_batch(self, educator_id: str, week: Optional[date] = None) -> ProductivityRecord:
        """Recount one week of output from the raw data source."""

        self._require_educator(educator_id)
        week = week_start(week or utc_now().date())
        output = self.source.count_weekly_output(educator_id, week)
        record = self.ingest(
            educator_id,
            week,
            ProductivityUpdate(
                courses_created=output.courses_created,
                lectures_uploaded=output.lectures_uploaded,
                notes_uploaded=output.notes_uploaded,
                assignments_created=output.assignments_created,
                quizzes_added=output.quizzes_added,
            ),
        )
        logger.info(
            "Productivity for %s week of %s: %d (%s)",
            educator_id, week.isoformat(), record.productivity_score, record.productivity_category.value,
        )
        return record

    def get(self, educator_id: str, week: date) -> ProductivityRecord:
        week = week_start(week)
        record = self.store.get(PRODUCTIVITY, (educator_id, week))
        if record is None:
            raise NotFoundError("productivity record", f"{educator_id}/{week.isoformat()}")
        return record

    def get_many(self, educator_id: str, limit: Optional[int] = None) -> List[ProductivityRecord]:
        """Most recent weeks first."""

        self._require_educator(educator_id)
        limit = self.reporting.productivity_history_limit if limit is None else limit
        if limit < 1:
            raise InvalidInputError(f"limit must be >= 1, got {limit}")
        records = self.store.find(PRODUCTIVITY, lambda r: r.educator_id == educator_id)
        return sorted(records, key=lambda r: r.week_start, reverse=True)[:limit]

    def current_week(self, educator_id: str, today: Optional[date] = None) -> ProductivityRecord:
        """This week's record, created empty when the educator has none yet."""

        self._require_educator(educator_id)
        return self._upsert(educator_id, today or utc_now().date(), lambda record: None)

    def summary(self, educator_id: str, weeks: Optional[int] = None, today: Optional[date] = None) -> Dict[str, Any]:
        self._require_educator(educator_id)
        weeks = self.reporting.productivity_weeks if weeks is None else weeks
        if weeks < 1:
            raise InvalidInputError(f"weeks must be >= 1, got {weeks}")
        today = today or utc_now().date()
        start = today - timedelta(weeks=weeks)
        records = self.store.find(
            PRODUCTIVITY, lambda r: r.educator_id == educator_id and start <= r.week_start <= today
        )
        frame = records_frame(records, SUMMARY_COLUMNS)
        scores = frame["productivity_score"].astype(int) if not frame.empty else None
        return {
            "average_score": round(column_mean(frame, "productivity_score"), 2),
            "highest_score": int(scores.max()) if scores is not None else 0,
            "lowest_score": int(scores.min()) if scores is not None else 0,
            "total_courses": column_total(frame, "courses_created"),
            "total_lectures": column_total(frame, "lectures_uploaded"),
            "total_notes": column_total(frame, "notes_uploaded"),
            "total_assignments": column_total(frame, "assignments_created"),
            "total_quizzes": column_total(frame, "quizzes_added"),
        }

    def recommendations(self, educator_id: str, today: Optional[date] = None) -> List[Dict[str, str]]:
        summary = self.summary(educator_id, today=today)
        recommendations: List[Dict[str, str]] = []
        if summary["average_score"] < 50:
            recommendations.append(
                {
                    "type": "productivity",
                    "priority": "high",
                    "message": "Overall productivity is low",
                    "action": "Focus on consistent content creation and engagement with students",
                }
            )
        if summary["total_courses"] < 2:
            recommendations.append(
                {
                    "type": "content",
                    "priority": "medium",
                    "message": "Low course creation rate",
                    "action": "Set weekly goals for new course development",
                }
            )
        if summary["total_lectures"] < 5:
            recommendations.append(
                {
                    "type": "content",
                    "priority": "medium",
                    "message": "Low lecture upload rate",
                    "action": "Schedule regular lecture recording sessions",
                }
            )
        return recommendations
