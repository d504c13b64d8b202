# ABOUTME: Scores how engaged a student is in a course from activity counters.
# ABOUTME: Threshold categories with at-risk overrides, plus course-level distribution and summaries.

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from src.common.errors import InvalidInputError, NotFoundError
from src.common.frames import column_mean, records_frame
from src.common.normalization import MetricWeight, categorize, normalize, weighted_percentage
from src.common.schemas import EngagementCategory, EngagementRecord, utc_now
from src.common.sources import LearningDataSource
from src.common.store import ENGAGEMENT, RecordStore
from src.common.updates import EngagementUpdate, parse_update

logger = logging.getLogger(__name__)

ENGAGEMENT_WEIGHTS = {
    "completion": MetricWeight(0.30, cap=100),
    "time_spent": MetricWeight(0.20, cap=600),
    "activity": MetricWeight(0.30, cap=50),
    "participation": MetricWeight(0.20, cap=20),
}

ENGAGEMENT_THRESHOLDS = [
    (85, EngagementCategory.HIGHLY_ENGAGED),
    (60, EngagementCategory.MODERATELY_ENGAGED),
    (30, EngagementCategory.LOW_ENGAGED),
]

MIN_COMPLETION_PERCENTAGE = 10


def engagement_score(record: EngagementRecord) -> int:
    w = ENGAGEMENT_WEIGHTS
    return weighted_percentage(
        [
            (normalize(record.completion_percentage, w["completion"].cap), w["completion"].weight),
            (normalize(record.time_spent, w["time_spent"].cap), w["time_spent"].weight),
            (normalize(record.activity_count, w["activity"].cap), w["activity"].weight),
            (normalize(record.participation_count, w["participation"].cap), w["participation"].weight),
        ]
    )


def engagement_category(record: EngagementRecord) -> EngagementCategory:
    """Threshold lookup on the score; barely-started or inactive students are always at risk."""

    if record.completion_percentage < MIN_COMPLETION_PERCENTAGE or record.activity_count == 0:
        return EngagementCategory.AT_RISK
    return categorize(record.engagement_score, ENGAGEMENT_THRESHOLDS, EngagementCategory.AT_RISK)


def recompute_engagement(record: EngagementRecord) -> EngagementRecord:
    record.engagement_score = engagement_score(record)
    record.engagement_category = engagement_category(record)
    record.last_updated = utc_now()
    return record


def _category(value: Union[str, EngagementCategory]) -> EngagementCategory:
    try:
        return EngagementCategory(value)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid engagement category: {value!r}") from exc


class EngagementService:
    def __init__(self, store: RecordStore, source: LearningDataSource):
        self.store = store
        self.source = source

    def _require_course(self, course_id: str) -> None:
        if self.source.get_course(course_id) is None:
            raise NotFoundError("course", course_id)

    def ingest(
        self, student_id: str, course_id: str, update: Union[EngagementUpdate, Dict[str, Any]]
    ) -> EngagementRecord:
        """Overwrite the given raw counters and return the rescored record."""

        update = parse_update(EngagementUpdate, update)
        if not self.source.has_student(student_id):
            raise NotFoundError("student", student_id)
        self._require_course(course_id)
        changes = update.changes()
        key = (student_id, course_id)

        def apply(record: EngagementRecord) -> None:
            for name, value in changes.items():
                setattr(record, name, value)
            recompute_engagement(record)

        record = self.store.find_one_and_update(
            ENGAGEMENT,
            lambda r: r.key == key,
            apply,
            upsert=lambda: EngagementRecord(student_id=student_id, course_id=course_id),
        )
        logger.debug(
            "Engagement for %s in %s: %d (%s)",
            student_id, course_id, record.engagement_score, record.engagement_category.value,
        )
        return record

    def get(self, student_id: str, course_id: str) -> EngagementRecord:
        record = self.store.get(ENGAGEMENT, (student_id, course_id))
        if record is None:
            raise NotFoundError("engagement record", f"{student_id}/{course_id}")
        return record

    def get_many(
        self, course_id: str, category: Optional[Union[str, EngagementCategory]] = None
    ) -> List[EngagementRecord]:
        """Records of a course, highest score first, optionally limited to one category."""

        wanted = _category(category) if category is not None else None
        self._require_course(course_id)
        records = self.store.find(
            ENGAGEMENT,
            lambda r: r.course_id == course_id and (wanted is None or r.engagement_category == wanted),
        )
        return sorted(records, key=lambda r: (-r.engagement_score, r.student_id))

    def at_risk(self, course_id: str) -> List[EngagementRecord]:
        records = self.get_many(course_id, EngagementCategory.AT_RISK)
        return sorted(records, key=lambda r: (r.engagement_score, r.student_id))

    def distribution(self, course_id: str) -> Dict[str, Dict[str, float]]:
        """Count and average score per category present in the course."""

        frame = records_frame(self.get_many(course_id), ["engagement_category", "engagement_score"])
        if frame.empty:
            return {}
        grouped = frame.groupby("engagement_category")["engagement_score"].agg(["count", "mean"])
        return {
            category: {"count": int(row["count"]), "average_score": round(float(row["mean"]), 2)}
            for category, row in grouped.iterrows()
        }

    def summary(self, course_id: str) -> Dict[str, Any]:
        frame = records_frame(self.get_many(course_id), ["engagement_category", "engagement_score"])
        counts = frame["engagement_category"].value_counts() if not frame.empty else {}
        distribution = {c.value: int(counts.get(c.value, 0)) for c in EngagementCategory}
        return {
            "total_students": len(frame),
            "average_engagement_score": round(column_mean(frame, "engagement_score"), 2),
            "engagement_distribution": distribution,
            "at_risk_students": distribution[EngagementCategory.AT_RISK.value],
        }

    def recommendations(self, course_id: str) -> List[Dict[str, str]]:
        summary = self.summary(course_id)
        total = summary["total_students"]
        recommendations: List[Dict[str, str]] = []
        if not total:
            return recommendations

        if summary["at_risk_students"] > total * 0.3:
            recommendations.append(
                {
                    "type": "intervention",
                    "priority": "high",
                    "message": "High number of at-risk students detected",
                    "action": "Implement targeted interventions for at-risk students",
                }
            )
        if summary["average_engagement_score"] < 50:
            recommendations.append(
                {
                    "type": "content",
                    "priority": "high",
                    "message": "Overall engagement is low",
                    "action": "Review course content and add more interactive elements",
                }
            )
        if summary["engagement_distribution"][EngagementCategory.HIGHLY_ENGAGED.value] < total * 0.1:
            recommendations.append(
                {
                    "type": "engagement",
                    "priority": "medium",
                    "message": "Few highly engaged students",
                    "action": "Add gamification elements and rewards for top performers",
                }
            )
        return recommendations
