# ABOUTME: Scores lecture quality from watch ratio, like ratio and a supplied engagement score.
# ABOUTME: Shares its category thresholds with the heat color used by the course heatmap.

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from src.common.errors import InvalidInputError, NotFoundError
from src.common.normalization import MetricWeight, categorize, clamp, normalize, round_half_up
from src.common.schemas import HeatColor, LectureQualityRecord, QualityCategory, utc_now
from src.common.sources import LearningDataSource
from src.common.store import LECTURE_QUALITY, RecordStore
from src.common.updates import LectureQualityUpdate, parse_update

logger = logging.getLogger(__name__)

QUALITY_WEIGHTS = {
    "watch_duration": MetricWeight(0.40),
    "engagement": MetricWeight(0.30),
    "like_dislike": MetricWeight(0.30),
}

NEUTRAL_LIKE_SCORE = 50

QUALITY_THRESHOLDS = [
    (85, QualityCategory.EXCELLENT),
    (70, QualityCategory.GOOD),
    (50, QualityCategory.FAIR),
]

HEAT_THRESHOLDS = [
    (85, HeatColor.GREEN),
    (70, HeatColor.YELLOW),
    (50, HeatColor.ORANGE),
]


def watch_duration_score(watch_duration: float, total_duration: float) -> int:
    return round_half_up(normalize(watch_duration, total_duration) * 100)


def like_dislike_score(likes: int, dislikes: int) -> int:
    total = likes + dislikes
    if total == 0:
        return NEUTRAL_LIKE_SCORE
    return round_half_up(likes / total * 100)


def recompute_quality(record: LectureQualityRecord) -> LectureQualityRecord:
    record.watch_duration_score = watch_duration_score(record.watch_duration, record.total_duration)
    record.like_dislike_score = like_dislike_score(record.likes, record.dislikes)
    record.engagement_score_normalized = clamp(record.engagement_score)

    w = QUALITY_WEIGHTS
    weighted = (
        record.watch_duration_score * w["watch_duration"].weight
        + record.engagement_score_normalized * w["engagement"].weight
        + record.like_dislike_score * w["like_dislike"].weight
    )
    record.quality_score = int(clamp(round_half_up(weighted)))
    record.quality_category = categorize(record.quality_score, QUALITY_THRESHOLDS, QualityCategory.POOR)
    record.heat_score = record.quality_score
    record.heat_color = categorize(record.heat_score, HEAT_THRESHOLDS, HeatColor.RED)
    record.updated_at = utc_now()
    return record


class LectureQualityService:
    def __init__(self, store: RecordStore, source: LearningDataSource):
        self.store = store
        self.source = source

    def _require_course(self, course_id: str) -> None:
        if self.source.get_course(course_id) is None:
            raise NotFoundError("course", course_id)

    def ingest(self, lecture_id: str, update: Union[LectureQualityUpdate, Dict[str, Any]]) -> LectureQualityRecord:
        changes = parse_update(LectureQualityUpdate, update).changes()
        lecture = self.source.get_lecture(lecture_id)
        if lecture is None:
            raise NotFoundError("lecture", lecture_id)

        def create() -> LectureQualityRecord:
            # Until told otherwise the lecture's own length is the full duration.
            return LectureQualityRecord(
                lecture_id=lecture_id, course_id=lecture.course_id, total_duration=lecture.duration
            )

        def apply(record: LectureQualityRecord) -> None:
            for name, value in changes.items():
                setattr(record, name, value)
            recompute_quality(record)

        record = self.store.find_one_and_update(
            LECTURE_QUALITY, lambda r: r.lecture_id == lecture_id, apply, upsert=create
        )
        logger.debug("Quality for lecture %s: %d (%s)", lecture_id, record.quality_score, record.quality_category.value)
        return record

    def get(self, lecture_id: str) -> LectureQualityRecord:
        record = self.store.get(LECTURE_QUALITY, lecture_id)
        if record is None:
            raise NotFoundError("lecture quality record", lecture_id)
        return record

    def get_many(
        self, course_id: str, category: Optional[Union[str, QualityCategory]] = None
    ) -> List[LectureQualityRecord]:
        """Lectures of a course by quality score, best first."""

        wanted = None
        if category is not None:
            try:
                wanted = QualityCategory(category)
            except ValueError as exc:
                raise InvalidInputError(f"Invalid quality category: {category!r}") from exc
        self._require_course(course_id)
        records = self.store.find(
            LECTURE_QUALITY,
            lambda r: r.course_id == course_id and (wanted is None or r.quality_category == wanted),
        )
        return sorted(records, key=lambda r: (-r.quality_score, r.lecture_id))

    def heatmap(self, course_id: str) -> List[Dict[str, Any]]:
        rows = []
        for record in self.get_many(course_id):
            lecture = self.source.get_lecture(record.lecture_id)
            rows.append(
                {
                    "lecture_id": record.lecture_id,
                    "lecture_title": lecture.title if lecture else "",
                    "quality_score": record.quality_score,
                    "heat_score": record.heat_score,
                    "heat_color": record.heat_color.value,
                    "watch_duration": record.watch_duration,
                    "total_duration": record.total_duration,
                    "likes": record.likes,
                    "dislikes": record.dislikes,
                    "engagement_score": record.engagement_score,
                }
            )
        return rows
