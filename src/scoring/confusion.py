# ABOUTME: Buckets pause/replay/skip events per lecture and scores how confusing each moment is.
# ABOUTME: Ingestion merges atomically into the store; analysis helpers summarize buckets per lecture and course.

from __future__ import annotations

import logging
import math
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from src.common.config import ConfusionConfig, ReportingConfig
from src.common.errors import InvalidInputError, NotFoundError
from src.common.frames import column_mean, records_frame
from src.common.normalization import MetricWeight, normalize, round_half_up, weighted_percentage
from src.common.schemas import ConfusionBucket, InteractionKind, StudentInteraction, utc_now
from src.common.sources import LearningDataSource
from src.common.store import CONFUSION, RecordStore

logger = logging.getLogger(__name__)

CONFUSION_WEIGHTS = {
    "replay": MetricWeight(0.30, cap=10),
    "skip": MetricWeight(0.25, cap=5),
    "pause": MetricWeight(0.20, cap=8),
    "watch_time_deficit": MetricWeight(0.25),
}
WATCH_TIME_REFERENCE_SECONDS = 60
# Keeps the running watch-time sum finite for any realistic number of events.
MAX_TIMESTAMP_SECONDS = 1e12

# A rewind re-watches earlier content, so it counts as a replay.
COUNTER_FOR_KIND = {
    InteractionKind.REPLAY: "replay_count",
    InteractionKind.REWIND: "replay_count",
    InteractionKind.SKIP: "skip_count",
    InteractionKind.PAUSE: "pause_count",
}

POINT_COLUMNS = [
    "bucket_id",
    "lecture_id",
    "timestamp",
    "confusion_score",
    "replay_count",
    "skip_count",
    "pause_count",
    "average_watch_time",
    "created_at",
]


def watch_time_deficit(average_watch_time: float) -> float:
    """Shorter average watch time means more confusion; 0 at or beyond one minute."""

    return min(max(1 - average_watch_time / WATCH_TIME_REFERENCE_SECONDS, 0.0), 1.0)


def confusion_score(replay_count: int, skip_count: int, pause_count: int, average_watch_time: float) -> int:
    w = CONFUSION_WEIGHTS
    return weighted_percentage(
        [
            (normalize(replay_count, w["replay"].cap), w["replay"].weight),
            (normalize(skip_count, w["skip"].cap), w["skip"].weight),
            (normalize(pause_count, w["pause"].cap), w["pause"].weight),
            (watch_time_deficit(average_watch_time), w["watch_time_deficit"].weight),
        ]
    )


def recompute_confusion(bucket: ConfusionBucket) -> ConfusionBucket:
    bucket.confusion_score = confusion_score(
        bucket.replay_count, bucket.skip_count, bucket.pause_count, bucket.average_watch_time
    )
    return bucket


def _validate_timestamp(timestamp: Any) -> float:
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        raise InvalidInputError(f"Timestamp must be a number, got {timestamp!r}")
    if not math.isfinite(timestamp) or timestamp < 0:
        raise InvalidInputError(f"Timestamp must be a finite non-negative number, got {timestamp!r}")
    if timestamp > MAX_TIMESTAMP_SECONDS:
        raise InvalidInputError(f"Timestamp {timestamp!r} exceeds {MAX_TIMESTAMP_SECONDS:g} seconds")
    return float(timestamp)


def _validate_kind(kind: Union[str, InteractionKind]) -> InteractionKind:
    try:
        return InteractionKind(kind)
    except ValueError as exc:
        allowed = ", ".join(k.value for k in InteractionKind)
        raise InvalidInputError(f"Invalid interaction kind {kind!r}; expected one of {allowed}") from exc


class ConfusionService:
    """
    Event aggregator for confusion telemetry plus the read side used by dashboards.

    ``record_interaction`` is safe to call from many threads at once: the
    counter increment, the interaction append and bucket creation happen in a
    single ``find_one_and_update`` against the store, and the running watch-time
    average is folded in by a second atomic per-key update.
    """

    def __init__(
        self,
        store: RecordStore,
        source: LearningDataSource,
        config: Optional[ConfusionConfig] = None,
        reporting: Optional[ReportingConfig] = None,
    ):
        self.store = store
        self.source = source
        self.config = config or ConfusionConfig()
        self.reporting = reporting or ReportingConfig()

    def record_interaction(
        self,
        lecture_id: str,
        timestamp: float,
        kind: Union[str, InteractionKind],
        student_id: str,
    ) -> ConfusionBucket:
        if not lecture_id:
            raise InvalidInputError("lecture_id is required")
        if not student_id:
            raise InvalidInputError("student_id is required")
        timestamp = _validate_timestamp(timestamp)
        kind = _validate_kind(kind)
        lecture = self.source.get_lecture(lecture_id)
        if lecture is None:
            raise NotFoundError("lecture", lecture_id)

        window = self.config.window_seconds
        counter = COUNTER_FOR_KIND[kind]

        def in_window(bucket: ConfusionBucket) -> bool:
            return bucket.lecture_id == lecture_id and abs(bucket.timestamp - timestamp) <= window

        def nearest(candidates: List[ConfusionBucket]) -> ConfusionBucket:
            return min(candidates, key=lambda b: (abs(b.timestamp - timestamp), b.created_at, b.bucket_id))

        def create() -> ConfusionBucket:
            return ConfusionBucket(
                bucket_id=f"{lecture_id}@{timestamp!r}",
                lecture_id=lecture_id,
                course_id=lecture.course_id,
                timestamp=timestamp,
            )

        def merge(bucket: ConfusionBucket) -> None:
            setattr(bucket, counter, getattr(bucket, counter) + 1)
            bucket.student_interactions.append(StudentInteraction(student_id, kind, utc_now()))

        merged = self.store.find_one_and_update(CONFUSION, in_window, merge, upsert=create, choose=nearest)

        def fold_watch_time(bucket: ConfusionBucket) -> None:
            bucket.watch_time_sum += timestamp
            bucket.watch_time_count += 1
            bucket.average_watch_time = round_half_up(bucket.watch_time_sum / bucket.watch_time_count)
            recompute_confusion(bucket)
            bucket.updated_at = utc_now()

        bucket = self.store.update(CONFUSION, merged.key, fold_watch_time)
        logger.debug(
            "Recorded %s on lecture %s at %.1fs into bucket %s (score %d)",
            kind.value, lecture_id, timestamp, bucket.bucket_id, bucket.confusion_score,
        )
        return bucket

    def get(self, bucket_id: str) -> ConfusionBucket:
        bucket = self.store.get(CONFUSION, bucket_id)
        if bucket is None:
            raise NotFoundError("confusion bucket", bucket_id)
        return bucket

    def get_many(self, lecture_id: str, min_score: Optional[int] = None) -> List[ConfusionBucket]:
        """Buckets of one lecture in playback order."""

        if self.source.get_lecture(lecture_id) is None:
            raise NotFoundError("lecture", lecture_id)
        buckets = self.store.find(
            CONFUSION,
            lambda b: b.lecture_id == lecture_id and (min_score is None or b.confusion_score >= min_score),
        )
        return sorted(buckets, key=lambda b: b.timestamp)

    def top_points(self, course_id: str, limit: Optional[int] = None) -> List[ConfusionBucket]:
        """Most confusing buckets of a course, highest score first."""

        self._require_course(course_id)
        limit = self.config.course_listing_limit if limit is None else limit
        buckets = self.store.find(CONFUSION, lambda b: b.course_id == course_id)
        return sorted(buckets, key=lambda b: (-b.confusion_score, b.lecture_id, b.timestamp))[:limit]

    def _require_course(self, course_id: str) -> None:
        if self.source.get_course(course_id) is None:
            raise NotFoundError("course", course_id)

    def analyze_lecture(self, lecture_id: str) -> Dict[str, Any]:
        lecture = self.source.get_lecture(lecture_id)
        if lecture is None:
            raise NotFoundError("lecture", lecture_id)
        points = records_frame(self.get_many(lecture_id), POINT_COLUMNS)
        high = self.config.high_confusion_threshold

        if points.empty:
            worst_timestamp, worst_score = None, 0
        else:
            # idxmax returns the first maximum, which is the earliest timestamp.
            worst = points.loc[points["confusion_score"].astype(int).idxmax()]
            worst_timestamp = float(worst["timestamp"]) if worst["confusion_score"] > 0 else None
            worst_score = int(worst["confusion_score"])

        return {
            "lecture": {"id": lecture.lecture_id, "title": lecture.title, "duration": lecture.duration},
            "analysis": {
                "total_confusion_points": len(points),
                "average_confusion_score": _mean(points, "confusion_score"),
                "high_confusion_segments": int((points["confusion_score"] > high).sum()) if len(points) else 0,
                "most_problematic_timestamp": worst_timestamp,
                "most_problematic_score": worst_score,
            },
            "confusion_points": points.drop(columns=["bucket_id", "lecture_id", "created_at"]).to_dict("records"),
        }

    def timeline(
        self,
        lecture_id: str,
        window_seconds: Optional[float] = None,
        start: float = 0,
        end: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fixed-width heatmap slots over ``[start, end]`` of a lecture.

        ``end`` defaults to the lecture duration. Each slot starting at ``t``
        covers buckets anchored in ``[t, t + window_seconds)`` (never past
        ``end``) and reports their rounded average score, summed counters and
        the number of distinct students. Empty slots are reported with zeros.
        """

        lecture = self.source.get_lecture(lecture_id)
        if lecture is None:
            raise NotFoundError("lecture", lecture_id)
        width = self.config.window_seconds if window_seconds is None else window_seconds
        if not width or width <= 0:
            raise InvalidInputError(f"window_seconds must be > 0, got {width}")
        end = lecture.duration if end is None else end
        if start < 0 or end < start:
            raise InvalidInputError(f"Invalid timeline range [{start}, {end}]")
        if end <= 0:
            return []

        slots = int(math.floor((end - start) / width)) + 1
        members_by_slot: List[List[ConfusionBucket]] = [[] for _ in range(slots)]
        for bucket in self.get_many(lecture_id):
            if not start <= bucket.timestamp <= end:
                continue
            index = min(int((bucket.timestamp - start) // width), slots - 1)
            # A bucket anchored exactly at end belongs to the slot that reaches end.
            if index > 0 and start + index * width >= end:
                index -= 1
            members_by_slot[index].append(bucket)

        rows: List[Dict[str, Any]] = []
        for index, members in enumerate(members_by_slot):
            slot_start = start + index * width
            rows.append(
                {
                    "timestamp": slot_start,
                    "confusion_score": (
                        round_half_up(sum(b.confusion_score for b in members) / len(members)) if members else 0
                    ),
                    "replay_count": sum(b.replay_count for b in members),
                    "skip_count": sum(b.skip_count for b in members),
                    "pause_count": sum(b.pause_count for b in members),
                    "student_count": len({i.student_id for b in members for i in b.student_interactions}),
                }
            )
        return rows

    def analyze_course(self, course_id: str) -> Dict[str, Any]:
        self._require_course(course_id)
        course = self.source.get_course(course_id)
        lectures = {l.lecture_id: l for l in self.source.list_lectures(course_id)}
        points = records_frame(
            self.store.find(CONFUSION, lambda b: b.lecture_id in lectures), POINT_COLUMNS
        )
        high = self.config.high_confusion_threshold

        breakdown: List[Dict[str, Any]] = []
        if not points.empty:
            scores = points["confusion_score"].astype(int)
            grouped = (
                points.assign(confusion_score=scores, is_high=scores > high)
                .groupby("lecture_id")
                .agg(
                    total_confusion_points=("confusion_score", "count"),
                    average_confusion_score=("confusion_score", "mean"),
                    high_confusion_points=("is_high", "sum"),
                )
                .reset_index()
                .sort_values(["average_confusion_score", "lecture_id"], ascending=[False, True], kind="mergesort")
            )
            for row in grouped.itertuples(index=False):
                breakdown.append(
                    {
                        "lecture_id": row.lecture_id,
                        "title": lectures[row.lecture_id].title,
                        "total_confusion_points": int(row.total_confusion_points),
                        "average_confusion_score": round(float(row.average_confusion_score), 2),
                        "high_confusion_points": int(row.high_confusion_points),
                    }
                )

        return {
            "course": {"id": course_id, "title": course.title},
            "analysis": {
                "total_confusion_points": len(points),
                "average_course_confusion": _mean(points, "confusion_score"),
                "most_problematic_lectures": breakdown[:5],
            },
            "lecture_breakdown": breakdown,
        }

    def summary(self, course_id: str) -> Dict[str, Any]:
        """Aggregate counters for a course plus its five most confusing buckets."""

        self._require_course(course_id)
        buckets = self.store.find(CONFUSION, lambda b: b.course_id == course_id)
        frame = records_frame(buckets, POINT_COLUMNS)
        stats: Dict[str, Any] = {}
        if not frame.empty:
            scores = frame["confusion_score"].astype(int)
            stats = {
                "total_confusion_points": len(frame),
                "average_confusion_score": _mean(frame, "confusion_score"),
                "max_confusion_score": int(scores.max()),
                "min_confusion_score": int(scores.min()),
                "total_replays": int(frame["replay_count"].sum()),
                "total_skips": int(frame["skip_count"].sum()),
                "total_pauses": int(frame["pause_count"].sum()),
            }
        return {"stats": stats, "top_confusion_points": self.top_points(course_id, limit=5)}

    def trend(self, course_id: str, days: Optional[int] = None, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """Number of confusion buckets opened per day over the last ``days`` days."""

        self._require_course(course_id)
        days = self.reporting.confusion_trend_days if days is None else days
        if days < 1:
            raise InvalidInputError(f"days must be >= 1, got {days}")
        today = today or utc_now().date()
        start = today - timedelta(days=days)
        lecture_ids = {l.lecture_id for l in self.source.list_lectures(course_id)}
        buckets = self.store.find(
            CONFUSION,
            lambda b: b.lecture_id in lecture_ids and start <= b.created_at.date() <= today,
        )
        if not buckets:
            return []
        frame = pd.DataFrame({"day": [b.created_at.date() for b in buckets]})
        counts = frame.groupby("day").size().sort_index()
        return [{"date": day.isoformat(), "confusion_points": int(n)} for day, n in counts.items()]

    def recommendations(self, lecture_id: str) -> List[Dict[str, str]]:
        analysis = self.analyze_lecture(lecture_id)
        points = analysis["confusion_points"]
        recommendations: List[Dict[str, str]] = []

        if analysis["analysis"]["average_confusion_score"] > 60:
            recommendations.append(
                {
                    "type": "content",
                    "priority": "high",
                    "message": "This lecture has high overall confusion. Consider breaking it into smaller segments.",
                    "action": "Review lecture structure and simplify complex concepts",
                }
            )
        rules = [
            ("replay_count", 5, "content", "high replay counts", "Add supplementary examples or visual aids to these sections"),
            ("skip_count", 3, "engagement", "high skip rates", "Review content relevance and add interactive elements"),
            ("pause_count", 4, "content", "high pause rates", "Add checkpoints or knowledge checks in these sections"),
        ]
        for column, limit, kind, label, action in rules:
            flagged = sum(1 for p in points if p[column] > limit)
            if flagged:
                recommendations.append(
                    {
                        "type": kind,
                        "priority": "medium",
                        "message": f"Found {flagged} sections with {label}.",
                        "action": action,
                    }
                )
        return recommendations


def _mean(frame: pd.DataFrame, column: str) -> float:
    return round(column_mean(frame, column), 2)
