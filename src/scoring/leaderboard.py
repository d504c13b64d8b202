# ABOUTME: Ranks courses by a composite of revenue, rating, views and enrollments.
# ABOUTME: Metrics are normalized against the best course in the pass, then ranked densely.

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from src.common.config import LeaderboardConfig
from src.common.errors import InvalidInputError, NotFoundError
from src.common.normalization import clamp, normalize, round_half_up
from src.common.schemas import LeaderboardEntry, utc_now
from src.common.sources import Course, LearningDataSource
from src.common.store import LEADERBOARD, RecordStore
from src.common.updates import LeaderboardMetrics, parse_update

logger = logging.getLogger(__name__)

METRICS = ("revenue", "rating", "views", "enrollments")


class LeaderboardRanker:
    """
    Max-normalized composite scoring.

    Every score in a pass is computed before any rank is assigned, so a
    failure while scoring leaves ranks untouched.
    """

    def __init__(self, weights: Optional[Mapping[str, float]] = None):
        self.weights = dict(weights or LeaderboardConfig().weights)
        missing = set(METRICS) - set(self.weights)
        if missing:
            raise InvalidInputError(f"Missing leaderboard weights: {sorted(missing)}")

    def score(self, entries: Sequence[LeaderboardEntry]) -> List[LeaderboardEntry]:
        maxima = {m: max((getattr(e, m) for e in entries), default=0) for m in METRICS}
        for entry in entries:
            total = 0
            for metric in METRICS:
                value = round_half_up(100 * normalize(getattr(entry, metric), maxima[metric]) * self.weights[metric])
                setattr(entry, f"{metric}_score", value)
                total += value
            entry.composite_score = int(clamp(round_half_up(total)))
            entry.updated_at = utc_now()
        return list(entries)

    def rank(self, entries: Sequence[LeaderboardEntry]) -> List[LeaderboardEntry]:
        """Sort by composite score, highest first; equal scores fall back to course id."""

        scored = self.score(entries)
        ordered = sorted(scored, key=lambda e: (-e.composite_score, e.course_id))
        for position, entry in enumerate(ordered, start=1):
            entry.rank = position
        return ordered


def entry_from_course(course: Course) -> LeaderboardEntry:
    return LeaderboardEntry(
        course_id=course.course_id,
        revenue=course.revenue,
        rating=course.average_rating,
        views=course.views,
        enrollments=course.total_enrolled,
    )


class LeaderboardService:
    def __init__(self, store: RecordStore, source: LearningDataSource, config: Optional[LeaderboardConfig] = None):
        self.store = store
        self.source = source
        self.config = config or LeaderboardConfig()
        self.ranker = LeaderboardRanker(self.config.weights)
        # Serializes whole ranking passes so two re-ranks cannot interleave.
        self._pass_lock = threading.Lock()

    def recompute_batch(self) -> List[LeaderboardEntry]:
        """Rebuild the leaderboard from every published, non-deleted course."""

        entries = [entry_from_course(c) for c in self.source.list_leaderboard_courses()]
        with self._pass_lock:
            ranked = self.ranker.rank(entries)
            stored = self.store.replace_all(LEADERBOARD, ranked)
        logger.info("Ranked %d courses", len(stored))
        return stored

    def ingest(self, course_id: str, metrics: Union[LeaderboardMetrics, Dict[str, Any]]) -> LeaderboardEntry:
        """Overwrite one course's raw metrics, then re-rank every entry."""

        changes = parse_update(LeaderboardMetrics, metrics).changes()
        course = self.source.get_course(course_id)
        if course is None:
            raise NotFoundError("course", course_id)

        with self._pass_lock:
            entries = {e.course_id: e for e in self.store.find(LEADERBOARD)}
            entry = entries.get(course_id) or entry_from_course(course)
            for name, value in changes.items():
                setattr(entry, name, value)
            entries[course_id] = entry
            ranked = self.ranker.rank(list(entries.values()))
            self.store.replace_all(LEADERBOARD, ranked)
        return next(e for e in ranked if e.course_id == course_id)

    def get(self, course_id: str) -> LeaderboardEntry:
        if self.source.get_course(course_id) is None:
            raise NotFoundError("course", course_id)
        entry = self.store.get(LEADERBOARD, course_id)
        if entry is None:
            raise NotFoundError("leaderboard entry", course_id)
        return entry

    def get_many(self, limit: Optional[int] = None, category: Optional[str] = None) -> List[LeaderboardEntry]:
        """Entries in rank order, optionally only courses of one category."""

        limit = self.config.default_limit if limit is None else limit
        if limit < 1:
            raise InvalidInputError(f"limit must be >= 1, got {limit}")

        def wanted(entry: LeaderboardEntry) -> bool:
            if category is None:
                return True
            course = self.source.get_course(entry.course_id)
            return course is not None and course.category == category

        entries = self.store.find(LEADERBOARD, wanted)
        return sorted(entries, key=lambda e: (e.rank is None, e.rank or 0, e.course_id))[:limit]

    def top_by_metric(self, metric: str, limit: Optional[int] = None) -> List[LeaderboardEntry]:
        if metric not in METRICS:
            raise InvalidInputError(f"Invalid metric {metric!r}. Must be one of: {', '.join(METRICS)}")
        limit = self.config.default_limit if limit is None else limit
        if limit < 1:
            raise InvalidInputError(f"limit must be >= 1, got {limit}")
        entries = self.store.find(LEADERBOARD)
        return sorted(entries, key=lambda e: (-getattr(e, metric), e.course_id))[:limit]
