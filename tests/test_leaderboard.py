# ABOUTME: Tests max-normalized composite scoring and dense ranking of courses.
# ABOUTME: Ranks must be a gap-free permutation with non-increasing composite scores.

import random

import pytest

from src.common.errors import InvalidInputError, NotFoundError
from src.common.schemas import LeaderboardEntry
from src.common.sources import Course
from src.scoring.leaderboard import LeaderboardRanker, LeaderboardService


@pytest.fixture
def service(store, source):
    return LeaderboardService(store, source)


def test_revenue_normalized_against_best_course():
    ranked = LeaderboardRanker().rank([LeaderboardEntry("b", revenue=50), LeaderboardEntry("a", revenue=100)])

    assert [(e.course_id, e.revenue_score, e.rank) for e in ranked] == [("a", 30, 1), ("b", 15, 2)]
    assert ranked[0].composite_score == 30
    assert ranked[1].composite_score == 15


def test_zero_maximum_scores_zero():
    ranked = LeaderboardRanker().rank([LeaderboardEntry("a"), LeaderboardEntry("b")])

    assert all(e.composite_score == 0 for e in ranked)
    assert [e.rank for e in ranked] == [1, 2]


def test_full_marks_composite():
    entry = LeaderboardRanker().rank([LeaderboardEntry("a", revenue=10, rating=5, views=3, enrollments=7)])[0]

    assert (entry.revenue_score, entry.rating_score, entry.views_score, entry.enrollments_score) == (30, 20, 20, 30)
    assert entry.composite_score == 100


def test_ties_break_by_course_id():
    ranked = LeaderboardRanker().rank([LeaderboardEntry("zeta", views=5), LeaderboardEntry("alpha", views=5)])

    assert [e.course_id for e in ranked] == ["alpha", "zeta"]


def test_ranks_form_a_permutation():
    rng = random.Random(7)
    entries = [
        LeaderboardEntry(
            f"c{i}",
            revenue=rng.uniform(0, 1000),
            rating=rng.uniform(0, 5),
            views=rng.randint(0, 10_000),
            enrollments=rng.randint(0, 500),
        )
        for i in range(40)
    ]

    ranked = LeaderboardRanker().rank(entries)

    assert sorted(e.rank for e in ranked) == list(range(1, 41))
    scores = [e.composite_score for e in sorted(ranked, key=lambda e: e.rank)]
    assert all(a >= b for a, b in zip(scores, scores[1:]))
    assert all(0 <= s <= 100 for s in scores)


def test_ranker_requires_every_weight():
    with pytest.raises(InvalidInputError):
        LeaderboardRanker({"revenue": 1.0})


def test_recompute_batch_ranks_published_courses(service, source):
    source.add_course(Course("draft", revenue=10_000, is_published=False))
    source.add_course(Course("gone", revenue=10_000, is_deleted=True))

    entries = service.recompute_batch()

    assert [e.course_id for e in entries] == ["c1", "c2"]
    assert service.get("c1").rank == 1
    with pytest.raises(NotFoundError):
        service.get("draft")


def test_recompute_batch_drops_stale_entries(service, source):
    service.recompute_batch()
    source.add_course(Course("c2", is_deleted=True))

    service.recompute_batch()

    assert [e.course_id for e in service.get_many()] == ["c1"]


def test_ingest_reranks_everything(service):
    service.recompute_batch()

    entry = service.ingest("c2", {"revenue": 1000, "rating": 5, "views": 5000, "enrollments": 500})

    assert entry.rank == 1
    assert entry.composite_score == 100
    assert service.get("c1").rank == 2


def test_ingest_validation(service):
    with pytest.raises(InvalidInputError):
        service.ingest("c1", {"rating": 6})
    with pytest.raises(InvalidInputError):
        service.ingest("c1", {"rank": 1})
    with pytest.raises(NotFoundError):
        service.ingest("nope", {"views": 1})


def test_listing_by_category_and_metric(service):
    service.recompute_batch()

    assert [e.course_id for e in service.get_many(category="art")] == ["c2"]
    assert [e.course_id for e in service.get_many(limit=1)] == ["c1"]
    assert [e.course_id for e in service.top_by_metric("views")] == ["c1", "c2"]
    with pytest.raises(InvalidInputError):
        service.top_by_metric("likes")
    with pytest.raises(InvalidInputError):
        service.get_many(limit=0)
