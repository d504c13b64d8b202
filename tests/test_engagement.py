# ABOUTME: Tests engagement scoring, the at-risk overrides and course-level summaries.
# ABOUTME: Also checks that raising any activity never lowers score or category.

import pytest

from src.common.errors import InvalidInputError, NotFoundError
from src.common.schemas import EngagementCategory, EngagementRecord
from src.common.store import ENGAGEMENT
from src.scoring.engagement import EngagementService, engagement_category, engagement_score, recompute_engagement

CATEGORY_ORDER = [
    EngagementCategory.AT_RISK,
    EngagementCategory.LOW_ENGAGED,
    EngagementCategory.MODERATELY_ENGAGED,
    EngagementCategory.HIGHLY_ENGAGED,
]

MAXED = dict(
    completion_percentage=100,
    time_spent=600,
    lectures_watched=30,
    quizzes_attempted=10,
    assignments_submitted=10,
    questions_asked=10,
    discussions_participated=10,
)


@pytest.fixture
def service(store, source):
    return EngagementService(store, source)


def test_maxed_student_is_highly_engaged():
    record = recompute_engagement(EngagementRecord("s1", "c1", **MAXED))

    assert record.engagement_score == 100
    assert record.engagement_category == EngagementCategory.HIGHLY_ENGAGED


def test_low_completion_forces_at_risk():
    record = recompute_engagement(EngagementRecord("s1", "c1", **{**MAXED, "completion_percentage": 5}))

    assert record.engagement_score >= 70
    assert record.engagement_category == EngagementCategory.AT_RISK


def test_zero_activity_forces_at_risk():
    record = recompute_engagement(
        EngagementRecord("s1", "c1", completion_percentage=100, time_spent=600, questions_asked=20)
    )

    assert record.engagement_score == 70
    assert record.engagement_category == EngagementCategory.AT_RISK


def test_threshold_categories():
    record = EngagementRecord("s1", "c1", completion_percentage=50, lectures_watched=1)
    for score, expected in [(85, "highly_engaged"), (60, "moderately_engaged"), (30, "low_engaged"), (29, "at_risk")]:
        record.engagement_score = score
        assert engagement_category(record) == EngagementCategory(expected)


@pytest.mark.parametrize("field", ["completion_percentage", "time_spent", "lectures_watched", "questions_asked"])
def test_more_activity_never_lowers_score_or_category(field):
    base = dict(completion_percentage=40, time_spent=100, lectures_watched=5, questions_asked=2)
    previous_score, previous_rank = -1, -1
    for value in range(int(base[field]), int(base[field]) + 700, 7):
        record = recompute_engagement(EngagementRecord("s1", "c1", **{**base, field: min(value, 100) if field == "completion_percentage" else value}))
        rank = CATEGORY_ORDER.index(record.engagement_category)
        assert record.engagement_score >= previous_score
        assert rank >= previous_rank
        previous_score, previous_rank = record.engagement_score, rank


def test_ingest_upserts_and_rescores(service):
    first = service.ingest("s1", "c1", {"completion_percentage": 50, "lectures_watched": 10})
    second = service.ingest("s1", "c1", {"time_spent": 600})

    assert second.lectures_watched == 10
    assert second.time_spent == 600
    assert second.engagement_score > first.engagement_score
    assert service.get("s1", "c1") == second


def test_ingest_rejects_out_of_range_values(service, store):
    with pytest.raises(InvalidInputError):
        service.ingest("s1", "c1", {"completion_percentage": 120})
    with pytest.raises(InvalidInputError):
        service.ingest("s1", "c1", {"lectures_watched": -1})
    assert store.find(ENGAGEMENT) == []


def test_ingest_rejects_engine_owned_fields(service):
    with pytest.raises(InvalidInputError):
        service.ingest("s1", "c1", {"engagement_score": 100})


def test_unknown_student_or_course(service):
    with pytest.raises(NotFoundError):
        service.ingest("ghost", "c1", {"time_spent": 1})
    with pytest.raises(NotFoundError):
        service.ingest("s1", "nope", {"time_spent": 1})
    with pytest.raises(NotFoundError):
        service.get("s1", "c1")


def test_course_listings_and_summary(service):
    service.ingest("s1", "c1", MAXED)
    service.ingest("s2", "c1", {"completion_percentage": 5, "lectures_watched": 1})
    service.ingest("s3", "c1", {"completion_percentage": 3})

    assert [r.student_id for r in service.get_many("c1")][0] == "s1"
    assert {r.student_id for r in service.at_risk("c1")} == {"s2", "s3"}
    assert [r.student_id for r in service.get_many("c1", "highly_engaged")] == ["s1"]

    summary = service.summary("c1")
    assert summary["total_students"] == 3
    assert summary["at_risk_students"] == 2
    assert summary["engagement_distribution"]["highly_engaged"] == 1

    distribution = service.distribution("c1")
    assert distribution["at_risk"]["count"] == 2
    assert distribution["highly_engaged"]["average_score"] == 100

    kinds = {r["type"] for r in service.recommendations("c1")}
    assert "intervention" in kinds


def test_invalid_category_filter(service):
    with pytest.raises(InvalidInputError):
        service.get_many("c1", "bored")


def test_score_is_deterministic():
    record = EngagementRecord("s1", "c1", completion_percentage=33, time_spent=120, lectures_watched=7)
    assert engagement_score(record) == engagement_score(record)
