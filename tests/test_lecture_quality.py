# ABOUTME: Tests lecture quality sub-scores, categories and the matching heat colors.
# ABOUTME: Also covers course listings and heatmap rows.

import pytest

from src.common.errors import InvalidInputError, NotFoundError
from src.common.schemas import HeatColor, LectureQualityRecord, QualityCategory
from src.scoring.lecture_quality import (
    LectureQualityService,
    like_dislike_score,
    recompute_quality,
    watch_duration_score,
)


@pytest.fixture
def service(store, source):
    return LectureQualityService(store, source)


def test_sub_scores():
    assert watch_duration_score(300, 600) == 50
    assert watch_duration_score(900, 600) == 100
    assert watch_duration_score(100, 0) == 0
    assert like_dislike_score(0, 0) == 50
    assert like_dislike_score(3, 1) == 75


@pytest.mark.parametrize(
    "fields, score, category, color",
    [
        (dict(watch_duration=600, total_duration=600, likes=10, engagement_score=100), 100, "excellent", "green"),
        (dict(watch_duration=300, total_duration=600, engagement_score=50), 50, "fair", "orange"),
        (dict(watch_duration=600, total_duration=600, likes=1, dislikes=1, engagement_score=60), 73, "good", "yellow"),
        (dict(total_duration=600), 15, "poor", "red"),
    ],
)
def test_quality_category_and_heat_color_share_thresholds(fields, score, category, color):
    record = recompute_quality(LectureQualityRecord("l1", "c1", **fields))

    assert record.quality_score == score
    assert record.heat_score == score
    assert record.quality_category == QualityCategory(category)
    assert record.heat_color == HeatColor(color)


def test_engagement_score_is_clamped():
    record = recompute_quality(LectureQualityRecord("l1", "c1", engagement_score=250))
    assert record.engagement_score_normalized == 100


def test_ingest_defaults_total_duration_to_lecture_length(service):
    record = service.ingest("l1", {"watch_duration": 300})

    assert record.total_duration == 600
    assert record.watch_duration_score == 50
    assert record.course_id == "c1"


def test_ingest_validation(service):
    with pytest.raises(NotFoundError):
        service.ingest("missing", {"likes": 1})
    with pytest.raises(InvalidInputError):
        service.ingest("l1", {"engagement_score": 101})
    with pytest.raises(NotFoundError):
        service.get("l1")


def test_course_listing_and_heatmap(service):
    service.ingest("l1", {"watch_duration": 600, "likes": 9, "engagement_score": 90})
    service.ingest("l2", {"watch_duration": 60, "dislikes": 4})

    assert [r.lecture_id for r in service.get_many("c1")] == ["l1", "l2"]
    assert [r.lecture_id for r in service.get_many("c1", "poor")] == ["l2"]

    rows = service.heatmap("c1")
    assert rows[0]["lecture_title"] == "Lecture 1"
    assert rows[0]["heat_color"] == "green"
    assert rows[1]["heat_color"] == "red"

    with pytest.raises(InvalidInputError):
        service.get_many("c1", "great")
