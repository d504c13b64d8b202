# ABOUTME: Tests weekly educator productivity scoring, Monday alignment and history queries.
# ABOUTME: Weekly output is recounted from raw course, lecture and note events.

from datetime import date, datetime, timezone

import pytest

from src.common.errors import InvalidInputError, NotFoundError
from src.common.schemas import ProductivityCategory, ProductivityRecord
from src.common.sources import Course, Lecture
from src.scoring.productivity import ProductivityService, recompute_productivity, week_start

MONDAY = date(2024, 5, 13)


@pytest.fixture
def service(store, source):
    return ProductivityService(store, source)


@pytest.mark.parametrize("day", [date(2024, 5, 13), date(2024, 5, 15), date(2024, 5, 19)])
def test_week_starts_on_monday(day):
    assert week_start(day) == MONDAY


@pytest.mark.parametrize(
    "counts, score, category",
    [
        (dict(courses_created=2, lectures_uploaded=10, notes_uploaded=15), 100, ProductivityCategory.EXCEPTIONAL),
        (dict(courses_created=1, lectures_uploaded=5), 35, ProductivityCategory.NEEDS_IMPROVEMENT),
        (dict(courses_created=2, lectures_uploaded=10), 70, ProductivityCategory.MODERATE),
        (dict(courses_created=2, lectures_uploaded=5, notes_uploaded=0), 50, ProductivityCategory.LOW),
        (dict(assignments_created=40, quizzes_added=40), 0, ProductivityCategory.NEEDS_IMPROVEMENT),
    ],
)
def test_score_and_category(counts, score, category):
    record = recompute_productivity(ProductivityRecord("edu1", MONDAY, **counts))

    assert record.productivity_score == score
    assert record.productivity_category == category


def test_ingest_aligns_to_week(service):
    record = service.ingest("edu1", date(2024, 5, 16), {"lectures_uploaded": 10})

    assert record.week_start == MONDAY
    assert service.get("edu1", date(2024, 5, 18)).lectures_uploaded == 10


def test_increment_accumulates(service):
    service.increment("edu1", MONDAY, {"notes_uploaded": 3})
    record = service.increment("edu1", MONDAY, {"notes_uploaded": 2, "courses_created": 1})

    assert record.notes_uploaded == 5
    assert record.courses_created == 1


def test_unknown_educator(service):
    with pytest.raises(NotFoundError):
        service.ingest("ghost", MONDAY, {"notes_uploaded": 1})


def test_current_week_created_empty(service):
    record = service.current_week("edu1", today=date(2024, 5, 17))

    assert record.week_start == MONDAY
    assert record.productivity_score == 0
    assert service.get("edu1", MONDAY) == record


def test_recompute_batch_counts_weekly_output(service, source):
    created = datetime(2024, 5, 14, 10, tzinfo=timezone.utc)
    source.add_course(Course("c9", creator_id="edu1", created_at=created))
    for i in range(4):
        source.add_lecture(Lecture(f"n{i}", "c9", order=i, created_at=created))
    source.notes.extend({"creator_id": "edu1", "at": created} for _ in range(3))
    source.notes.append({"creator_id": "edu1", "at": datetime(2024, 5, 1, tzinfo=timezone.utc)})

    record = service.recompute_batch("edu1", date(2024, 5, 15))

    assert record.week_start == MONDAY
    assert record.courses_created == 1
    assert record.lectures_uploaded == 4
    assert record.notes_uploaded == 3


def test_history_is_most_recent_first(service):
    for offset in range(5):
        service.ingest("edu1", date(2024, 4, 1 + 7 * offset), {"lectures_uploaded": offset})

    history = service.get_many("edu1", limit=3)

    assert [r.week_start for r in history] == [date(2024, 4, 29), date(2024, 4, 22), date(2024, 4, 15)]
    with pytest.raises(InvalidInputError):
        service.get_many("edu1", limit=0)


def test_summary_and_recommendations(service):
    service.ingest("edu1", MONDAY, {"courses_created": 2, "lectures_uploaded": 10, "notes_uploaded": 15})
    service.ingest("edu1", date(2024, 5, 6), {"lectures_uploaded": 2})

    summary = service.summary("edu1", weeks=12, today=date(2024, 5, 15))
    assert summary["highest_score"] == 100
    assert summary["lowest_score"] == 8
    assert summary["total_lectures"] == 12
    assert summary["total_courses"] == 2

    messages = [r["message"] for r in service.recommendations("edu1", today=date(2024, 5, 15))]
    assert messages == []


def test_empty_summary_recommends_everything(service):
    summary = service.summary("edu1", today=date(2024, 5, 15))

    assert summary["average_score"] == 0
    assert len(service.recommendations("edu1", today=date(2024, 5, 15))) == 3
