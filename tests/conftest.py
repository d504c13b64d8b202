# ABOUTME: Shared fixtures: an empty record store and a small in-memory course catalogue.
# ABOUTME: Course c1 has five ordered lectures whose completion rates fall from 90% to 20%.

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.common.sources import Course, InMemoryLearningData, Lecture, ProgressRecord
from src.common.store import InMemoryRecordStore

COMPLETION_RATES = [90, 85, 60, 40, 20]
STUDENTS_PER_LECTURE = 20


def progress_for(lecture_id: str, rate: int, students: int = STUDENTS_PER_LECTURE, when=None):
    completed = round(students * rate / 100)
    return [
        ProgressRecord(
            student_id=f"s{i}",
            lecture_id=lecture_id,
            is_completed=i < completed,
            last_watched=when,
        )
        for i in range(students)
    ]


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def source() -> InMemoryLearningData:
    data = InMemoryLearningData()
    data.add_course(
        Course("c1", title="Algebra", category="math", creator_id="edu1",
               revenue=100, average_rating=4.5, views=1000, total_enrolled=50)
    )
    data.add_course(
        Course("c2", title="Drawing", category="art", creator_id="edu1",
               revenue=50, average_rating=4.0, views=400, total_enrolled=20)
    )
    for position, rate in enumerate(COMPLETION_RATES, start=1):
        lecture_id = f"l{position}"
        duration = 2400 if position == 3 else 600
        data.add_lecture(
            Lecture(lecture_id, "c1", title=f"Lecture {position}", order=position, duration=duration),
            progress_for(lecture_id, rate),
        )
    data.add_lecture(Lecture("d1", "c2", title="Shapes", order=1, duration=900))
    data.students.update({"s0", "s1", "s2", "s3"})
    data.educators.add("edu1")
    return data


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)
