# ABOUTME: Read-only contracts for the raw platform data the engine scores.
# ABOUTME: Provides an in-memory implementation built from plain dictionaries for tests and the CLI.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class Course:
    course_id: str
    title: str = ""
    category: Optional[str] = None
    creator_id: Optional[str] = None
    is_published: bool = True
    is_deleted: bool = False
    revenue: float = 0.0
    average_rating: float = 0.0
    views: int = 0
    total_enrolled: int = 0
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Lecture:
    lecture_id: str
    course_id: str
    title: str = ""
    order: int = 0
    duration: float = 0.0  # seconds
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProgressRecord:
    student_id: str
    lecture_id: str
    is_completed: bool = False
    last_watched: Optional[datetime] = None


@dataclass(frozen=True)
class DailyActivity:
    enrollments: int = 0
    completions: int = 0
    reviews: int = 0
    questions: int = 0


@dataclass(frozen=True)
class WeeklyOutput:
    courses_created: int = 0
    lectures_uploaded: int = 0
    notes_uploaded: int = 0
    assignments_created: int = 0
    quizzes_added: int = 0


class LearningDataSource(Protocol):
    def get_course(self, course_id: str) -> Optional[Course]:
        ...

    def get_lecture(self, lecture_id: str) -> Optional[Lecture]:
        ...

    def has_student(self, student_id: str) -> bool:
        ...

    def has_educator(self, educator_id: str) -> bool:
        ...

    def list_lectures(self, course_id: str) -> List[Lecture]:
        """Lectures of a course in course order."""
        ...

    def list_progress(self, lecture_id: str) -> List[ProgressRecord]:
        ...

    def list_leaderboard_courses(self) -> List[Course]:
        """Courses eligible for ranking: published and not deleted."""
        ...

    def count_daily_activity(self, course_id: str, day: date) -> DailyActivity:
        ...

    def count_weekly_output(self, educator_id: str, week_start: date) -> WeeklyOutput:
        ...


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _day_bounds(day: date) -> Tuple[datetime, datetime]:
    start = datetime(day.year, day.month, day.day, tzinfo=timezone.utc)
    return start, start + timedelta(days=1)


def _within(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    return moment is not None and start <= moment < end


@dataclass
class InMemoryLearningData:
    """Dictionary-backed :class:`LearningDataSource`.

    Activity streams (enrollments, reviews, questions, notes, assignments,
    quizzes) are lists of ``{"course_id"|"creator_id": ..., "at": datetime}``.
    """

    courses: Dict[str, Course] = field(default_factory=dict)
    lectures: Dict[str, Lecture] = field(default_factory=dict)
    progress: Dict[str, List[ProgressRecord]] = field(default_factory=dict)
    students: set = field(default_factory=set)
    educators: set = field(default_factory=set)
    enrollments: List[Mapping[str, Any]] = field(default_factory=list)
    reviews: List[Mapping[str, Any]] = field(default_factory=list)
    questions: List[Mapping[str, Any]] = field(default_factory=list)
    notes: List[Mapping[str, Any]] = field(default_factory=list)
    assignments: List[Mapping[str, Any]] = field(default_factory=list)
    quizzes: List[Mapping[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "InMemoryLearningData":
        data = cls()
        for raw in payload.get("courses", []):
            course = Course(**{**raw, "created_at": _parse_datetime(raw.get("created_at"))})
            data.courses[course.course_id] = course
        for raw in payload.get("lectures", []):
            lecture = Lecture(**{**raw, "created_at": _parse_datetime(raw.get("created_at"))})
            data.lectures[lecture.lecture_id] = lecture
        for raw in payload.get("progress", []):
            record = ProgressRecord(**{**raw, "last_watched": _parse_datetime(raw.get("last_watched"))})
            data.progress.setdefault(record.lecture_id, []).append(record)
        data.students.update(payload.get("students", []))
        data.educators.update(payload.get("educators", []))
        for stream in ("enrollments", "reviews", "questions", "notes", "assignments", "quizzes"):
            events = [{**raw, "at": _parse_datetime(raw.get("at"))} for raw in payload.get(stream, [])]
            getattr(data, stream).extend(events)
        return data

    def add_course(self, course: Course) -> None:
        self.courses[course.course_id] = course

    def add_lecture(self, lecture: Lecture, progress: Sequence[ProgressRecord] = ()) -> None:
        self.lectures[lecture.lecture_id] = lecture
        if progress:
            self.progress.setdefault(lecture.lecture_id, []).extend(progress)

    def get_course(self, course_id: str) -> Optional[Course]:
        return self.courses.get(course_id)

    def get_lecture(self, lecture_id: str) -> Optional[Lecture]:
        return self.lectures.get(lecture_id)

    def has_student(self, student_id: str) -> bool:
        return student_id in self.students

    def has_educator(self, educator_id: str) -> bool:
        return educator_id in self.educators or any(
            c.creator_id == educator_id for c in self.courses.values()
        )

    def list_lectures(self, course_id: str) -> List[Lecture]:
        lectures = [l for l in self.lectures.values() if l.course_id == course_id]
        return sorted(lectures, key=lambda l: (l.order, l.lecture_id))

    def list_progress(self, lecture_id: str) -> List[ProgressRecord]:
        return list(self.progress.get(lecture_id, []))

    def list_leaderboard_courses(self) -> List[Course]:
        return [c for c in self.courses.values() if c.is_published and not c.is_deleted]

    def count_daily_activity(self, course_id: str, day: date) -> DailyActivity:
        start, end = _day_bounds(day)
        lecture_ids = {l.lecture_id for l in self.list_lectures(course_id)}
        completions = sum(
            1
            for lecture_id in lecture_ids
            for p in self.progress.get(lecture_id, [])
            if p.is_completed and _within(p.last_watched, start, end)
        )
        return DailyActivity(
            enrollments=self._count(self.enrollments, "course_id", course_id, start, end),
            completions=completions,
            reviews=self._count(self.reviews, "course_id", course_id, start, end),
            questions=self._count(self.questions, "course_id", course_id, start, end),
        )

    def count_weekly_output(self, educator_id: str, week_start: date) -> WeeklyOutput:
        start, _ = _day_bounds(week_start)
        end = start + timedelta(days=7)
        owned = {c.course_id for c in self.courses.values() if c.creator_id == educator_id}
        courses_created = sum(
            1 for c in self.courses.values()
            if c.course_id in owned and _within(c.created_at, start, end)
        )
        lectures_uploaded = sum(
            1 for l in self.lectures.values()
            if l.course_id in owned and _within(l.created_at, start, end)
        )
        return WeeklyOutput(
            courses_created=courses_created,
            lectures_uploaded=lectures_uploaded,
            notes_uploaded=self._count(self.notes, "creator_id", educator_id, start, end),
            assignments_created=self._count(self.assignments, "creator_id", educator_id, start, end),
            quizzes_added=self._count(self.quizzes, "creator_id", educator_id, start, end),
        )

    @staticmethod
    def _count(events, field_name: str, owner: str, start: datetime, end: datetime) -> int:
        return sum(1 for e in events if e.get(field_name) == owner and _within(e.get("at"), start, end))
