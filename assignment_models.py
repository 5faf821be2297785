"""
Assignment Models Module

Immutable value types shared by every stage of the allocation engine:
- Question / QuestionType: catalog entries (allocation only keeps ids)
- AttendanceRule, TopicWeight, TopicCount: assignment configuration pieces
- AttendanceRecord, Cohort: the roster snapshot and its targeting filter
- AssignmentSpec: one assignment's full configuration
- AssignmentResult, SkippedStudent, PublishedAssignment: allocation output
"""

import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from allocation_errors import ValidationError


class QuestionType(str, Enum):
    BROAD = "broad"
    MCQ = "mcq"
    MSQ = "msq"
    BLANKS = "blanks"
    NUMBER = "number"


_QUESTION_TYPE_ALIASES = {
    'BROAD': QuestionType.BROAD,
    'LONG': QuestionType.BROAD,
    'DESCRIPTIVE': QuestionType.BROAD,
    'MCQ': QuestionType.MCQ,
    'MULTIPLE CHOICE': QuestionType.MCQ,
    'MSQ': QuestionType.MSQ,
    'MULTIPLE SELECT': QuestionType.MSQ,
    'BLANKS': QuestionType.BLANKS,
    'BLANK': QuestionType.BLANKS,
    'FILL IN THE BLANKS': QuestionType.BLANKS,
    'NUMBER': QuestionType.NUMBER,
    'NUMERIC': QuestionType.NUMBER,
    'NUMERICAL': QuestionType.NUMBER,
}


def normalize_question_type(value) -> QuestionType:
    """
    Normalize a question type value to a QuestionType.

    Accepts the enum values plus common spellings such as
    "Multiple Choice", "fill_in_the_blanks" or "Numerical".
    """
    if isinstance(value, QuestionType):
        return value
    v = str(value).strip().upper().replace('_', ' ').replace('-', ' ')
    v = ' '.join(v.split())
    if v in _QUESTION_TYPE_ALIASES:
        return _QUESTION_TYPE_ALIASES[v]
    raise ValueError(
        f"Unknown question type: {value}. Use broad/mcq/msq/blanks/number"
    )


@dataclass(frozen=True)
class Question:
    """A catalog question. Allocation results reference it by question_id only."""
    question_id: str
    topic: str
    subtopic: str
    question_type: QuestionType
    text: str
    image: Optional[str] = None


@dataclass(frozen=True)
class AttendanceRule:
    """Attendance band [min_percent, max_percent] mapped to a question count."""
    min_percent: float
    max_percent: float
    count: int

    def contains(self, percentage: float) -> bool:
        return self.min_percent <= percentage <= self.max_percent

    def label(self) -> str:
        return f"{self.min_percent:g}-{self.max_percent:g}% -> {self.count}"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttendanceRule":
        try:
            return cls(
                min_percent=float(data['min']),
                max_percent=float(data['max']),
                count=int(data['count']),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed attendance rule {dict(data)}: {e}", field="rules")


@dataclass(frozen=True)
class TopicWeight:
    """Percentage share of a draw to be filled from one topic."""
    topic: str
    weight: Union[int, float, str]

    @property
    def percent(self) -> Fraction:
        # str() keeps decimal weights like 33.3 exact
        return Fraction(str(self.weight))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopicWeight":
        weight = data.get('weightPercent', data.get('weight_percent', data.get('weight')))
        if 'topic' not in data or weight is None:
            raise ValidationError(f"Malformed topic weight {dict(data)}", field="topicWeights")
        return cls(topic=str(data['topic']), weight=weight)


@dataclass(frozen=True)
class TopicCount:
    """Explicit number of questions to draw from one topic."""
    topic: str
    count: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TopicCount":
        try:
            return cls(topic=str(data['topic']), count=int(data['count']))
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Malformed topic count {dict(data)}: {e}", field="topicCounts")


def normalize_course_code(code: Optional[str]) -> str:
    """Course codes compare without punctuation and case: 'cs-101' == 'CS101'."""
    return re.sub(r'[^a-zA-Z0-9]', '', code or '').upper()


@dataclass(frozen=True)
class AttendanceRecord:
    """
    One student's attendance at snapshot time, with the roster fields
    used for cohort targeting.
    """
    student_id: str
    attended_count: int
    total_count: int
    department: Optional[str] = None
    year: Optional[str] = None
    course_code: Optional[str] = None

    def __post_init__(self):
        if self.attended_count < 0 or self.total_count < 0:
            raise ValidationError(
                f"Student {self.student_id}: attendance counts cannot be negative "
                f"({self.attended_count}/{self.total_count})",
                field="attendance",
            )


@dataclass(frozen=True)
class Cohort:
    """Targeting filter over the roster. Empty fields do not restrict."""
    departments: Tuple[str, ...] = ()
    year: Optional[str] = None
    course: Optional[str] = None

    def matches(self, record: AttendanceRecord) -> bool:
        if self.departments and record.department not in self.departments:
            return False
        if self.year and self.year != 'all' and record.year != self.year:
            return False
        if self.course and normalize_course_code(record.course_code) != normalize_course_code(self.course):
            return False
        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Cohort":
        # roster fields are read as text, so JSON numbers compare as strings
        year = data.get('year')
        course = data.get('course')
        return cls(
            departments=tuple(str(d) for d in data.get('departments') or ()),
            year=str(year) if year is not None else None,
            course=str(course) if course is not None else None,
        )


class AssignmentMode(str, Enum):
    FIXED = "fixed"
    RANDOMIZED = "randomized"
    ATTENDANCE_TIERED = "attendance-tiered"
    PERSONALIZED = "personalized"


_MODE_ALIASES = {
    'fixed': AssignmentMode.FIXED,
    'manual': AssignmentMode.FIXED,
    'randomized': AssignmentMode.RANDOMIZED,
    'random': AssignmentMode.RANDOMIZED,
    'attendance-tiered': AssignmentMode.ATTENDANCE_TIERED,
    'attendance_tiered': AssignmentMode.ATTENDANCE_TIERED,
    'batch': AssignmentMode.ATTENDANCE_TIERED,
    'batch_attendance': AssignmentMode.ATTENDANCE_TIERED,
    'personalized': AssignmentMode.PERSONALIZED,
}


def _parse_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid date/time: {value}", field="schedule")


def _get(data: Mapping[str, Any], camel: str, snake: str, default=None):
    if camel in data:
        return data[camel]
    return data.get(snake, default)


@dataclass(frozen=True)
class AssignmentSpec:
    """
    Immutable configuration of one assignment.

    rules is meaningful for attendance-tiered mode, question_count for the
    flat modes (randomized, personalized). topic_counts is the explicit
    per-topic alternative to topic_weights.
    """
    assignment_id: str
    mode: AssignmentMode
    pool: Tuple[str, ...]
    title: str = ""
    topic_filter: Tuple[str, ...] = ()
    subtopic_filter: Tuple[str, ...] = ()
    rules: Tuple[AttendanceRule, ...] = ()
    topic_weights: Tuple[TopicWeight, ...] = ()
    topic_counts: Tuple[TopicCount, ...] = ()
    question_count: Optional[int] = None
    target_student_ids: Tuple[str, ...] = ()
    target_cohort: Optional[Cohort] = None
    start_time: Optional[datetime] = None
    deadline: Optional[datetime] = None

    @property
    def is_weighted(self) -> bool:
        return bool(self.topic_weights)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AssignmentSpec":
        """
        Build a spec from a JSON-shaped mapping (camelCase or snake_case keys).

        Example:
            {"assignmentId": "hw3", "mode": "batch", "pool": ["q1", "q2"],
             "filters": {"topics": ["Matrices"], "subtopics": []},
             "rules": [{"min": 0, "max": 70, "count": 3}]}
        """
        mode_value = str(data.get('mode', data.get('type', ''))).strip().lower()
        if mode_value not in _MODE_ALIASES:
            raise ValidationError(f"Unknown assignment mode: '{mode_value}'", field="mode")

        assignment_id = _get(data, 'assignmentId', 'assignment_id')
        if not assignment_id:
            raise ValidationError("assignmentId is required", field="assignmentId")

        filters = data.get('filters') or {}
        cohort_data = _get(data, 'targetCohort', 'target_cohort')
        question_count = _get(data, 'questionCount', 'question_count')
        if question_count is not None:
            try:
                question_count = int(question_count)
            except (TypeError, ValueError):
                raise ValidationError(
                    f"Question count must be a whole number, got {question_count!r}",
                    field="questionCount",
                )

        return cls(
            assignment_id=str(assignment_id),
            mode=_MODE_ALIASES[mode_value],
            pool=tuple(str(q) for q in data.get('pool') or ()),
            title=str(data.get('title', '')),
            topic_filter=tuple(filters.get('topics') or ()),
            subtopic_filter=tuple(filters.get('subtopics') or ()),
            rules=tuple(AttendanceRule.from_dict(r) for r in data.get('rules') or ()),
            topic_weights=tuple(
                TopicWeight.from_dict(w) for w in _get(data, 'topicWeights', 'topic_weights') or ()
            ),
            topic_counts=tuple(
                TopicCount.from_dict(c) for c in _get(data, 'topicCounts', 'topic_counts') or ()
            ),
            question_count=question_count,
            target_student_ids=tuple(
                str(s) for s in _get(data, 'targetStudentIds', 'target_student_ids') or ()
            ),
            target_cohort=Cohort.from_dict(cohort_data) if cohort_data else None,
            start_time=_parse_datetime(_get(data, 'startTime', 'start_time')),
            deadline=_parse_datetime(data.get('deadline')),
        )


@dataclass(frozen=True)
class SkippedStudent:
    """A student left out under the skip policy, with the reason."""
    student_id: str
    percentage: float
    reason: str


@dataclass(frozen=True)
class AssignmentResult:
    """
    Allocation output: student_id -> ordered question ids.

    Invariants: each list has required_counts[student] entries, no duplicates
    within a list, and every id belongs to `eligible`.
    """
    assignment_id: str
    allocations: Dict[str, Tuple[str, ...]]
    required_counts: Dict[str, int]
    eligible: Tuple[str, ...]
    skipped: Tuple[SkippedStudent, ...] = ()

    def students(self) -> List[str]:
        return list(self.allocations)

    def for_student(self, student_id: str) -> Tuple[str, ...]:
        return self.allocations[student_id]

    def as_lists(self) -> Dict[str, List[str]]:
        return {sid: list(qids) for sid, qids in self.allocations.items()}

    def __len__(self) -> int:
        return len(self.allocations)


@dataclass(frozen=True)
class PublishedAssignment:
    """
    A persisted allocation. Question lists are final; only the schedule
    can change, through reschedule().
    """
    result: AssignmentResult
    start_time: Optional[datetime] = None
    deadline: Optional[datetime] = None

    def __post_init__(self):
        if self.start_time and self.deadline and self.deadline < self.start_time:
            raise ValidationError(
                f"Deadline {self.deadline.isoformat()} is before start time "
                f"{self.start_time.isoformat()}",
                field="deadline",
            )

    def reschedule(
        self,
        start_time: Optional[datetime] = None,
        deadline: Optional[datetime] = None,
    ) -> "PublishedAssignment":
        """Return a copy with new scheduling fields; None keeps the current value."""
        return replace(
            self,
            start_time=start_time if start_time is not None else self.start_time,
            deadline=deadline if deadline is not None else self.deadline,
        )


def unique_in_order(items: Iterable[str]) -> Tuple[str, ...]:
    """Drop duplicates, keeping the first occurrence."""
    seen = set()
    out: List[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return tuple(out)
