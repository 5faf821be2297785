from datetime import datetime
from fractions import Fraction

import pytest

from allocation_errors import (
    AllocationError,
    InsufficientQuestionsError,
    ValidationError,
)
from assignment_models import (
    AssignmentMode,
    AssignmentSpec,
    AttendanceRecord,
    AttendanceRule,
    Cohort,
    QuestionType,
    TopicWeight,
    normalize_course_code,
    normalize_question_type,
)
from engine_config import EngineConfig


def test_spec_from_camel_case_dict():
    spec = AssignmentSpec.from_dict({
        "assignmentId": "hw3",
        "mode": "batch",
        "pool": ["q1", "q2", 3],
        "filters": {"topics": ["Matrices"], "subtopics": []},
        "rules": [{"min": 0, "max": 70, "count": 3}, {"min": 70, "max": 100, "count": "5"}],
        "topicWeights": [{"topic": "Matrices", "weightPercent": 100}],
        "targetCohort": {"departments": ["CSE"], "year": "2", "course": "MA101"},
        "startTime": "2026-03-01T09:00:00",
        "deadline": "2026-03-08T23:59:00",
    })

    assert spec.mode == AssignmentMode.ATTENDANCE_TIERED
    assert spec.pool == ("q1", "q2", "3")
    assert spec.topic_filter == ("Matrices",)
    assert spec.rules[1] == AttendanceRule(70.0, 100.0, 5)
    assert spec.is_weighted
    assert spec.target_cohort == Cohort(departments=("CSE",), year="2", course="MA101")
    assert spec.deadline == datetime(2026, 3, 8, 23, 59)


def test_spec_from_snake_case_dict():
    spec = AssignmentSpec.from_dict({
        "assignment_id": "hw4",
        "mode": "personalized",
        "pool": ["q1"],
        "topic_counts": [{"topic": "A", "count": 1}],
        "target_student_ids": ["S1"],
        "question_count": "1",
    })
    assert spec.mode == AssignmentMode.PERSONALIZED
    assert spec.question_count == 1
    assert spec.target_student_ids == ("S1",)
    assert not spec.is_weighted


@pytest.mark.parametrize("data, field", [
    ({"assignmentId": "x", "mode": "lottery"}, "mode"),
    ({"mode": "fixed"}, "assignmentId"),
    ({"assignmentId": "x", "mode": "fixed", "rules": [{"min": 0}]}, "rules"),
    ({"assignmentId": "x", "mode": "fixed", "topicWeights": [{"topic": "A"}]}, "topicWeights"),
    ({"assignmentId": "x", "mode": "fixed", "deadline": "next friday"}, "schedule"),
    ({"assignmentId": "x", "mode": "random", "questionCount": "many"}, "questionCount"),
])
def test_spec_from_dict_rejects(data, field):
    with pytest.raises(ValidationError) as excinfo:
        AssignmentSpec.from_dict(data)
    assert excinfo.value.field == field


@pytest.mark.parametrize("alias, mode", [
    ("manual", AssignmentMode.FIXED),
    ("random", AssignmentMode.RANDOMIZED),
    ("Batch_Attendance", AssignmentMode.ATTENDANCE_TIERED),
])
def test_mode_aliases(alias, mode):
    assert AssignmentSpec.from_dict({"assignmentId": "x", "mode": alias}).mode == mode


def test_question_type_aliases():
    assert normalize_question_type("Fill in the blanks") == QuestionType.BLANKS
    assert normalize_question_type("multiple_select") == QuestionType.MSQ
    assert normalize_question_type(QuestionType.BROAD) == QuestionType.BROAD
    with pytest.raises(ValueError):
        normalize_question_type("essay")


def test_decimal_weights_are_exact():
    assert TopicWeight("A", 33.3).percent == Fraction(333, 10)
    assert TopicWeight.from_dict({"topic": "A", "weight": "12.5"}).percent == Fraction(25, 2)


def test_course_code_normalization():
    assert normalize_course_code("cs-101") == "CS101"
    assert normalize_course_code(None) == ""
    assert Cohort(course="cs 101").matches(AttendanceRecord("S1", 1, 2, course_code="CS-101"))
    assert not Cohort(year="3").matches(AttendanceRecord("S1", 1, 2, year="2"))


def test_errors_share_a_base_class():
    err = InsufficientQuestionsError(required=5, available=4)
    assert isinstance(err, AllocationError)
    assert isinstance(err, ValueError)
    assert str(err) == "Need 5 questions but only 4 are eligible"


def test_engine_config_reads_environment(monkeypatch):
    monkeypatch.setenv("ALLOCATOR_UNASSIGNABLE_POLICY", " Skip ")
    monkeypatch.setenv("ALLOCATOR_SEED_NONCE", "pepper")
    monkeypatch.setenv("ALLOCATOR_SHUFFLE", "yes")
    config = EngineConfig()
    assert config.skip_unassignable
    assert config.seed_nonce == "pepper"
    assert config.shuffle_within_student is True


def test_engine_config_rejects_unknown_policy():
    with pytest.raises(ValueError, match="Unknown unassignable policy"):
        EngineConfig(unassignable_policy="ignore")


def test_cohort_values_from_json_are_text():
    cohort = Cohort.from_dict({"departments": ["CSE", 7], "year": 2, "course": 101})
    assert cohort == Cohort(departments=("CSE", "7"), year="2", course="101")
    assert cohort.matches(AttendanceRecord("S1", 1, 2, department="7", year="2", course_code="101"))
    assert Cohort.from_dict({}) == Cohort()
