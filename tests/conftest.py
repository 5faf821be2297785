import pytest

from assignment_models import AttendanceRecord, Question, QuestionType
from pool_filter import QuestionCatalog


def make_question(question_id, topic, subtopic="General", question_type=QuestionType.MCQ):
    return Question(
        question_id=question_id,
        topic=topic,
        subtopic=subtopic,
        question_type=question_type,
        text=f"{topic} question {question_id}",
    )


@pytest.fixture
def catalog():
    """Ten Matrices questions (M1-M10), six Calculus (C1-C6), four Probability (P1-P4)."""
    questions = []
    for i in range(1, 11):
        questions.append(make_question(f"M{i}", "Matrices", "Determinants" if i <= 5 else "Eigenvalues"))
    for i in range(1, 7):
        questions.append(make_question(f"C{i}", "Calculus", "Limits" if i <= 3 else "Integrals"))
    for i in range(1, 5):
        questions.append(make_question(f"P{i}", "Probability", "Bayes", QuestionType.NUMBER))
    return QuestionCatalog(questions)


@pytest.fixture
def all_ids(catalog):
    return [q.question_id for q in catalog.get_all()]


@pytest.fixture
def roster():
    """Five students of course MA-101 with attendance 100%, 70%, 50%, 20%, 0%."""
    return [
        AttendanceRecord("S1", 20, 20, department="CSE", year="2", course_code="MA-101"),
        AttendanceRecord("S2", 14, 20, department="CSE", year="2", course_code="MA101"),
        AttendanceRecord("S3", 10, 20, department="ECE", year="2", course_code="ma101"),
        AttendanceRecord("S4", 4, 20, department="ECE", year="1", course_code="MA101"),
        AttendanceRecord("S5", 0, 0, department="ME", year="1", course_code="PH201"),
    ]
