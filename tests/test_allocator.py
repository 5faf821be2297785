import pytest

from allocation_errors import InsufficientQuestionsError
from allocator import (
    derive_seed,
    draw,
    draw_counts,
    fixed_set,
    shuffle_order,
    student_rng,
)


POOL = [f"Q{i}" for i in range(1, 31)]


def test_seed_is_stable_and_depends_on_every_part():
    seed = derive_seed("hw1", "S1")
    assert seed == derive_seed("hw1", "S1")
    assert seed != derive_seed("hw1", "S2")
    assert seed != derive_seed("hw2", "S1")
    assert seed != derive_seed("hw1", "S1", nonce="secret")
    assert 0 <= seed < 2 ** 64


def test_flat_draw_has_distinct_ids_from_pool():
    quiz = draw("S1", 10, POOL, rng=student_rng("hw1", "S1"))
    assert len(quiz) == 10
    assert len(set(quiz)) == 10
    assert set(quiz) <= set(POOL)


def test_same_seed_reproduces_the_draw():
    first = draw("S1", 10, POOL, rng=student_rng("hw1", "S1"))
    second = draw("S1", 10, POOL, rng=student_rng("hw1", "S1"))
    assert first == second


def test_different_students_get_different_draws():
    s1 = draw("S1", 10, POOL, rng=student_rng("hw1", "S1"))
    s2 = draw("S2", 10, POOL, rng=student_rng("hw1", "S2"))
    assert s1 != s2


def test_drawing_whole_pool_is_a_permutation():
    quiz = draw("S1", len(POOL), POOL, rng=student_rng("hw1", "S1"))
    assert sorted(quiz) == sorted(POOL)


def test_pool_smaller_than_draw_fails():
    with pytest.raises(InsufficientQuestionsError) as excinfo:
        draw("S9", 5, POOL[:4], rng=student_rng("hw1", "S9"))
    err = excinfo.value
    assert err.student_id == "S9"
    assert err.required == 5
    assert err.available == 4
    assert err.shortfall == 1
    assert err.topic is None


def test_zero_count_draws_nothing():
    assert draw("S1", 0, POOL, rng=student_rng("hw1", "S1")) == []


def test_weighted_draw_follows_quota_order():
    by_topic = {"A": ("A1", "A2", "A3"), "B": ("B1", "B2")}
    quiz = draw(
        "S1", 3, ["A1", "A2", "A3", "B1", "B2"],
        quotas_by_topic={"A": 2, "B": 1},
        rng=student_rng("hw1", "S1"),
        pool_by_topic=by_topic,
    )
    assert len(quiz) == 3
    assert set(quiz[:2]) <= set(by_topic["A"])
    assert quiz[2] in by_topic["B"]
    assert len(set(quiz)) == 3


def test_weighted_draw_reports_short_topic():
    by_topic = {"A": ("A1", "A2", "A3"), "B": ("B1",)}
    with pytest.raises(InsufficientQuestionsError) as excinfo:
        draw(
            "S1", 4, ["A1", "A2", "A3", "B1"],
            quotas_by_topic={"A": 2, "B": 2},
            rng=student_rng("hw1", "S1"),
            pool_by_topic=by_topic,
        )
    assert excinfo.value.topic == "B"
    assert excinfo.value.shortfalls == {"B": 1}
    assert "Topic 'B' needs 2 questions but only 1 are eligible" in str(excinfo.value)


def test_quotas_must_match_required_count():
    with pytest.raises(ValueError):
        draw("S1", 5, POOL, quotas_by_topic={"A": 2}, rng=student_rng("hw1", "S1"),
             pool_by_topic={"A": ("Q1", "Q2")})


def test_random_draw_needs_a_generator():
    with pytest.raises(ValueError):
        draw("S1", 3, POOL)


def test_fixed_set_returns_pool_unchanged():
    assert fixed_set(("Q3", "Q1", "Q2")) == ["Q3", "Q1", "Q2"]


def test_shuffle_order_is_a_permutation():
    quiz = POOL[:10]
    shuffled = shuffle_order(quiz, student_rng("hw1", "S1"))
    assert sorted(shuffled) == sorted(quiz)
    assert quiz == POOL[:10]


def test_draw_counts():
    assert draw_counts({"S1": ["Q1", "Q2"], "S2": ["Q2"]}) == {"Q1": 1, "Q2": 2}
