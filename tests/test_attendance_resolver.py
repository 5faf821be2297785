import numpy as np
import pytest

from allocation_errors import UnassignableStudentError, ValidationError
from assignment_models import AttendanceRecord, AttendanceRule
from attendance_resolver import (
    attendance_percentage,
    find_gaps,
    find_overlap,
    resolve,
    validate_rules,
)


TWO_BANDS = [AttendanceRule(0, 70, 3), AttendanceRule(70, 100, 5)]
FOUR_BANDS = [
    AttendanceRule(0, 25, 8),
    AttendanceRule(25, 50, 6),
    AttendanceRule(50, 75, 4),
    AttendanceRule(75, 100, 2),
]


def test_shared_boundary_goes_to_upper_band():
    """A student at exactly 70% falls in the 70-100 band."""
    rule = resolve(70.0, TWO_BANDS)
    assert rule.count == 5
    assert rule.min_percent == 70


def test_interior_and_extreme_percentages():
    assert resolve(0.0, TWO_BANDS).count == 3
    assert resolve(69.99, TWO_BANDS).count == 3
    assert resolve(70.01, TWO_BANDS).count == 5
    assert resolve(100.0, TWO_BANDS).count == 5


def test_rule_order_does_not_matter():
    reversed_rules = list(reversed(FOUR_BANDS))
    for p in (0.0, 25.0, 49.5, 50.0, 75.0, 100.0):
        assert resolve(p, reversed_rules) == resolve(p, FOUR_BANDS)


def test_gapless_rules_resolve_every_percentage():
    """Every p in [0, 100] matches exactly one band; boundaries pick min == p."""
    boundaries = {25.0, 50.0, 75.0}
    for p in np.linspace(0, 100, 1001):
        p = float(p)
        rule = resolve(p, FOUR_BANDS)
        assert rule.contains(p)
        if p in boundaries:
            assert rule.min_percent == p


def test_gap_raises_unassignable_with_student_and_percentage():
    rules = [AttendanceRule(0, 40, 2), AttendanceRule(50, 100, 4)]
    with pytest.raises(UnassignableStudentError) as excinfo:
        resolve(45.0, rules, student_id="S7")
    assert excinfo.value.student_id == "S7"
    assert excinfo.value.percentage == 45.0
    assert "S7" in str(excinfo.value)


def test_validate_rules_accepts_adjacent_bands():
    validate_rules(TWO_BANDS)
    validate_rules(FOUR_BANDS)
    assert find_overlap(FOUR_BANDS) is None


def test_validate_rules_rejects_inverted_bounds():
    with pytest.raises(ValidationError) as excinfo:
        validate_rules([AttendanceRule(80, 60, 3)])
    assert excinfo.value.field == "rules[0]"
    assert "cannot be greater than Max" in str(excinfo.value)


def test_validate_rules_rejects_overlapping_bands():
    with pytest.raises(ValidationError, match="overlap"):
        validate_rules([AttendanceRule(0, 75, 3), AttendanceRule(70, 100, 5)])


def test_validate_rules_rejects_bands_with_same_start():
    rules = [AttendanceRule(50, 60, 3), AttendanceRule(50, 100, 5)]
    assert find_overlap(rules) is not None
    with pytest.raises(ValidationError):
        validate_rules(rules)


def test_validate_rules_rejects_nested_band():
    with pytest.raises(ValidationError):
        validate_rules([AttendanceRule(0, 100, 3), AttendanceRule(40, 60, 5)])


@pytest.mark.parametrize("rules", [
    [],
    [AttendanceRule(0, 100, 0)],
    [AttendanceRule(-5, 50, 2)],
    [AttendanceRule(50, 110, 2)],
])
def test_validate_rules_rejects_malformed_sets(rules):
    with pytest.raises(ValidationError):
        validate_rules(rules)


def test_find_gaps():
    assert find_gaps(FOUR_BANDS) == []
    assert find_gaps([AttendanceRule(0, 40, 2), AttendanceRule(50, 100, 4)]) == [(40, 50)]
    assert find_gaps([AttendanceRule(10, 100, 2)]) == [(0.0, 10)]
    assert find_gaps([AttendanceRule(0, 90, 2)]) == [(90, 100.0)]
    assert find_gaps([]) == [(0.0, 100.0)]


def test_attendance_percentage():
    assert attendance_percentage(AttendanceRecord("S1", 14, 20)) == 70.0
    assert attendance_percentage(AttendanceRecord("S2", 0, 0)) == 0.0
    assert attendance_percentage(AttendanceRecord("S3", 22, 20)) == 100.0


def test_negative_counts_are_rejected():
    with pytest.raises(ValidationError):
        AttendanceRecord("S1", -1, 20)


@pytest.mark.parametrize("rules, percentage", [
    ([AttendanceRule(0, 75, 3), AttendanceRule(70, 100, 5)], 72.0),
    ([AttendanceRule(0, 100, 3), AttendanceRule(50, 60, 5)], 50.0),
    ([AttendanceRule(50, 60, 3), AttendanceRule(50, 100, 5)], 50.0),
])
def test_overlapping_rules_are_never_guessed(rules, percentage):
    with pytest.raises(ValidationError, match="overlapping rules"):
        resolve(percentage, rules, student_id="S1")
