"""
Attendance Resolver Module

Maps a student's attendance percentage to one attendance rule band.

Band policy:
- A rule matches when min <= percentage <= max (both ends inclusive)
- When a percentage sits on a shared boundary (one rule's max and the
  next rule's min), the upper band wins: the rule with min == percentage
- A percentage in a gap between bands raises UnassignableStudentError
- Overlapping, non-adjacent bands are rejected by validate_rules()
  before any allocation runs
"""

from typing import List, Optional, Sequence, Tuple

from allocation_errors import UnassignableStudentError, ValidationError
from assignment_models import AttendanceRecord, AttendanceRule


MIN_PERCENT = 0.0
MAX_PERCENT = 100.0


def attendance_percentage(record: AttendanceRecord) -> float:
    """
    Attendance percentage for one snapshot record.

    A student with no recorded classes counts as 0%. Values above 100
    (manual adjustments folded into attended_count) are clamped to 100.
    """
    if record.total_count == 0:
        return 0.0
    # multiply first so exact percentages such as 14/20 stay exact
    percent = record.attended_count * 100 / record.total_count
    return min(percent, MAX_PERCENT)


def validate_rules(rules: Sequence[AttendanceRule]) -> None:
    """
    Validate a rule set at spec-creation time.

    Raises:
        ValidationError: no rules, bounds outside [0, 100], min > max,
            count < 1, or two bands overlapping beyond a shared boundary
    """
    if not rules:
        raise ValidationError("Add at least one attendance rule", field="rules")

    for idx, rule in enumerate(rules):
        where = f"rules[{idx}]"
        if rule.min_percent > rule.max_percent:
            raise ValidationError(
                f"Invalid rule {rule.label()}: Min ({rule.min_percent:g}) "
                f"cannot be greater than Max ({rule.max_percent:g})",
                field=where,
            )
        if rule.min_percent < MIN_PERCENT or rule.max_percent > MAX_PERCENT:
            raise ValidationError(
                f"Invalid rule {rule.label()}: bounds must lie within 0-100%",
                field=where,
            )
        if rule.count < 1:
            raise ValidationError(
                f"Invalid rule {rule.label()}: question count must be at least 1",
                field=where,
            )

    overlap = find_overlap(rules)
    if overlap is not None:
        first, second = overlap
        raise ValidationError(
            f"Attendance rules {first.label()} and {second.label()} overlap",
            field="rules",
        )


def find_overlap(
    rules: Sequence[AttendanceRule]
) -> Optional[Tuple[AttendanceRule, AttendanceRule]]:
    """
    Return the first pair of bands that overlap beyond a shared boundary.

    [0, 70] and [70, 100] only touch and are fine. [0, 75] and [70, 100]
    overlap. Two bands starting at the same min always overlap.
    """
    ordered = sorted(rules, key=lambda r: (r.min_percent, r.max_percent))
    for i, lower in enumerate(ordered):
        for upper in ordered[i + 1:]:
            if upper.min_percent == lower.min_percent:
                return (lower, upper)
            if upper.min_percent < lower.max_percent:
                return (lower, upper)
    return None


def find_gaps(rules: Sequence[AttendanceRule]) -> List[Tuple[float, float]]:
    """
    List the sub-ranges of [0, 100] not covered by any band.

    Gaps are open at both ends where they border a band, e.g. rules
    [0, 40] and [50, 100] leave the gap (40, 50).
    """
    gaps: List[Tuple[float, float]] = []
    cursor = MIN_PERCENT
    for rule in sorted(rules, key=lambda r: r.min_percent):
        if rule.min_percent > cursor:
            gaps.append((cursor, rule.min_percent))
        cursor = max(cursor, rule.max_percent)
    if cursor < MAX_PERCENT:
        gaps.append((cursor, MAX_PERCENT))
    return gaps


def resolve(
    percentage: float,
    rules: Sequence[AttendanceRule],
    student_id: Optional[str] = None,
) -> AttendanceRule:
    """
    Resolve the rule band for an attendance percentage.

    Args:
        percentage: Attendance percentage in [0, 100]
        rules: Validated attendance rules
        student_id: Reported in the error when no band matches

    Returns:
        The matching AttendanceRule

    Raises:
        UnassignableStudentError: percentage falls in a gap between bands
        ValidationError: percentage matches overlapping bands (rules that
            were not checked with validate_rules)
    """
    candidates = [r for r in rules if r.contains(percentage)]
    if not candidates:
        raise UnassignableStudentError(percentage, student_id)
    if len(candidates) == 1:
        return candidates[0]

    # Shared boundary: upper interval wins
    upper = [r for r in candidates if r.min_percent == percentage]
    lower = [r for r in candidates if r.max_percent == percentage]
    if len(candidates) == 2 and len(upper) == 1 and len(lower) == 1 and upper != lower:
        return upper[0]
    raise ValidationError(
        f"Attendance {percentage:g}% matches overlapping rules: "
        f"{', '.join(r.label() for r in candidates)}",
        field="rules",
    )
