"""
Metrics and Validation Module

Provides functions for:
- Computing question usage statistics for an allocation
- Calculating min/max/delta/variance of usage (overall and per-topic)
- Re-checking allocation invariants (counts, duplicates, eligibility)
- Printing validation reports
"""

from collections import Counter, defaultdict
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from allocator import draw_counts
from assignment_models import AssignmentResult
from pool_filter import QuestionCatalog


def compute_usage_table(
    result: AssignmentResult,
    catalog: QuestionCatalog
) -> pd.DataFrame:
    """
    Create a DataFrame with question usage statistics.

    Returns:
        DataFrame with columns: question_id, topic, subtopic, total_usage_count
        (one row per eligible question, sorted by topic then id)
    """
    usage = draw_counts(result.allocations)
    rows = []
    for qid in result.eligible:
        q = catalog.get_by_id(qid)
        rows.append({
            'question_id': qid,
            'topic': q.topic if q else None,
            'subtopic': q.subtopic if q else None,
            'total_usage_count': usage.get(qid, 0),
        })

    df = pd.DataFrame(rows, columns=['question_id', 'topic', 'subtopic', 'total_usage_count'])
    df = df.sort_values(['topic', 'question_id']).reset_index(drop=True)
    return df


def compute_min_max_delta(usage_counts: Dict[str, int]) -> Dict[str, int]:
    """Spread of usage counts across questions: min, max and their delta."""
    counts = np.array(list(usage_counts.values()), dtype=int)
    if counts.size == 0:
        return {'min_usage': 0, 'max_usage': 0, 'delta': 0}
    low, high = int(counts.min()), int(counts.max())
    return {'min_usage': low, 'max_usage': high, 'delta': high - low}


def compute_topic_delta(
    result: AssignmentResult,
    catalog: QuestionCatalog
) -> pd.DataFrame:
    """
    Compute min, max, delta and variance of usage for each topic.

    Returns:
        DataFrame with columns: topic, questions, min, max, delta, variance
    """
    usage = draw_counts(result.allocations)
    by_topic: Dict[str, List[int]] = defaultdict(list)
    for qid in result.eligible:
        q = catalog.get_by_id(qid)
        by_topic[q.topic].append(usage.get(qid, 0))

    rows = []
    for topic in sorted(by_topic):
        counts = by_topic[topic]
        rows.append({
            'topic': topic,
            'questions': len(counts),
            'min': min(counts),
            'max': max(counts),
            'delta': max(counts) - min(counts),
            'variance': round(float(np.var(counts)), 4),
        })

    return pd.DataFrame(rows, columns=['topic', 'questions', 'min', 'max', 'delta', 'variance'])


def validate_counts(result: AssignmentResult) -> Tuple[bool, List[str]]:
    """Validate that every list has exactly the resolved number of questions."""
    errors = []
    for student_id, quiz in result.allocations.items():
        expected = result.required_counts.get(student_id)
        if expected != len(quiz):
            errors.append(f"{student_id}: expected {expected} questions, got {len(quiz)}")
    return (len(errors) == 0, errors)


def validate_no_duplicates(result: AssignmentResult) -> Tuple[bool, List[str]]:
    """
    Validate that no student has duplicate questions in their list.

    Returns:
        Tuple of (is_valid, list of error messages)
    """
    errors = []
    for student_id, quiz in result.allocations.items():
        repeated = sorted(qid for qid, n in Counter(quiz).items() if n > 1)
        if repeated:
            errors.append(f"{student_id}: Duplicate questions: {repeated}")

    return (len(errors) == 0, errors)


def validate_within_pool(result: AssignmentResult) -> Tuple[bool, List[str]]:
    """Validate that every allocated id belongs to the eligible set."""
    eligible = set(result.eligible)
    errors = []
    for student_id, quiz in result.allocations.items():
        outside = [qid for qid in quiz if qid not in eligible]
        if outside:
            errors.append(f"{student_id}: Questions outside the eligible pool: {outside}")
    return (len(errors) == 0, errors)


def run_all_validations(result: AssignmentResult) -> Dict[str, Tuple[bool, List[str]]]:
    """Re-check the result invariants: check name -> (passed, errors)."""
    return {
        'question_counts': validate_counts(result),
        'no_duplicates': validate_no_duplicates(result),
        'within_eligible_pool': validate_within_pool(result),
    }


CHECK_LABELS = {
    'question_counts': "Each student has their resolved question count",
    'no_duplicates': "No question repeats within a student's list",
    'within_eligible_pool': "Every question comes from the eligible pool",
}


def print_validation_report(
    validations: Dict[str, Tuple[bool, List[str]]],
    max_errors: int = 5,
) -> bool:
    """Print each allocation check with its outcome. True when all passed."""
    print("\n" + "=" * 60)
    print("ALLOCATION CHECKS")
    print("=" * 60)

    failed = [name for name, (passed, _) in validations.items() if not passed]
    for name, (passed, errors) in validations.items():
        mark = "✓" if passed else "✗"
        print(f"  {mark} {CHECK_LABELS.get(name, name)}")
        for error in errors[:max_errors]:
            print(f"      - {error}")
        if len(errors) > max_errors:
            print(f"      ... {len(errors) - max_errors} more")

    print("-" * 60)
    if failed:
        print(f"RESULT: {len(failed)} of {len(validations)} checks failed ✗")
    else:
        print(f"RESULT: all {len(validations)} checks passed ✓")
    print("=" * 60 + "\n")

    return not failed


def generate_allocation_dataframe(result: AssignmentResult) -> pd.DataFrame:
    """
    Convert an allocation to a DataFrame for display.

    Rows are quiz positions (Q1..Qn), columns are student ids. Students
    with shorter lists (tiered mode) have empty trailing cells.
    """
    data = {
        student_id: pd.Series(list(quiz), dtype=object)
        for student_id, quiz in result.allocations.items()
    }
    df = pd.DataFrame(data)
    df.index = [f"Q{i + 1}" for i in range(len(df))]
    return df
