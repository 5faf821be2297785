"""
Question Allocator Module

Draws each student's question list from an assignment's eligible set.

Supports three draw modes:
- Fixed: every student receives the eligible list unchanged
- Flat random: uniform sample without replacement from the eligible set
- Weighted: per-topic samples without replacement, sized by topic quotas

Randomness comes from a random.Random instance seeded per student from
(assignment_id, student_id, nonce), so any student's draw can be
reproduced later without storing the random stream.
"""

import hashlib
import random
from typing import Dict, List, Mapping, Optional, Sequence

from allocation_errors import InsufficientQuestionsError, ValidationError


def derive_seed(assignment_id: str, student_id: str, nonce: str = "") -> int:
    """
    Derive a 64-bit seed from assignment and student identifiers.

    The nonce is a deployment secret: without it the seed (and so the
    draw) cannot be predicted from public ids.
    """
    material = f"{nonce}\x1f{assignment_id}\x1f{student_id}".encode("utf-8")
    digest = hashlib.sha256(material).digest()
    return int.from_bytes(digest[:8], "big")


def student_rng(assignment_id: str, student_id: str, nonce: str = "") -> random.Random:
    """Random generator dedicated to one student's draw."""
    return random.Random(derive_seed(assignment_id, student_id, nonce))


def _sample(
    ids: Sequence[str],
    count: int,
    rng: random.Random,
) -> List[str]:
    """Sample `count` distinct ids, in draw order."""
    return rng.sample(list(ids), count)


def fixed_set(eligible_pool: Sequence[str]) -> List[str]:
    """Fixed mode: the eligible list itself, identical for every student."""
    return list(eligible_pool)


def draw(
    student_id: str,
    required_count: int,
    eligible_pool: Sequence[str],
    quotas_by_topic: Optional[Mapping[str, int]] = None,
    rng: Optional[random.Random] = None,
    pool_by_topic: Optional[Mapping[str, Sequence[str]]] = None,
) -> List[str]:
    """
    Draw one student's question ids.

    Args:
        student_id: Student being allocated (reported in errors)
        required_count: Number of questions the student must receive
        eligible_pool: Eligible question ids (no duplicates)
        quotas_by_topic: Topic -> count; enables weighted mode
        rng: random.Random for this student, usually from student_rng()
        pool_by_topic: Topic -> eligible ids; required in weighted mode

    Returns:
        Ordered list of distinct question ids. In weighted mode topics
        follow the order of quotas_by_topic.

    Raises:
        InsufficientQuestionsError: pool (or one topic's share) smaller
            than the draw
    """
    if rng is None:
        raise ValueError("A random generator is required for random draws")
    if required_count < 0:
        raise ValidationError(
            f"Student {student_id}: required count cannot be negative ({required_count})",
            field="questionCount",
        )

    if not quotas_by_topic:
        if len(eligible_pool) < required_count:
            raise InsufficientQuestionsError(
                required=required_count,
                available=len(eligible_pool),
                student_id=student_id,
            )
        return _sample(eligible_pool, required_count, rng)

    if sum(quotas_by_topic.values()) != required_count:
        raise ValueError(
            f"Student {student_id}: topic quotas sum to {sum(quotas_by_topic.values())}, "
            f"expected {required_count}"
        )
    if pool_by_topic is None:
        raise ValueError("pool_by_topic is required when topic quotas are given")

    student_quiz: List[str] = []
    for topic, quota in quotas_by_topic.items():
        topic_pool = pool_by_topic.get(topic, ())
        if len(topic_pool) < quota:
            raise InsufficientQuestionsError(
                required=quota,
                available=len(topic_pool),
                topic=topic,
                student_id=student_id,
            )
        student_quiz.extend(_sample(topic_pool, quota, rng))

    return student_quiz


def shuffle_order(quiz: Sequence[str], rng: random.Random) -> List[str]:
    """Shuffle presentation order within one student's quiz."""
    shuffled = list(quiz)
    rng.shuffle(shuffled)
    return shuffled


def draw_counts(allocations: Mapping[str, Sequence[str]]) -> Dict[str, int]:
    """How many students received each question id."""
    usage: Dict[str, int] = {}
    for quiz in allocations.values():
        for qid in quiz:
            usage[qid] = usage.get(qid, 0) + 1
    return usage
