"""
Topic Weights Module

Turns percentage topic weights and a target question count into integer
per-topic quotas that sum exactly to the target.

Uses the largest-remainder (Hamilton) method:
1. Each topic gets floor(weight/100 * N)
2. The leftover units go one each to the topics with the largest
   fractional parts, ties broken by topic name
3. Topics without enough eligible questions are clamped to what they
   have, and the shortfall is re-apportioned among topics with spare
   capacity using the same rule

All arithmetic uses fractions.Fraction so no float rounding can make the
quotas drift from N.
"""

import logging
import math
from fractions import Fraction
from typing import Dict, Mapping, Sequence

from allocation_errors import InsufficientQuestionsError, ValidationError
from assignment_models import TopicCount, TopicWeight


logger = logging.getLogger(__name__)


def validate_weights(weights: Sequence[TopicWeight]) -> None:
    """
    Check a topic weight list before sampling.

    Raises:
        ValidationError: empty list, duplicate topic, non-numeric or
            non-positive weight, or weights not totalling exactly 100
    """
    if not weights:
        raise ValidationError("Select at least one topic weight", field="topicWeights")

    seen = set()
    total = Fraction(0)
    for tw in weights:
        if tw.topic in seen:
            raise ValidationError(
                f"Topic '{tw.topic}' is weighted more than once", field="topicWeights"
            )
        seen.add(tw.topic)
        try:
            percent = tw.percent
        except (ValueError, ZeroDivisionError):
            raise ValidationError(
                f"Topic '{tw.topic}' has a non-numeric weight: {tw.weight!r}",
                field="topicWeights",
            )
        if percent <= 0:
            raise ValidationError(
                f"Topic '{tw.topic}' must have a positive weight, got {tw.weight}",
                field="topicWeights",
            )
        total += percent

    if total != 100:
        raise ValidationError(
            f"Topic weights must total 100%. Current: {float(total):g}%",
            field="topicWeights",
        )


def validate_topic_counts(counts: Sequence[TopicCount]) -> None:
    """Check an explicit per-topic count list (personalized assignments)."""
    if not counts:
        raise ValidationError("Select at least one topic count", field="topicCounts")
    seen = set()
    for tc in counts:
        if tc.topic in seen:
            raise ValidationError(
                f"Topic '{tc.topic}' is listed more than once", field="topicCounts"
            )
        seen.add(tc.topic)
        if tc.count < 0:
            raise ValidationError(
                f"Topic '{tc.topic}' cannot have a negative count ({tc.count})",
                field="topicCounts",
            )
    if sum(tc.count for tc in counts) < 1:
        raise ValidationError("Topic counts must add up to at least 1", field="topicCounts")


def apportion(total: int, shares: Mapping[str, Fraction]) -> Dict[str, int]:
    """
    Split `total` units across topics in proportion to `shares`.

    Shares need not sum to 100; they are normalized by their sum.
    The result always sums exactly to `total`.
    """
    denominator = sum(shares.values())
    raw = {topic: Fraction(share) * total / denominator for topic, share in shares.items()}
    result = {topic: math.floor(value) for topic, value in raw.items()}

    remainder = total - sum(result.values())
    order = sorted(raw, key=lambda topic: (-(raw[topic] - result[topic]), topic))
    for topic in order[:remainder]:
        result[topic] += 1

    return result


def _shortage_error(
    required: int,
    capacity: int,
    shortfalls: Dict[str, int],
    wanted: Mapping[str, int],
    availability: Mapping[str, int],
) -> InsufficientQuestionsError:
    details = [
        f"Topic '{topic}' needs {wanted[topic]} questions but only "
        f"{availability.get(topic, 0)} are eligible"
        for topic in shortfalls
    ]
    message = (
        f"Need {required} questions across topics but only "
        f"{capacity} are eligible: " + "; ".join(details)
    )
    single = next(iter(shortfalls)) if len(shortfalls) == 1 else None
    return InsufficientQuestionsError(
        required=required,
        available=capacity,
        topic=single,
        shortfalls=shortfalls,
        message=message,
    )


def quotas(
    total_count: int,
    weights: Sequence[TopicWeight],
    availability_per_topic: Mapping[str, int],
) -> Dict[str, int]:
    """
    Compute per-topic quotas for a draw of `total_count` questions.

    Args:
        total_count: Number of questions to draw (>= 0)
        weights: Topic weights totalling 100
        availability_per_topic: Eligible question count per topic

    Returns:
        Dict topic -> quota, in weight-list order, summing to total_count

    Raises:
        ValidationError: weights invalid or total_count negative
        InsufficientQuestionsError: weighted topics together hold fewer
            than total_count eligible questions
    """
    validate_weights(weights)
    if total_count < 0:
        raise ValidationError(
            f"Question count cannot be negative ({total_count})", field="questionCount"
        )

    shares = {tw.topic: tw.percent for tw in weights}
    if total_count == 0:
        return {topic: 0 for topic in shares}

    available = {topic: int(availability_per_topic.get(topic, 0)) for topic in shares}
    wanted = apportion(total_count, shares)

    capacity = sum(available.values())
    if capacity < total_count:
        shortfalls = {
            topic: wanted[topic] - available[topic]
            for topic in shares
            if wanted[topic] > available[topic]
        }
        raise _shortage_error(total_count, capacity, shortfalls, wanted, available)

    result = dict(wanted)
    while True:
        over = {t: result[t] - available[t] for t in result if result[t] > available[t]}
        shortfall = sum(over.values())
        if shortfall == 0:
            break
        for topic in over:
            result[topic] = available[topic]
        spare = {t: shares[t] for t in result if result[t] < available[t]}
        logger.debug(
            "Clamped topics %s; re-apportioning %d among %s",
            sorted(over), shortfall, sorted(spare),
        )
        for topic, extra in apportion(shortfall, spare).items():
            result[topic] += extra

    return result


def check_capacity(
    requested: Mapping[str, int],
    availability_per_topic: Mapping[str, int],
) -> None:
    """
    Ensure explicit per-topic counts fit the eligible questions.

    Raises:
        InsufficientQuestionsError: some topic holds fewer eligible
            questions than requested
    """
    shortfalls = {
        topic: count - availability_per_topic.get(topic, 0)
        for topic, count in requested.items()
        if count > availability_per_topic.get(topic, 0)
    }
    if shortfalls:
        required = sum(requested.values())
        capacity = sum(
            min(count, availability_per_topic.get(topic, 0))
            for topic, count in requested.items()
        )
        raise _shortage_error(required, capacity, shortfalls, requested, availability_per_topic)
