"""
Pool Filter Module

Narrows an assignment's admin-curated question pool to the eligible set:

    pool ∩ {topic in topic_filter} ∩ {subtopic in subtopic_filter}

An empty filter means "no restriction". The eligible set is returned in
pool order so draws over it are reproducible.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Sequence, Tuple

from assignment_models import Question, unique_in_order


class QuestionCatalog:
    """
    Read-only index over a catalog snapshot.
    Provides lookups by id and grouping by topic.
    """

    def __init__(self, questions: Iterable[Question]):
        self.questions: Tuple[Question, ...] = tuple(questions)
        self._by_id: Dict[str, Question] = {q.question_id: q for q in self.questions}

    def get_by_id(self, question_id: str):
        """Get a question by its ID, or None."""
        return self._by_id.get(question_id)

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._by_id

    def get_all(self) -> List[Question]:
        return list(self.questions)

    def topics(self) -> List[str]:
        """Distinct topics in catalog order."""
        return list(unique_in_order(q.topic for q in self.questions))

    def count_by_topic(self) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for q in self.questions:
            counts[q.topic] += 1
        return dict(counts)


def unknown_pool_ids(catalog: QuestionCatalog, pool_ids: Sequence[str]) -> List[str]:
    """Pool ids with no matching catalog entry."""
    return [qid for qid in unique_in_order(pool_ids) if qid not in catalog]


def eligible(
    catalog: QuestionCatalog,
    pool_ids: Sequence[str],
    topic_filter: Sequence[str] = (),
    subtopic_filter: Sequence[str] = (),
) -> Tuple[str, ...]:
    """
    Resolve the eligible question ids for an assignment.

    Args:
        catalog: Catalog snapshot
        pool_ids: Admin allow-list (duplicates ignored)
        topic_filter: Allowed topics; empty allows all
        subtopic_filter: Allowed subtopics; empty allows all

    Returns:
        Eligible ids in pool order. Ids missing from the catalog are
        never eligible.
    """
    topics = set(topic_filter)
    subtopics = set(subtopic_filter)

    result = []
    for qid in unique_in_order(pool_ids):
        q = catalog.get_by_id(qid)
        if q is None:
            continue
        if topics and q.topic not in topics:
            continue
        if subtopics and q.subtopic not in subtopics:
            continue
        result.append(qid)
    return tuple(result)


def partition_by_topic(
    catalog: QuestionCatalog,
    eligible_ids: Sequence[str],
) -> Dict[str, Tuple[str, ...]]:
    """Split eligible ids by topic, keeping their order within each topic."""
    by_topic: Dict[str, List[str]] = defaultdict(list)
    for qid in eligible_ids:
        by_topic[catalog.get_by_id(qid).topic].append(qid)
    return {topic: tuple(ids) for topic, ids in by_topic.items()}


def availability(partition: Dict[str, Tuple[str, ...]]) -> Dict[str, int]:
    """Eligible question count per topic."""
    return {topic: len(ids) for topic, ids in partition.items()}
