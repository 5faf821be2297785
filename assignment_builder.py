"""
Assignment Builder Module

Runs one publish of an assignment through its states:

    DRAFT -> VALIDATED -> RESOLVED -> ALLOCATED -> PUBLISHED
      \\________________________________/
                     |
                  REJECTED

- validate(): checks the spec, selects target students, narrows the pool
- resolve():  per-student question counts (attendance bands in tiered
              mode) and per-topic quotas when topics are weighted
- allocate(): draws every student's list; any shortage rejects the whole
              assignment and no result is exposed
- publish():  hands the result to a store; afterwards only the schedule
              may change

Catalog and attendance are copied into tuples when the builder is created,
so later changes to the caller's lists are never observed.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from allocation_errors import (
    AllocationError,
    InvalidTransitionError,
    PersistenceError,
    UnassignableStudentError,
    ValidationError,
)
from allocator import draw, fixed_set, shuffle_order, student_rng
from assignment_models import (
    AssignmentMode,
    AssignmentResult,
    AssignmentSpec,
    AttendanceRecord,
    PublishedAssignment,
    Question,
    SkippedStudent,
)
from attendance_resolver import attendance_percentage, resolve, validate_rules
from engine_config import EngineConfig, get_engine_config
from pool_filter import (
    QuestionCatalog,
    availability,
    eligible,
    partition_by_topic,
    unknown_pool_ids,
)
from topic_weights import check_capacity, quotas, validate_topic_counts, validate_weights


logger = logging.getLogger(__name__)


class BuildState(str, Enum):
    DRAFT = "draft"
    VALIDATED = "validated"
    RESOLVED = "resolved"
    ALLOCATED = "allocated"
    PUBLISHED = "published"
    REJECTED = "rejected"


FLAT_MODES = (AssignmentMode.RANDOMIZED, AssignmentMode.PERSONALIZED)


class AssignmentBuilder:
    """Allocates one assignment from an immutable input snapshot."""

    def __init__(
        self,
        spec: AssignmentSpec,
        catalog: Union[QuestionCatalog, Iterable[Question]],
        attendance: Iterable[AttendanceRecord],
        config: Optional[EngineConfig] = None,
    ):
        self.spec = spec
        self.catalog = catalog if isinstance(catalog, QuestionCatalog) else QuestionCatalog(catalog)
        self.attendance: Tuple[AttendanceRecord, ...] = tuple(attendance)
        self.config = config or get_engine_config()

        self.state = BuildState.DRAFT
        self.error: Optional[AllocationError] = None
        self.result: Optional[AssignmentResult] = None
        self.published: Optional[PublishedAssignment] = None

        self._targets: Tuple[AttendanceRecord, ...] = ()
        self._target_ids: Tuple[str, ...] = ()
        self._eligible: Tuple[str, ...] = ()
        self._partition: Dict[str, Tuple[str, ...]] = {}
        self._required: Dict[str, int] = {}
        self._quotas: Dict[int, Dict[str, int]] = {}
        self._skipped: List[SkippedStudent] = []

    # ── State handling ────────────────────────────────────────────────────

    def _expect(self, state: BuildState, step: str):
        if self.state != state:
            raise InvalidTransitionError(
                f"Cannot {step} assignment {self.spec.assignment_id}: "
                f"state is {self.state.value}, expected {state.value}"
            )

    def _advance(self, state: BuildState):
        logger.debug("Assignment %s: %s -> %s", self.spec.assignment_id, self.state.value, state.value)
        self.state = state

    def _reject(self, error: AllocationError):
        logger.info("Assignment %s rejected: %s", self.spec.assignment_id, error)
        self.state = BuildState.REJECTED
        self.error = error
        self.result = None

    # ── DRAFT -> VALIDATED ────────────────────────────────────────────────

    def validate(self) -> "AssignmentBuilder":
        """Validate the spec and snapshot. Rejects on the first problem found."""
        self._expect(BuildState.DRAFT, "validate")
        try:
            self._check_spec()
            self._select_targets()
            self._narrow_pool()
        except AllocationError as e:
            self._reject(e)
            raise
        self._advance(BuildState.VALIDATED)
        return self

    def _check_spec(self):
        spec = self.spec

        if not spec.pool:
            raise ValidationError("No questions selected in pool", field="pool")

        if spec.start_time and spec.deadline and spec.deadline < spec.start_time:
            raise ValidationError("Deadline cannot be before the start time", field="deadline")

        if spec.mode == AssignmentMode.ATTENDANCE_TIERED:
            validate_rules(spec.rules)
            if spec.topic_counts:
                raise ValidationError(
                    "Topic counts cannot be combined with attendance rules; use topic weights",
                    field="topicCounts",
                )

        if spec.mode in FLAT_MODES:
            if spec.topic_counts:
                validate_topic_counts(spec.topic_counts)
                total = sum(tc.count for tc in spec.topic_counts)
                if spec.question_count is not None and spec.question_count != total:
                    raise ValidationError(
                        f"Question count {spec.question_count} does not match "
                        f"topic counts total {total}",
                        field="questionCount",
                    )
            elif spec.question_count is None or spec.question_count < 1:
                raise ValidationError(
                    f"Question count must be at least 1, got {spec.question_count}",
                    field="questionCount",
                )

        if spec.topic_weights:
            if spec.topic_counts:
                raise ValidationError(
                    "Use either topic weights or topic counts, not both", field="topicWeights"
                )
            validate_weights(spec.topic_weights)

        if spec.mode == AssignmentMode.PERSONALIZED:
            if not spec.target_student_ids:
                raise ValidationError("Select at least one student", field="targetStudentIds")
            duplicates = sorted({s for s in spec.target_student_ids if spec.target_student_ids.count(s) > 1})
            if duplicates:
                raise ValidationError(
                    f"Students selected more than once: {duplicates}", field="targetStudentIds"
                )

    def _select_targets(self):
        if self.spec.mode == AssignmentMode.PERSONALIZED:
            self._target_ids = tuple(self.spec.target_student_ids)
            return

        seen = set()
        for record in self.attendance:
            if record.student_id in seen:
                raise ValidationError(
                    f"Student {record.student_id} appears more than once in the attendance snapshot",
                    field="attendance",
                )
            seen.add(record.student_id)

        cohort = self.spec.target_cohort
        targets = tuple(r for r in self.attendance if cohort is None or cohort.matches(r))
        if not targets:
            raise ValidationError("No students match the criteria", field="targetCohort")
        self._targets = targets
        self._target_ids = tuple(r.student_id for r in targets)

    def _narrow_pool(self):
        spec = self.spec
        missing = unknown_pool_ids(self.catalog, spec.pool)
        if missing:
            logger.warning(
                "Assignment %s: %d pool ids not in catalog, ignored: %s",
                spec.assignment_id, len(missing), missing[:5],
            )

        self._eligible = eligible(self.catalog, spec.pool, spec.topic_filter, spec.subtopic_filter)
        if not self._eligible:
            raise ValidationError(
                "No eligible questions: the pool is empty after topic/subtopic filters",
                field="filters",
            )
        self._partition = partition_by_topic(self.catalog, self._eligible)

    # ── VALIDATED -> RESOLVED ─────────────────────────────────────────────

    def resolve(self) -> "AssignmentBuilder":
        """Work out each student's question count and the topic quotas."""
        self._expect(BuildState.VALIDATED, "resolve")
        try:
            self._resolve_counts()
            self._resolve_quotas()
        except AllocationError as e:
            self._reject(e)
            raise
        self._advance(BuildState.RESOLVED)
        return self

    def _resolve_counts(self):
        spec = self.spec

        if spec.mode == AssignmentMode.FIXED:
            self._required = {sid: len(self._eligible) for sid in self._target_ids}
            return

        if spec.mode in FLAT_MODES:
            if spec.topic_counts:
                count = sum(tc.count for tc in spec.topic_counts)
            else:
                count = spec.question_count
            self._required = {sid: count for sid in self._target_ids}
            return

        required: Dict[str, int] = {}
        for record in self._targets:
            percent = attendance_percentage(record)
            try:
                rule = resolve(percent, spec.rules, record.student_id)
            except UnassignableStudentError as e:
                if not self.config.skip_unassignable:
                    raise
                logger.warning("Assignment %s: skipping student: %s", spec.assignment_id, e)
                self._skipped.append(SkippedStudent(record.student_id, percent, str(e)))
                continue
            required[record.student_id] = rule.count

        if not required:
            raise ValidationError(
                "No student's attendance matches any attendance rule", field="rules"
            )
        self._required = required

    def _resolve_quotas(self):
        spec = self.spec
        available = availability(self._partition)

        if spec.mode == AssignmentMode.FIXED:
            return

        if spec.topic_counts:
            requested = {tc.topic: tc.count for tc in spec.topic_counts if tc.count > 0}
            check_capacity(requested, available)
            self._quotas = {sum(requested.values()): requested}
            return

        if spec.topic_weights:
            # weights are assignment-wide: one quota table per distinct count
            for count in sorted(set(self._required.values())):
                self._quotas[count] = quotas(count, spec.topic_weights, available)

    # ── RESOLVED -> ALLOCATED ─────────────────────────────────────────────

    def allocate(self) -> AssignmentResult:
        """Draw every student's list. All-or-nothing."""
        self._expect(BuildState.RESOLVED, "allocate")
        spec = self.spec
        allocations: Dict[str, Tuple[str, ...]] = {}
        try:
            for student_id, count in self._required.items():
                if spec.mode == AssignmentMode.FIXED:
                    allocations[student_id] = tuple(fixed_set(self._eligible))
                    continue

                rng = student_rng(spec.assignment_id, student_id, self.config.seed_nonce)
                quiz = draw(
                    student_id,
                    count,
                    self._eligible,
                    quotas_by_topic=self._quotas.get(count),
                    rng=rng,
                    pool_by_topic=self._partition,
                )
                if self.config.shuffle_within_student:
                    quiz = shuffle_order(quiz, rng)
                allocations[student_id] = tuple(quiz)
        except AllocationError as e:
            self._reject(e)
            raise

        self.result = AssignmentResult(
            assignment_id=spec.assignment_id,
            allocations=allocations,
            required_counts=dict(self._required),
            eligible=self._eligible,
            skipped=tuple(self._skipped),
        )
        self._advance(BuildState.ALLOCATED)
        return self.result

    # ── ALLOCATED -> PUBLISHED ────────────────────────────────────────────

    def publish(self, store) -> PublishedAssignment:
        """
        Persist the result through `store.save(result)`.

        A store failure raises PersistenceError and leaves the builder in
        ALLOCATED so the caller may retry.
        """
        self._expect(BuildState.ALLOCATED, "publish")
        try:
            store.save(self.result)
        except Exception as e:
            logger.error("Assignment %s: persistence failed: %s", self.spec.assignment_id, e)
            raise PersistenceError(
                f"Failed to persist assignment {self.spec.assignment_id}: {e}"
            ) from e

        self.published = PublishedAssignment(
            result=self.result,
            start_time=self.spec.start_time,
            deadline=self.spec.deadline,
        )
        self._advance(BuildState.PUBLISHED)
        return self.published

    def run(self) -> AssignmentResult:
        """validate -> resolve -> allocate."""
        return self.validate().resolve().allocate()


def allocate(
    spec: AssignmentSpec,
    catalog: Union[QuestionCatalog, Iterable[Question]],
    attendance: Iterable[AttendanceRecord],
    config: Optional[EngineConfig] = None,
) -> AssignmentResult:
    """
    Allocate questions for every target student of an assignment.

    Raises:
        AllocationError: ValidationError, InsufficientQuestionsError or
            UnassignableStudentError; no partial result is produced
    """
    return AssignmentBuilder(spec, catalog, attendance, config).run()
