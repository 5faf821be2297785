"""
Allocation Errors Module

Error taxonomy for the question-allocation engine:
- ValidationError: malformed assignment configuration
- InsufficientQuestionsError: eligible pool (or a topic's share) too small
- UnassignableStudentError: attendance falls into no rule band
- PersistenceError: failure reported by the storage collaborator
- InvalidTransitionError: builder step called out of order

All derive from AllocationError, itself a ValueError, so callers that only
care about "bad configuration" can catch ValueError.
"""

from typing import Dict, Optional


class AllocationError(ValueError):
    """Base class for every error raised by the allocation engine."""


class ValidationError(AllocationError):
    """The assignment spec is malformed and was rejected before allocation."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InsufficientQuestionsError(AllocationError):
    """
    Fewer eligible questions than the draw requires.

    Attributes:
        required: Number of questions the draw needed
        available: Number of eligible questions
        topic: Offending topic when the shortage is topic-scoped
        student_id: Student whose draw failed, if known
        shortfalls: Per-topic shortfall (topic -> missing count)
    """

    def __init__(
        self,
        required: int,
        available: int,
        topic: Optional[str] = None,
        student_id: Optional[str] = None,
        shortfalls: Optional[Dict[str, int]] = None,
        message: Optional[str] = None,
    ):
        self.required = required
        self.available = available
        self.topic = topic
        self.student_id = student_id
        self.shortfalls = dict(shortfalls or {})
        if topic is not None and not self.shortfalls:
            self.shortfalls[topic] = self.shortfall
        super().__init__(message or self._describe())

    @property
    def shortfall(self) -> int:
        return max(self.required - self.available, 0)

    def _describe(self) -> str:
        if self.topic is not None:
            text = (
                f"Topic '{self.topic}' needs {self.required} questions "
                f"but only {self.available} are eligible"
            )
        else:
            text = (
                f"Need {self.required} questions "
                f"but only {self.available} are eligible"
            )
        if self.student_id is not None:
            text += f" (student {self.student_id})"
        return text


class UnassignableStudentError(AllocationError):
    """A student's attendance percentage matches no rule band."""

    def __init__(self, percentage: float, student_id: Optional[str] = None):
        self.percentage = percentage
        self.student_id = student_id
        who = f"Student {student_id}" if student_id is not None else "Student"
        super().__init__(
            f"{who} has attendance {percentage:.2f}% which matches no attendance rule"
        )


class PersistenceError(AllocationError):
    """Opaque failure from the result store; the original error is the __cause__."""


class InvalidTransitionError(AllocationError):
    """An AssignmentBuilder step was called from the wrong state."""
