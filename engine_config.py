"""
Engine Configuration Module

Environment-backed settings for the allocation engine. Values are read
when an EngineConfig is constructed, so a long-running process picks up
changes only for new publishes.
"""

import os
from dataclasses import dataclass, field


UNASSIGNABLE_FATAL = "fatal"
UNASSIGNABLE_SKIP = "skip"
UNASSIGNABLE_POLICIES = (UNASSIGNABLE_FATAL, UNASSIGNABLE_SKIP)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class EngineConfig:
    """
    unassignable_policy: what to do with a student whose attendance falls
        in no rule band. "fatal" rejects the publish; "skip" leaves the
        student out and reports them in AssignmentResult.skipped.
    seed_nonce: secret mixed into every per-student seed.
    shuffle_within_student: shuffle each student's list after drawing.
    """

    unassignable_policy: str = field(
        default_factory=lambda: os.getenv("ALLOCATOR_UNASSIGNABLE_POLICY", UNASSIGNABLE_FATAL)
    )
    seed_nonce: str = field(default_factory=lambda: os.getenv("ALLOCATOR_SEED_NONCE", ""))
    shuffle_within_student: bool = field(
        default_factory=lambda: _env_bool("ALLOCATOR_SHUFFLE")
    )

    def __post_init__(self):
        self.unassignable_policy = self.unassignable_policy.strip().lower()
        if self.unassignable_policy not in UNASSIGNABLE_POLICIES:
            raise ValueError(
                f"Unknown unassignable policy: {self.unassignable_policy}. "
                f"Use one of {', '.join(UNASSIGNABLE_POLICIES)}"
            )

    @property
    def skip_unassignable(self) -> bool:
        return self.unassignable_policy == UNASSIGNABLE_SKIP


def get_engine_config() -> EngineConfig:
    return EngineConfig()
