"""
Migration state for a Stream Chat to ChatSDK run.

Holds the orchestrator's phase machine and per-run totals, separated from
the immutable MigrationContext and from the persisted checkpoint (mapping
cache and progress record).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from chatsdk_migrator.constants import (
    KIND_CHANNELS,
    KIND_MESSAGES,
    KIND_REACTIONS,
    KIND_USERS,
)
from chatsdk_migrator.exceptions import InvalidTransitionError


class MigrationPhase(str, Enum):
    """Orchestrator phases, in execution order."""

    INIT = "INIT"
    IMPORTING_USERS = "IMPORTING_USERS"
    IMPORTING_CHANNELS = "IMPORTING_CHANNELS"
    IMPORTING_MESSAGES_AND_REACTIONS = "IMPORTING_MESSAGES_AND_REACTIONS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationPhase.COMPLETED, MigrationPhase.FAILED)


# Forward moves may skip phases (resume re-enters the phase in progress)
_ORDER = [
    MigrationPhase.INIT,
    MigrationPhase.IMPORTING_USERS,
    MigrationPhase.IMPORTING_CHANNELS,
    MigrationPhase.IMPORTING_MESSAGES_AND_REACTIONS,
    MigrationPhase.COMPLETED,
]


def _default_totals() -> dict[str, int]:
    return {KIND_USERS: 0, KIND_CHANNELS: 0, KIND_MESSAGES: 0, KIND_REACTIONS: 0}


@dataclass
class MigrationState:
    """Mutable tracking state for a migration run."""

    phase: MigrationPhase = MigrationPhase.INIT
    history: list[MigrationPhase] = field(
        default_factory=lambda: [MigrationPhase.INIT]
    )
    # Rows transformed in this process (progress counters also include
    # earlier runs of a resumed checkpoint)
    run_totals: dict[str, int] = field(default_factory=_default_totals)
    error: str | None = None

    def transition(self, target: MigrationPhase) -> None:
        """Move to ``target``; FAILED is reachable from any non-terminal phase."""
        if self.phase.is_terminal:
            raise InvalidTransitionError(
                f"Cannot leave terminal phase {self.phase.value} for {target.value}"
            )
        if target is not MigrationPhase.FAILED:
            if _ORDER.index(target) <= _ORDER.index(self.phase):
                raise InvalidTransitionError(
                    f"Cannot move from {self.phase.value} back to {target.value}"
                )
        self.phase = target
        self.history.append(target)

    def fail(self, error: BaseException) -> None:
        self.error = f"{type(error).__name__}: {error}"
        if not self.phase.is_terminal:
            self.transition(MigrationPhase.FAILED)

    def add_total(self, kind: str, count: int) -> None:
        self.run_totals[kind] += count

    @property
    def completed(self) -> bool:
        return self.phase is MigrationPhase.COMPLETED

    @property
    def failed(self) -> bool:
        return self.phase is MigrationPhase.FAILED
