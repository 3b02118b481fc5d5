"""Aggregated child status counts of a batch subtree."""

from __future__ import annotations

from enum import Enum


class BatchStatus(str, Enum):
    """Status of a child job in its parent batch state."""

    SCHEDULED = "scheduled"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERRORED = "errored"  # Transient failure, will be retried
    DEAD = "dead"


# Statuses a child never leaves
TERMINAL_STATUSES = frozenset({BatchStatus.COMPLETED.value, BatchStatus.DEAD.value})


class BatchProgress:
    """Child id -> status snapshot with per-status counters.

    Snapshots of several batch nodes are merged with ``+``.
    """

    def __init__(self, states: dict[str, str] | None = None) -> None:
        self.states: dict[str, str] = dict(states or {})

    def _count(self, status: BatchStatus) -> int:
        return sum(1 for value in self.states.values() if value == status.value)

    @property
    def total(self) -> int:
        return len(self.states)

    @property
    def scheduled(self) -> int:
        return self._count(BatchStatus.SCHEDULED)

    @property
    def processing(self) -> int:
        return self._count(BatchStatus.PROCESSING)

    @property
    def completed(self) -> int:
        return self._count(BatchStatus.COMPLETED)

    @property
    def errored(self) -> int:
        return self._count(BatchStatus.ERRORED)

    @property
    def dead(self) -> int:
        return self._count(BatchStatus.DEAD)

    @property
    def done(self) -> int:
        return self.completed + self.dead

    @property
    def pending(self) -> int:
        return self.total - self.done

    def percent(self, min_total: int = 0, smoothing: int = 0) -> float:
        """Share of terminal children, in percent.

        Args:
            min_total: Lower bound for the denominator, for batches whose
                children are still being added
            smoothing: Extra units added to the denominator so that the
                percentage only reaches 100 once the parent itself is done
        """
        denominator = max(min_total, self.total) + smoothing
        if denominator <= 0:
            return 0.0
        return self.done / denominator * 100

    def __add__(self, other: BatchProgress) -> BatchProgress:
        return BatchProgress({**self.states, **other.states})

    def __repr__(self) -> str:
        return f"BatchProgress(total={self.total}, done={self.done}, pending={self.pending})"
