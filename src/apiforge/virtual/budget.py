"""ComputationBudget — deadline, memory ceiling and cancellation token."""

from __future__ import annotations

import sys
import time
import tracemalloc
from collections.abc import Callable

from ..core.exceptions import ComputationError


def current_memory_usage() -> int:
    """
    Bytes attributable to the process, for soft memory ceilings.

    Uses ``tracemalloc`` when tracing is active, otherwise the peak resident
    set size. Returns 0 where neither is available.
    """
    if tracemalloc.is_tracing():
        return tracemalloc.get_traced_memory()[0]
    if sys.platform == "win32":
        return 0
    import resource

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # Linux reports kilobytes, macOS bytes.
    return peak if sys.platform == "darwin" else peak * 1024


class ComputationBudget:
    """
    Per-request resource budget handed through every computation.

    The engine calls :meth:`check` between entities and between chunks. It
    is also exposed to compute callbacks as ``deps.budget`` so long-running
    callbacks can check it themselves. Calling :meth:`cancel` (for example
    on client disconnect) makes the next check raise.
    """

    def __init__(
        self,
        *,
        time_limit: float | None = None,
        memory_limit: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        memory_reader: Callable[[], int] = current_memory_usage,
    ) -> None:
        self._clock = clock
        self._memory_reader = memory_reader
        self.time_limit = time_limit
        self.memory_limit = memory_limit
        self.started_at = clock()
        self.deadline = self.started_at + time_limit if time_limit else None
        self._memory_baseline = memory_reader() if memory_limit else 0
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def remaining(self) -> float | None:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def memory_used(self) -> int:
        return max(0, self._memory_reader() - self._memory_baseline)

    def check(self, field: str) -> None:
        """Raise ComputationError if the budget is exhausted or cancelled."""
        if self._cancelled:
            raise ComputationError.cancelled(field)
        if self.deadline is not None and self._clock() > self.deadline:
            raise ComputationError.timeout_exceeded(
                field, self.time_limit or 0.0, self.elapsed
            )
        if self.memory_limit:
            used = self.memory_used()
            if used > self.memory_limit:
                raise ComputationError.memory_limit_exceeded(
                    field, self.memory_limit, used
                )
