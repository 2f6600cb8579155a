from __future__ import annotations

import time
from typing import Callable, Optional

from mindscribe.services.config import SummaryPolicySettings


class SummaryPolicy:
    """Decides when a periodic summarization pass is due.

    A pass is due after ``every_entries`` new entries or ``every_seconds``
    since the last pass (with at least one new entry), whichever comes first.
    Only one pass may be in flight; callers bracket it with
    :meth:`mark_started` and :meth:`mark_finished`.

    When built from a shared ``settings`` object the thresholds are read on
    every check, so settings changes apply to the running session.
    """

    def __init__(
        self,
        every_entries: int = 5,
        every_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        settings: Optional[SummaryPolicySettings] = None,
    ) -> None:
        if settings is None:
            if every_entries < 1:
                raise ValueError("every_entries must be at least 1")
            settings = SummaryPolicySettings(every_entries=every_entries, every_seconds=every_seconds)
        self._settings = settings
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        self._pending = 0
        self._last_run = self._clock()
        self._in_flight = False

    @property
    def every_entries(self) -> int:
        return self._settings.every_entries

    @property
    def every_seconds(self) -> float:
        return self._settings.every_seconds

    @property
    def pending(self) -> int:
        return self._pending

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def record_entry(self) -> None:
        self._pending += 1

    def should_run(self) -> bool:
        if self._in_flight or self._pending == 0:
            return False
        if self._pending >= self.every_entries:
            return True
        return self._clock() - self._last_run >= self.every_seconds

    def mark_started(self) -> None:
        self._in_flight = True
        self._pending = 0
        self._last_run = self._clock()

    def mark_finished(self) -> None:
        self._in_flight = False
