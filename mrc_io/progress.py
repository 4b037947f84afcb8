"""
Advisory progress reporting for slice streaming.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ProgressReporter:
    """
    Turn a running byte count into percentage callbacks.

    A value is reported each time the percentage crosses a new multiple of
    step, never decreases and never exceeds 100. Errors raised by the callback
    are logged and the callback is dropped for the rest of the operation.
    """

    def __init__(self, callback: Optional[ProgressCallback], total_bytes: int, step: int = 10):
        self.callback = callback
        self.total_bytes = max(int(total_bytes), 0)
        self.step = max(int(step), 1)
        self.done_bytes = 0
        self.last_reported = -1

    def percent(self) -> int:
        if self.total_bytes == 0:
            return 100
        return min(100, self.done_bytes * 100 // self.total_bytes)

    def advance(self, nbytes: int) -> None:
        self.done_bytes += nbytes
        pct = self.percent()
        if self.last_reported < 0 or pct // self.step > self.last_reported // self.step:
            self._emit(pct)

    def start(self) -> None:
        self._emit(0)

    def finish(self) -> None:
        self._emit(100)

    def _emit(self, pct: int) -> None:
        if self.callback is None or pct <= self.last_reported:
            return
        self.last_reported = pct
        try:
            self.callback(pct)
        except Exception as e:
            logger.warning(f"Progress callback failed at {pct}%: {e}, progress reporting disabled")
            self.callback = None
