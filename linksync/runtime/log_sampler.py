from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class _Window:
    started_at: float
    suppressed: int = 0


class SampledLog:
    """
    Windowed log sampler.
    - First record for a key in a window is emitted.
    - Later records in the same window are counted, not logged.
    - The next emitted record reports how many were suppressed.
    """

    def __init__(
        self,
        logger: logging.Logger,
        window_sec: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.logger = logger
        self.window_sec = float(window_sec)
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[str, _Window] = {}

        self.total_emitted = 0
        self.total_suppressed = 0

    def _admit(self, key: str) -> int:
        """Returns the suppressed count to report, or -1 to drop."""
        now = self._clock()
        with self._lock:
            w = self._windows.get(key)
            if w is not None and (now - w.started_at) < self.window_sec:
                w.suppressed += 1
                self.total_suppressed += 1
                return -1
            suppressed = w.suppressed if w is not None else 0
            self._windows[key] = _Window(started_at=now)
            self.total_emitted += 1
            return suppressed

    def log(self, level: int, key: str, msg: str, *args) -> bool:
        suppressed = self._admit(key)
        if suppressed < 0:
            return False
        if suppressed:
            msg = msg + " (%d similar suppressed)"
            args = args + (suppressed,)
        self.logger.log(level, msg, *args)
        return True

    def warning(self, key: str, msg: str, *args) -> bool:
        return self.log(logging.WARNING, key, msg, *args)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "window_sec": self.window_sec,
                "keys": len(self._windows),
                "total_emitted": self.total_emitted,
                "total_suppressed": self.total_suppressed,
            }
