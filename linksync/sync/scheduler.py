from __future__ import annotations

import threading
from typing import Callable, Dict, Optional, Tuple

from linksync.config import SyncConfig
from linksync.types import Cadence, now_ms


class SyncScheduler:
    """
    Per-actor, per-cadence cooldown windows.

    `should_sync` is a non-blocking check: a caller that gets False skips
    this cycle, nothing is queued. Effective cooldowns come from the config
    accessors, so the hard floors hold whatever was configured.
    """

    def __init__(self, config: SyncConfig, clock: Callable[[], int] = now_ms) -> None:
        self.config = config
        self._clock = clock
        self._lock = threading.Lock()
        self._last_fired: Dict[Tuple[str, Cadence], int] = {}

    def effective_cooldown_ms(self, cadence: Cadence) -> int:
        if Cadence(cadence) is Cadence.FULL:
            return self.config.effective_full_cooldown_ms()
        return self.config.effective_lightweight_cooldown_ms()

    def _ready(self, key: Tuple[str, Cadence], now: int) -> bool:
        last = self._last_fired.get(key)
        if last is None:
            return True
        return (now - last) > self.effective_cooldown_ms(key[1])

    def should_sync(self, actor_id: str, cadence: Cadence) -> bool:
        key = (actor_id, Cadence(cadence))
        now = self._clock()
        with self._lock:
            return self._ready(key, now)

    def mark_synced(self, actor_id: str, cadence: Cadence, at_ms: Optional[int] = None) -> None:
        key = (actor_id, Cadence(cadence))
        with self._lock:
            self._last_fired[key] = int(at_ms if at_ms is not None else self._clock())

    def try_acquire(self, actor_id: str, cadence: Cadence) -> bool:
        """
        Check and mark in one step. Two concurrent triggers for the same
        actor cannot both win the same window.
        """
        key = (actor_id, Cadence(cadence))
        now = self._clock()
        with self._lock:
            if not self._ready(key, now):
                return False
            self._last_fired[key] = now
            return True

    def last_fired(self, actor_id: str, cadence: Cadence) -> Optional[int]:
        with self._lock:
            return self._last_fired.get((actor_id, Cadence(cadence)))

    def forget(self, actor_id: str) -> None:
        with self._lock:
            for cadence in Cadence:
                self._last_fired.pop((actor_id, cadence), None)

    def status(self) -> Dict[str, int]:
        with self._lock:
            tracked = len({a for a, _ in self._last_fired})
        return {
            "tracked_actors": tracked,
            "full_cooldown_ms": self.config.effective_full_cooldown_ms(),
            "lightweight_cooldown_ms": self.config.effective_lightweight_cooldown_ms(),
        }
