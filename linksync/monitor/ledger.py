from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date
from typing import Callable, Dict, Optional, Tuple

from linksync.types import ResourceObservation


class ResourceLedger:
    """
    Per-actor resource observations shared between the monitor (sole
    writer) and the snapshot collector (reader).

    Daily accumulators only grow within a day; `roll_over` clears all of
    them together, once per calendar day. Readings and notification marks
    for actors without an active session are dropped.
    """

    def __init__(self, is_active: Callable[[str], bool] = lambda _a: True) -> None:
        self._is_active = is_active
        self._lock = threading.Lock()
        self._by_actor: Dict[str, ResourceObservation] = {}
        self.current_day: Optional[date] = None

    def get(self, actor_id: str) -> Optional[ResourceObservation]:
        with self._lock:
            obs = self._by_actor.get(actor_id)
            return replace(obs) if obs is not None else None

    def daily_totals(self, actor_id: str) -> Tuple[float, float]:
        with self._lock:
            obs = self._by_actor.get(actor_id)
            if obs is None:
                return 0.0, 0.0
            return obs.earned_today, obs.spent_today

    def observe(self, actor_id: str, value: float) -> Optional[float]:
        """
        Record a new reading and fold the move into today's totals.
        Returns the previous reading (None on first observation).
        """
        if not self._is_active(actor_id):
            return None
        with self._lock:
            obs = self._by_actor.setdefault(actor_id, ResourceObservation())
            previous = obs.last_known_value
            if previous is not None:
                if value > previous:
                    obs.earned_today += value - previous
                elif value < previous:
                    obs.spent_today += previous - value
            obs.last_known_value = value
            return previous

    def last_notified_at(self, actor_id: str) -> int:
        with self._lock:
            obs = self._by_actor.get(actor_id)
            return obs.last_notified_at_ms if obs else 0

    def mark_notified(self, actor_id: str, at_ms: int) -> None:
        if not self._is_active(actor_id):
            return
        with self._lock:
            obs = self._by_actor.setdefault(actor_id, ResourceObservation())
            obs.last_notified_at_ms = int(at_ms)

    def roll_over(self, day: date) -> bool:
        """Clear every daily accumulator if `day` is a new day. Idempotent per day."""
        with self._lock:
            if self.current_day == day:
                return False
            self.current_day = day
            for obs in self._by_actor.values():
                obs.earned_today = 0.0
                obs.spent_today = 0.0
            return True

    def forget(self, actor_id: str) -> None:
        with self._lock:
            self._by_actor.pop(actor_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_actor)
