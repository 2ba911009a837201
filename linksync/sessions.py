from __future__ import annotations

import math
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

from linksync.types import now_ms


@dataclass
class ActorSession:
    actor_id: str
    username: str
    started_at_ms: int
    last_sync_location: Optional[Dict[str, Any]] = None
    pending: Set[Future] = field(default_factory=set)


def moved_far_enough(last: Optional[Mapping[str, Any]], current: Mapping[str, Any], distance: float) -> bool:
    """True on a world change or when the straight-line move is >= distance."""
    if last is None:
        return True
    if str(last.get("world") or "") != str(current.get("world") or ""):
        return True
    dx = float(current.get("x", 0) or 0) - float(last.get("x", 0) or 0)
    dy = float(current.get("y", 0) or 0) - float(last.get("y", 0) or 0)
    dz = float(current.get("z", 0) or 0) - float(last.get("z", 0) or 0)
    return math.sqrt(dx * dx + dy * dy + dz * dz) >= distance


class SessionRegistry:
    """
    Ephemeral per-actor session trackers.
    Holds only currently active actors; everything here is dropped on end().
    """

    def __init__(self, clock: Callable[[], int] = now_ms) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, ActorSession] = {}

    def start(self, actor_id: str, username: str) -> ActorSession:
        with self._lock:
            s = self._sessions.get(actor_id)
            if s is None:
                s = ActorSession(actor_id=actor_id, username=username, started_at_ms=self._clock())
                self._sessions[actor_id] = s
            else:
                s.username = username
            return s

    def end(self, actor_id: str) -> Optional[ActorSession]:
        with self._lock:
            return self._sessions.pop(actor_id, None)

    def is_active(self, actor_id: str) -> bool:
        with self._lock:
            return actor_id in self._sessions

    def active_actors(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def started_at(self, actor_id: str) -> Optional[int]:
        with self._lock:
            s = self._sessions.get(actor_id)
            return s.started_at_ms if s else None

    def username_of(self, actor_id: str) -> Optional[str]:
        with self._lock:
            s = self._sessions.get(actor_id)
            return s.username if s else None

    def last_sync_location(self, actor_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            s = self._sessions.get(actor_id)
            return dict(s.last_sync_location) if s and s.last_sync_location else None

    def set_last_sync_location(self, actor_id: str, location: Mapping[str, Any]) -> None:
        with self._lock:
            s = self._sessions.get(actor_id)
            if s is not None:
                s.last_sync_location = dict(location)

    def track(self, actor_id: str, future: Future) -> None:
        with self._lock:
            s = self._sessions.get(actor_id)
            if s is None:
                return
            s.pending.add(future)
        future.add_done_callback(lambda f: self._untrack(actor_id, f))

    def _untrack(self, actor_id: str, future: Future) -> None:
        with self._lock:
            s = self._sessions.get(actor_id)
            if s is not None:
                s.pending.discard(future)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
