from __future__ import annotations

import json
import logging
import os
import threading
from typing import Callable, Dict, List, Optional

from linksync.errors import PersistenceError
from linksync.types import ActorLinkState, now_ms

logger = logging.getLogger(__name__)


class LinkStateStore:
    """
    Linked/unlinked cache backed by a single JSON file.

    Format:
    {
      "actors": {
        "<actor_id>": {"linked": true, "linked_at_ms": ..., "last_sync_at_ms": ...},
        ...
      }
    }

    - Memory is the fast path; the on-disk map is consulted only when memory
      has no entry for an actor.
    - Writes update memory first, then persist synchronously.
    - A failed write is logged and NOT rolled back: memory stays authoritative
      for the rest of the session even if disk diverges.
    """

    def __init__(self, path: str, clock: Callable[[], int] = now_ms) -> None:
        self.path = path
        self._clock = clock
        self._lock = threading.RLock()
        self._cache: Dict[str, ActorLinkState] = {}
        self._disk: Dict[str, ActorLinkState] = {}
        self.write_failures = 0

        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        self._disk = self._load()
        linked = sum(1 for s in self._disk.values() if s.linked)
        logger.info("Loaded %d actors (%d linked) from %s", len(self._disk), linked, self.path)

    # -----------------
    # Low-level I/O
    # -----------------
    def _load(self) -> Dict[str, ActorLinkState]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, starting empty: %s", self.path, e)
            return {}

        out: Dict[str, ActorLinkState] = {}
        for actor_id, rec in (data.get("actors") or {}).items():
            if not isinstance(rec, dict):
                logger.warning("Skipping malformed link record for %s", actor_id)
                continue
            out[str(actor_id)] = ActorLinkState.from_dict(actor_id, rec)
        return out

    def _write(self, data: Dict) -> None:
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"could not write {self.path}: {e}") from e

    def _persist(self, state: ActorLinkState) -> None:
        # caller holds the lock
        self._disk[state.actor_id] = ActorLinkState(**vars(state))
        data = {"actors": {aid: s.to_dict() for aid, s in self._disk.items()}}
        try:
            self._write(data)
        except PersistenceError as e:
            self.write_failures += 1
            logger.warning("Link state for %s kept in memory only: %s", state.actor_id, e)

    def _get(self, actor_id: str) -> Optional[ActorLinkState]:
        # caller holds the lock
        st = self._cache.get(actor_id)
        if st is not None:
            return st
        on_disk = self._disk.get(actor_id)
        if on_disk is None:
            return None
        st = ActorLinkState(**vars(on_disk))
        self._cache[actor_id] = st
        return st

    def _get_or_create(self, actor_id: str) -> ActorLinkState:
        st = self._get(actor_id)
        if st is None:
            st = ActorLinkState(actor_id=actor_id)
            self._cache[actor_id] = st
        return st

    # -----------------
    # Contract
    # -----------------
    def is_linked(self, actor_id: str) -> bool:
        with self._lock:
            st = self._get(actor_id)
            return bool(st and st.linked)

    def set_linked(self, actor_id: str, linked: bool) -> ActorLinkState:
        with self._lock:
            st = self._get_or_create(actor_id)
            if linked and not st.linked:
                st.linked_at_ms = self._clock()
            st.linked = bool(linked)
            self._persist(st)
            snap = ActorLinkState(**vars(st))
        logger.info("Actor %s is now %slinked", actor_id, "" if linked else "un")
        return snap

    def clear_link(self, actor_id: str) -> ActorLinkState:
        """Same effect as set_linked(actor_id, False); logged as an explicit clear."""
        with self._lock:
            st = self._get_or_create(actor_id)
            st.linked = False
            self._persist(st)
            snap = ActorLinkState(**vars(st))
        logger.info("Cleared link data for actor %s", actor_id)
        return snap

    def sync_time_of(self, actor_id: str) -> int:
        with self._lock:
            st = self._get(actor_id)
            return st.last_sync_at_ms if st else 0

    def touch_sync_time(self, actor_id: str) -> int:
        with self._lock:
            st = self._get_or_create(actor_id)
            st.last_sync_at_ms = self._clock()
            self._persist(st)
            return st.last_sync_at_ms

    # -----------------
    # Read helpers
    # -----------------
    def state_of(self, actor_id: str) -> ActorLinkState:
        with self._lock:
            st = self._get(actor_id)
            return ActorLinkState(**vars(st)) if st else ActorLinkState(actor_id=actor_id)

    def linked_actors(self) -> List[str]:
        with self._lock:
            ids = set(self._disk) | set(self._cache)
            return sorted(a for a in ids if (self._get(a) or ActorLinkState(a)).linked)

    def snapshot(self) -> Dict:
        with self._lock:
            return {
                "path": self.path,
                "cached": len(self._cache),
                "on_disk": len(self._disk),
                "write_failures": self.write_failures,
            }
