from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional

from linksync.errors import PersistenceError
from linksync.leaderboard.formatting import CATEGORIES, entered_message, overtook_message
from linksync.types import LeaderboardEntry, LeaderboardEvent, StateSnapshot

logger = logging.getLogger(__name__)

TOP_N = 3


class LeaderboardFileStore:
    """
    Per-category top-N persisted as one JSON file:

    {
      "economy": {"ids": ["a", "b"], "values": {"a": 120.0, "b": 90.0}},
      ...
    }
    """

    def __init__(self, path: str) -> None:
        self.path = path
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)

    def load(self) -> Dict[str, List[LeaderboardEntry]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f) or {}
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Could not read %s, starting with empty leaderboards: %s", self.path, e)
            return {}

        out: Dict[str, List[LeaderboardEntry]] = {}
        if not isinstance(raw, dict):
            logger.warning("Ignoring %s: expected an object, got %s", self.path, type(raw).__name__)
            return out
        for category, rec in raw.items():
            if not isinstance(rec, dict):
                continue
            values = rec.get("values")
            if not isinstance(values, dict):
                values = {}
            entries = []
            for actor_id in list(rec.get("ids") or [])[:TOP_N]:
                if not isinstance(actor_id, str):
                    continue
                raw_value = values.get(actor_id, 0.0)
                try:
                    value = float(raw_value)
                except (TypeError, ValueError):
                    logger.warning("Dropping %s entry for %s: bad value %r", category, actor_id, raw_value)
                    continue
                entries.append(LeaderboardEntry(str(actor_id), value))
            out[str(category)] = entries
        return out

    def save(self, boards: Dict[str, List[LeaderboardEntry]]) -> None:
        data = {
            category: {
                "ids": [e.actor_id for e in entries],
                "values": {e.actor_id: e.value for e in entries},
            }
            for category, entries in boards.items()
        }
        tmp = self.path + ".tmp"
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"could not write {self.path}: {e}") from e


def rank_top(snapshots: Iterable[StateSnapshot], stat_key: str, n: int = TOP_N) -> List[LeaderboardEntry]:
    """Descending by value; equal values fall back to actor id order."""
    entries = [LeaderboardEntry(s.actor_id, s.numeric(stat_key)) for s in snapshots]
    entries.sort(key=lambda e: (-e.value, e.actor_id))
    return entries[:n]


class LeaderboardTracker:
    """
    Top-3 tracking with entrant / overtake events.

    Each evaluation rebuilds every category's top-3 from the batch and
    replaces the stored list wholesale, then persists. Actors dropping out
    of the top-3 produce no event.
    """

    def __init__(
        self,
        store: LeaderboardFileStore,
        categories: Optional[Iterable[str]] = None,
        announce: Optional[Callable[[LeaderboardEvent], Any]] = None,
        name_of: Optional[Callable[[str], Optional[str]]] = None,
    ) -> None:
        self.store = store
        self.categories = list(categories) if categories is not None else list(CATEGORIES)
        unknown = [c for c in self.categories if c not in CATEGORIES]
        if unknown:
            raise ValueError(f"unknown leaderboard categories: {unknown}")
        self._announce = announce
        self._name_of = name_of
        self._lock = threading.Lock()
        self._boards: Dict[str, List[LeaderboardEntry]] = store.load()
        self.evaluations = 0
        self.events_emitted = 0

    def top(self, category: str) -> List[LeaderboardEntry]:
        with self._lock:
            return list(self._boards.get(category, []))

    def boards(self) -> Dict[str, List[LeaderboardEntry]]:
        with self._lock:
            return {c: list(self._boards.get(c, [])) for c in self.categories}

    def _display_name(self, actor_id: str, names: Dict[str, str]) -> str:
        name = names.get(actor_id)
        if not name and self._name_of is not None:
            name = self._name_of(actor_id)
        return name or actor_id[:8]

    def evaluate(self, snapshots: Iterable[StateSnapshot]) -> List[LeaderboardEvent]:
        # one snapshot per actor, latest wins
        latest: Dict[str, StateSnapshot] = {}
        for s in snapshots:
            prev = latest.get(s.actor_id)
            if prev is None or s.collected_at_ms >= prev.collected_at_ms:
                latest[s.actor_id] = s
        if not latest:
            logger.debug("Empty batch, leaderboards left as they are")
            return []

        names = {aid: s.username for aid, s in latest.items()}
        events: List[LeaderboardEvent] = []

        with self._lock:
            for category in self.categories:
                new_top = rank_top(latest.values(), CATEGORIES[category].stat_key)
                old_top = self._boards.get(category, [])
                events.extend(self._diff(category, old_top, new_top, names))
                self._boards[category] = new_top
            snapshot = {c: list(v) for c, v in self._boards.items()}
            self.evaluations += 1
            self.events_emitted += len(events)

        try:
            self.store.save(snapshot)
        except PersistenceError as e:
            logger.warning("Leaderboard state kept in memory only: %s", e)

        for event in events:
            logger.info("[Leaderboards] %s", event.message)
            if self._announce is not None:
                try:
                    self._announce(event)
                except Exception:
                    logger.exception("Leaderboard announce callback failed")
        return events

    def _diff(
        self,
        category: str,
        old_top: List[LeaderboardEntry],
        new_top: List[LeaderboardEntry],
        names: Dict[str, str],
    ) -> List[LeaderboardEvent]:
        old_index = {e.actor_id: i for i, e in enumerate(old_top)}
        old_value = {e.actor_id: e.value for e in old_top}
        out: List[LeaderboardEvent] = []

        for i, entry in enumerate(new_top):
            rank = i + 1
            name = self._display_name(entry.actor_id, names)
            if entry.actor_id not in old_index:
                gap = abs(entry.value - new_top[i - 1].value) if i > 0 else None
                out.append(LeaderboardEvent(
                    category=category,
                    actor_id=entry.actor_id,
                    rank=rank,
                    kind="entered",
                    value=entry.value,
                    gap=gap,
                    message=entered_message(name, category, rank, gap),
                ))
            elif old_index[entry.actor_id] > i:
                gained = abs(entry.value - old_value[entry.actor_id])
                out.append(LeaderboardEvent(
                    category=category,
                    actor_id=entry.actor_id,
                    rank=rank,
                    kind="overtook",
                    value=entry.value,
                    gap=gained,
                    message=overtook_message(name, category, rank, gained),
                ))
        return out

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "path": self.store.path,
                "categories": list(self.categories),
                "evaluations": self.evaluations,
                "events_emitted": self.events_emitted,
            }
