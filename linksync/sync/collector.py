from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional

from linksync.config import SyncConfig
from linksync.integrations import Capabilities, GameStateAccessor
from linksync.monitor.ledger import ResourceLedger
from linksync.sync.fingerprint import ChangeFingerprinter
from linksync.types import StateSnapshot, now_ms

logger = logging.getLogger(__name__)

TICKS_PER_MINUTE = 20 * 60

# Statistics that get their own fingerprint/timestamp next to the category one.
TRACKED_STATISTICS = (
    "blocks_mined",
    "deaths",
    "mobs_killed",
    "player_kills",
    "jumps",
    "damage_dealt",
    "damage_taken",
    "items_crafted",
    "fish_caught",
    "animals_bred",
    "distance_traveled",
)


def format_playtime(minutes: int) -> str:
    return f"{int(minutes) // 60}h {int(minutes) % 60}m"


class SnapshotCollector:
    """
    Builds a StateSnapshot for one actor.

    Every accessor call is isolated: a failure is logged and replaced by the
    category default (0 / empty), and the snapshot is still produced. Every
    category that gets a fingerprint is also stamped in last_updated with
    the collection time, changed or not.
    """

    def __init__(
        self,
        accessor: GameStateAccessor,
        capabilities: Optional[Capabilities] = None,
        fingerprinter: Optional[ChangeFingerprinter] = None,
        ledger: Optional[ResourceLedger] = None,
        config: Optional[SyncConfig] = None,
        session_start_of: Callable[[str], Optional[int]] = lambda _a: None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.accessor = accessor
        self.capabilities = capabilities or Capabilities()
        self.fingerprinter = fingerprinter or ChangeFingerprinter()
        self.ledger = ledger or ResourceLedger()
        self.config = config or SyncConfig()
        self._session_start_of = session_start_of
        self._clock = clock
        self.accessor_failures = 0

    def _read(self, actor_id: str, what: str, fn: Callable[[], Any], default: Any) -> Any:
        try:
            value = fn()
        except Exception as e:
            self.accessor_failures += 1
            logger.warning("Could not read %s for %s, using default: %s", what, actor_id, e)
            return default
        return default if value is None else value

    def _convert(self, actor_id: str, what: str, raw: Any, cast: Callable[[Any], Any], default: Any) -> Any:
        try:
            return cast(raw)
        except (TypeError, ValueError, OverflowError):
            self.accessor_failures += 1
            logger.warning("Malformed %s for %s, using default: %r", what, actor_id, raw)
            return default

    def collect(self, actor_id: str) -> StateSnapshot:
        now = self._clock()
        fp = self.fingerprinter
        acc = self.accessor
        caps = self.capabilities

        attrs: Dict[str, Any] = {}
        fingerprints: Dict[str, str] = {}

        username = str(self._read(actor_id, "username", lambda: acc.username(actor_id), actor_id))
        attrs["uuid"] = actor_id
        attrs["username"] = username
        attrs["online"] = True

        location: Dict[str, Any] = self._read(actor_id, "location", lambda: dict(acc.location(actor_id)), {})
        attrs["location"] = location
        attrs["world"] = str(location.get("world") or "")
        fingerprints["location"] = fp.location(location)

        gamemode = str(self._read(actor_id, "gamemode", lambda: acc.gamemode(actor_id), "UNKNOWN"))
        attrs["gamemode"] = gamemode

        vitals: Dict[str, Any] = self._read(actor_id, "vitals", lambda: dict(acc.vitals(actor_id)), {})
        attrs["health"] = self._convert(actor_id, "health", vitals.get("health", 0.0), float, 0.0)
        attrs["food"] = self._convert(actor_id, "food", vitals.get("food", 0), int, 0)
        fingerprints["health"] = fp.fingerprint([attrs["health"], attrs["food"]])

        xp: Dict[str, Any] = self._read(actor_id, "experience", lambda: dict(acc.experience(actor_id)), {})
        attrs["level"] = self._convert(actor_id, "level", xp.get("level", 0) or 0, int, 0)
        attrs["exp"] = self._convert(actor_id, "exp", xp.get("exp", 0.0) or 0.0, float, 0.0)
        attrs["total_experience"] = self._convert(actor_id, "total_experience", xp.get("total", 0) or 0, int, 0)
        fingerprints["experience"] = fp.fingerprint([attrs["level"], attrs["exp"]])

        inventory: List[Any] = self._read(actor_id, "inventory", lambda: list(acc.inventory(actor_id)), [])
        attrs["inventory"] = [dict(i) for i in inventory if isinstance(i, Mapping)]
        fingerprints["inventory"] = fp.inventory(inventory)

        stats: Dict[str, Any] = self._read(actor_id, "statistics", lambda: dict(acc.statistics(actor_id)), {})
        fingerprints.update(self._collect_statistics(stats, attrs))

        advancements: List[str] = self._read(
            actor_id, "advancements", lambda: [str(a) for a in acc.advancements(actor_id)], []
        )
        attrs["achievements"] = len(advancements)
        fingerprints["advancements"] = fp.fingerprint(set(advancements))

        if self.config.track_economy:
            balance = self._read(actor_id, "balance", lambda: float(caps.economy.balance(actor_id)), 0.0)
            earned, spent = self.ledger.daily_totals(actor_id)
            attrs["balance"] = balance
            attrs["money_earned_today"] = earned
            attrs["money_spent_today"] = spent
            fingerprints["economy"] = fp.fingerprint(round(balance, 2))

        if self.config.track_permissions:
            attrs["group"] = str(self._read(actor_id, "group", lambda: caps.permissions.primary_group(actor_id), "default"))
            attrs["groups"] = self._read(actor_id, "groups", lambda: [str(g) for g in caps.permissions.groups(actor_id)], [])
            fingerprints["permissions"] = fp.fingerprint([attrs["group"], sorted(attrs["groups"])])

        if self.config.track_skills:
            skills: Dict[str, int] = self._read(
                actor_id,
                "skills",
                lambda: {str(k): int(v or 0) for k, v in caps.skills.skills(actor_id).items()},
                {},
            )
            attrs["mcmmo_data"] = skills
            attrs["mcmmo_power_level"] = sum(skills.values())
            fingerprints["skills"] = fp.fingerprint(skills)

        started = self._session_start_of(actor_id)
        attrs["currentSession"] = max(0, (now - started) // 1000) if started else 0
        attrs["lastSeen"] = now

        last_updated = {category: now for category in fingerprints}
        return StateSnapshot(
            actor_id=actor_id,
            username=username,
            collected_at_ms=now,
            attributes=attrs,
            last_updated=last_updated,
            change_fingerprint=fingerprints,
        )

    def _collect_statistics(self, stats: Mapping[str, Any], attrs: Dict[str, Any]) -> Dict[str, str]:
        fp = self.fingerprinter
        out: Dict[str, str] = {}

        plain: Dict[str, Any] = {}
        for key, value in stats.items():
            if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
                plain[str(key)] = value
        for key in TRACKED_STATISTICS:
            plain.setdefault(key, 0)

        if "play_time_ticks" in plain:
            minutes = int(plain["play_time_ticks"]) // TICKS_PER_MINUTE
        else:
            minutes = int(plain.get("playtime_minutes", 0))
        plain["playtime_minutes"] = minutes
        attrs["playtime"] = format_playtime(minutes)

        # statistics sit at the top level of the wire payload
        attrs.update(plain)

        out["statistics"] = fp.fingerprint(plain)
        for key in TRACKED_STATISTICS:
            out[key] = fp.fingerprint(plain[key])
        return out
