from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    return int(time.time() * 1000)


class Cadence(str, Enum):
    LIGHTWEIGHT = "lightweight"
    FULL = "full"


class ObservationState(str, Enum):
    UNOBSERVED = "unobserved"
    TRACKING = "tracking"


@dataclass
class ActorLinkState:
    """
    Durable link record for one actor.
    Never deleted, only toggled: timestamps survive unlink/relink.
    """
    actor_id: str
    linked: bool = False
    linked_at_ms: int = 0
    last_sync_at_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "linked": self.linked,
            "linked_at_ms": self.linked_at_ms,
            "last_sync_at_ms": self.last_sync_at_ms,
        }

    @classmethod
    def from_dict(cls, actor_id: str, d: Mapping[str, Any]) -> "ActorLinkState":
        return cls(
            actor_id=str(actor_id),
            linked=bool(d.get("linked", False)),
            linked_at_ms=int(d.get("linked_at_ms", 0) or 0),
            last_sync_at_ms=int(d.get("last_sync_at_ms", 0) or 0),
        )


@dataclass(frozen=True)
class StateSnapshot:
    """
    Point-in-time capture of one actor. Built once by the collector,
    handed to the remote client, then dropped.
    """
    actor_id: str
    username: str
    collected_at_ms: int
    attributes: Mapping[str, Any] = field(default_factory=dict)
    last_updated: Mapping[str, int] = field(default_factory=dict)
    change_fingerprint: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # read-only views; the snapshot is never mutated after construction
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(self, "last_updated", MappingProxyType(dict(self.last_updated)))
        object.__setattr__(self, "change_fingerprint", MappingProxyType(dict(self.change_fingerprint)))

    def numeric(self, key: str, default: float = 0.0) -> float:
        v = self.attributes.get(key, default)
        try:
            return float(v)
        except (TypeError, ValueError):
            return float(default)

    def to_player_data(self) -> Dict[str, Any]:
        data = dict(self.attributes)
        data["last_updated"] = dict(self.last_updated)
        data["change_ids"] = dict(self.change_fingerprint)
        data["sync_timestamp"] = self.collected_at_ms
        return data


@dataclass
class ResourceObservation:
    last_known_value: Optional[float] = None
    earned_today: float = 0.0
    spent_today: float = 0.0
    last_notified_at_ms: int = 0

    @property
    def state(self) -> ObservationState:
        if self.last_known_value is None:
            return ObservationState.UNOBSERVED
        return ObservationState.TRACKING


@dataclass(frozen=True)
class LeaderboardEntry:
    actor_id: str
    value: float


@dataclass(frozen=True)
class LeaderboardEvent:
    category: str
    actor_id: str
    rank: int                 # 1-based
    kind: str                 # entered | overtook
    value: float
    gap: Optional[float] = None
    message: str = ""


class RemoteRecord(BaseModel):
    """
    Backend view of a linked actor (GET /player/{uuid} -> {data: {...}}).
    """
    user_id: Optional[str] = None
    username: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, body: Mapping[str, Any]) -> "RemoteRecord":
        data = body.get("data") if isinstance(body, Mapping) else None
        if not isinstance(data, Mapping):
            data = {}
        uid = data.get("id") or data.get("_id") or data.get("userId")
        return cls(
            user_id=str(uid) if uid is not None else None,
            username=data.get("mcUsername") or data.get("username"),
            data=dict(data),
        )


# -----------------
# Operations API shapes
# -----------------
class LinkStateResponse(BaseModel):
    ok: bool = True
    actor_id: str
    linked: bool
    linked_at_ms: int = 0
    last_sync_at_ms: int = 0


class ReconcileRequest(BaseModel):
    username: str


class ReconcileResponse(BaseModel):
    ok: bool = True
    actor_id: str
    linked: bool
    remote_confirmed: bool = False
    error: Optional[str] = None


class ResourceResponse(BaseModel):
    ok: bool = True
    actor_id: str
    state: ObservationState
    last_known_value: Optional[float] = None
    earned_today: float = 0.0
    spent_today: float = 0.0
    last_notified_at_ms: int = 0


class LeaderboardRow(BaseModel):
    rank: int
    actor_id: str
    value: float


class LeaderboardsResponse(BaseModel):
    ok: bool = True
    categories: Dict[str, List[LeaderboardRow]] = Field(default_factory=dict)
