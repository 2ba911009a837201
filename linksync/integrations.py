"""
Collaborator interfaces the sync core reads from.

The host game supplies a GameStateAccessor. Economy, permissions and skills
are optional providers: when one is absent the no-op default is used, so
the core never probes for which plugins happen to be installed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Protocol, runtime_checkable


@runtime_checkable
class GameStateAccessor(Protocol):
    def username(self, actor_id: str) -> str: ...

    def location(self, actor_id: str) -> Mapping[str, Any]: ...

    def vitals(self, actor_id: str) -> Mapping[str, Any]: ...

    def experience(self, actor_id: str) -> Mapping[str, Any]: ...

    def inventory(self, actor_id: str) -> List[Mapping[str, Any]]: ...

    def statistics(self, actor_id: str) -> Mapping[str, Any]: ...

    def advancements(self, actor_id: str) -> List[str]: ...

    def gamemode(self, actor_id: str) -> str: ...


class EconomyProvider(Protocol):
    def balance(self, actor_id: str) -> float: ...


class PermissionProvider(Protocol):
    def primary_group(self, actor_id: str) -> str: ...

    def groups(self, actor_id: str) -> List[str]: ...


class SkillsProvider(Protocol):
    def skills(self, actor_id: str) -> Mapping[str, int]: ...


class NoEconomy:
    available = False

    def balance(self, actor_id: str) -> float:
        return 0.0


class NoPermissions:
    available = False

    def primary_group(self, actor_id: str) -> str:
        return "default"

    def groups(self, actor_id: str) -> List[str]:
        return []


class NoSkills:
    available = False

    def skills(self, actor_id: str) -> Mapping[str, int]:
        return {}


class NullGameState:
    """Accessor used when no game is attached (ops API only)."""

    def username(self, actor_id: str) -> str:
        return actor_id[:8]

    def location(self, actor_id: str) -> Mapping[str, Any]:
        return {}

    def vitals(self, actor_id: str) -> Mapping[str, Any]:
        return {}

    def experience(self, actor_id: str) -> Mapping[str, Any]:
        return {}

    def inventory(self, actor_id: str) -> List[Mapping[str, Any]]:
        return []

    def statistics(self, actor_id: str) -> Mapping[str, Any]:
        return {}

    def advancements(self, actor_id: str) -> List[str]:
        return []

    def gamemode(self, actor_id: str) -> str:
        return "UNKNOWN"


@dataclass
class Capabilities:
    economy: EconomyProvider = field(default_factory=NoEconomy)
    permissions: PermissionProvider = field(default_factory=NoPermissions)
    skills: SkillsProvider = field(default_factory=NoSkills)

    def describe(self) -> Dict[str, bool]:
        return {
            "economy": bool(getattr(self.economy, "available", True)),
            "permissions": bool(getattr(self.permissions, "available", True)),
            "skills": bool(getattr(self.skills, "available", True)),
        }
