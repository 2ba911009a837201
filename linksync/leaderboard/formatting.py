from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional


def _duration_minutes(diff: float) -> str:
    mins = int(diff)
    hours, mins = divmod(mins, 60)
    return (f"{hours}h " if hours > 0 else "") + f"{mins}m"


def _currency(diff: float) -> str:
    return "$" + f"{diff:,.0f}"


def _count(unit: str) -> Callable[[float], str]:
    def fmt(diff: float) -> str:
        return f"{diff:.0f} {unit}".rstrip()
    return fmt


@dataclass(frozen=True)
class Category:
    name: str
    stat_key: str
    label: str
    format_diff: Callable[[float], str]


CATEGORIES: Dict[str, Category] = {
    c.name: c
    for c in (
        Category("playtime", "playtime_minutes", "Playtime", _duration_minutes),
        Category("economy", "balance", "Economy", _currency),
        Category("mcmmo", "mcmmo_power_level", "Mcmmo", _count("PL")),
        Category("kills", "mobs_killed", "Kills", _count("kills")),
        Category("mining", "blocks_mined", "Mining", _count("blocks")),
        Category("achievements", "achievements", "Achievements", _count("achievements")),
    )
}


def format_diff(category: str, diff: float) -> str:
    c = CATEGORIES.get(category)
    if c is None:
        return f"{diff:.0f}"
    return c.format_diff(diff)


def entered_message(name: str, category: str, rank: int, gap: Optional[float] = None) -> str:
    label = CATEGORIES[category].label if category in CATEGORIES else category.capitalize()
    msg = f"{name} has reached Top {rank} in {label}!"
    if gap is not None:
        msg += f" (Overtook by {format_diff(category, gap)})"
    return msg


def overtook_message(name: str, category: str, rank: int, gained: float) -> str:
    label = CATEGORIES[category].label if category in CATEGORIES else category.capitalize()
    return f"{name} has overtaken and is now Top {rank} in {label}! (Gained {format_diff(category, gained)})"
