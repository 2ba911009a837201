from __future__ import annotations

import dataclasses
import hashlib
import json
import math
from typing import Any, Dict, Iterable, List, Mapping, Optional


def _as_plain(value: Any) -> Any:
    """
    Best-effort object -> plain data. Supports:
    - Pydantic v2 (model_dump)
    - dataclasses
    - plain objects with __dict__
    """
    md = getattr(value, "model_dump", None)
    if callable(md):
        return md()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if hasattr(value, "__dict__"):
        return dict(vars(value))
    return str(value)


def canonicalize(value: Any) -> Any:
    """
    Reduce a value to a JSON-stable form so that semantically equal inputs
    serialize identically: mapping keys sorted, sets ordered, floats that
    hold whole numbers collapsed to ints, -0.0 folded into 0.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value):
            return "nan"
        if math.isinf(value):
            return "inf" if value > 0 else "-inf"
        if value == int(value):
            return int(value)
        return round(value, 6)
    if isinstance(value, Mapping):
        return {str(k): canonicalize(v) for k, v in sorted(value.items(), key=lambda kv: str(kv[0]))}
    if isinstance(value, (set, frozenset)):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=lambda x: json.dumps(x, sort_keys=True))
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    return canonicalize(_as_plain(value))


def _digest(canonical: Any) -> str:
    blob = json.dumps(canonical, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return hashlib.sha256(blob).hexdigest()[:12]


class ChangeFingerprinter:
    """
    Short deterministic change markers.

    Equal input -> equal output is the property consumers rely on; they
    compare fingerprints to decide whether a category changed. Collision
    resistance is not a goal.
    """

    def fingerprint(self, value: Any) -> str:
        return _digest(canonicalize(value))

    # -----------------
    # Category-aware forms
    # -----------------
    @staticmethod
    def quantize_location(location: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Whole-block coordinates; movement inside one block is not a change."""
        loc = location or {}
        out: Dict[str, Any] = {"world": str(loc.get("world") or "")}
        for axis in ("x", "y", "z"):
            try:
                out[axis] = int(math.floor(float(loc.get(axis, 0) or 0)))
            except (TypeError, ValueError):
                out[axis] = 0
        return out

    @staticmethod
    def normalize_inventory(items: Optional[Iterable[Any]]) -> List[List[Any]]:
        """
        Item type -> total amount, sorted by type. Slot order and empty
        slots do not count as a change.
        """
        totals: Dict[str, int] = {}
        for item in items or []:
            if item is None:
                continue
            d = item if isinstance(item, Mapping) else _as_plain(item)
            if not isinstance(d, Mapping):
                continue
            kind = str(d.get("type") or d.get("material") or "").upper()
            if not kind or kind == "AIR":
                continue
            try:
                amount = int(d.get("amount", 1) or 0)
            except (TypeError, ValueError):
                amount = 0
            if amount <= 0:
                continue
            totals[kind] = totals.get(kind, 0) + amount
        return [[k, totals[k]] for k in sorted(totals)]

    def location(self, location: Optional[Mapping[str, Any]]) -> str:
        return self.fingerprint(self.quantize_location(location))

    def inventory(self, items: Optional[Iterable[Any]]) -> str:
        return self.fingerprint(self.normalize_inventory(items))

    def for_category(self, category: str, value: Any) -> str:
        if category == "location":
            return self.location(value if isinstance(value, Mapping) else None)
        if category == "inventory":
            return self.inventory(value if not isinstance(value, (str, bytes)) else None)
        return self.fingerprint(value)
