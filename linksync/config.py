from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict

logger = logging.getLogger(__name__)

# Hard floors. Configured values below these are raised, not rejected.
FULL_SYNC_FLOOR_S = 60
LIGHTWEIGHT_FLOOR_MS = 50          # one simulation tick
RESOURCE_POLL_FLOOR_S = 1
RESOURCE_NOTIFY_FLOOR_S = 1

DEFAULT_ENDPOINTS: Dict[str, str] = {
    "update": "/player/update",
    "status": "/player/status",
    "unlink": "/minecraft/unlink",
    "notify": "/minecraft/notify",
    "player": "/player/{uuid}",
}


def _env(name: str, default: str) -> str:
    v = os.getenv(name)
    return v.strip() if v and v.strip() else default


def _env_bool(name: str, default: str = "0") -> bool:
    v = os.getenv(name, default).strip().lower()
    return v in ("1", "true", "yes", "on")


def _env_float(name: str, default: str) -> float:
    try:
        return float(os.getenv(name, default))
    except Exception:
        return float(default)


def _env_int(name: str, default: str) -> int:
    try:
        return int(float(os.getenv(name, default)))
    except Exception:
        return int(default)


def normalize_base_url(url: str) -> str:
    url = (url or "").strip()
    if not url.startswith(("http://", "https://")):
        logger.warning("API URL %r is missing http:// or https:// prefix, adding http://", url)
        url = "http://" + url
    return url.rstrip("/")


def normalize_endpoint(path: str) -> str:
    path = (path or "").strip()
    return path if path.startswith("/") else "/" + path


@dataclass
class SyncConfig:
    """
    Resolved configuration for the sync core.
    Raw values are kept as configured; use the effective_* accessors,
    which apply the hard floors.
    """
    api_url: str = "http://localhost:3000/api"
    server_key: str = ""
    api_token: str = ""
    user_agent: str = "linksync/0.1"
    endpoints: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENDPOINTS))

    connect_timeout_s: float = 3.0
    full_read_timeout_s: float = 10.0
    notify_timeout_s: float = 3.0
    fetch_timeout_s: float = 5.0

    full_sync_cooldown_s: float = 60.0
    lightweight_cooldown_ms: int = 500
    full_sync_interval_s: float = 120.0
    full_sync_stagger_s: float = 1.0

    resource_poll_interval_s: float = 3.0
    resource_min_change: float = 1.0
    resource_min_interval_s: float = 10.0
    reset_timezone: str = "Europe/London"

    leaderboard_interval_s: float = 300.0
    sync_distance: float = 100.0
    user_id_ttl_s: float = 300.0
    rate_limit_log_window_s: float = 60.0

    realtime_updates: bool = True
    track_economy: bool = True
    track_permissions: bool = True
    track_skills: bool = True

    data_dir: str = "./data"
    workers: int = 4
    debug: bool = False

    # -----------------
    # Effective values
    # -----------------
    def base_url(self) -> str:
        return normalize_base_url(self.api_url)

    def endpoint(self, name: str) -> str:
        return normalize_endpoint(self.endpoints.get(name) or DEFAULT_ENDPOINTS[name])

    def effective_full_cooldown_ms(self) -> int:
        return int(max(float(self.full_sync_cooldown_s), FULL_SYNC_FLOOR_S) * 1000)

    def effective_lightweight_cooldown_ms(self) -> int:
        return int(max(int(self.lightweight_cooldown_ms), LIGHTWEIGHT_FLOOR_MS))

    def effective_full_interval_s(self) -> float:
        return max(float(self.full_sync_interval_s), float(FULL_SYNC_FLOOR_S))

    def effective_poll_interval_s(self) -> float:
        return max(float(self.resource_poll_interval_s), float(RESOURCE_POLL_FLOOR_S))

    def effective_notify_interval_ms(self) -> int:
        return int(max(float(self.resource_min_interval_s), RESOURCE_NOTIFY_FLOOR_S) * 1000)

    def warn_on_clamped(self) -> None:
        if self.full_sync_cooldown_s < FULL_SYNC_FLOOR_S:
            logger.warning(
                "full_sync_cooldown_s=%s is below the %ss floor; using %ss",
                self.full_sync_cooldown_s, FULL_SYNC_FLOOR_S, FULL_SYNC_FLOOR_S,
            )
        if self.full_sync_interval_s < FULL_SYNC_FLOOR_S:
            logger.warning(
                "full_sync_interval_s=%s is below the %ss floor; using %ss",
                self.full_sync_interval_s, FULL_SYNC_FLOOR_S, FULL_SYNC_FLOOR_S,
            )
        if self.lightweight_cooldown_ms < LIGHTWEIGHT_FLOOR_MS:
            logger.warning("lightweight_cooldown_ms=%s raised to %sms", self.lightweight_cooldown_ms, LIGHTWEIGHT_FLOOR_MS)
        if self.resource_poll_interval_s < RESOURCE_POLL_FLOOR_S:
            logger.warning("resource_poll_interval_s=%s raised to %ss", self.resource_poll_interval_s, RESOURCE_POLL_FLOOR_S)
        if self.resource_min_interval_s < RESOURCE_NOTIFY_FLOOR_S:
            logger.warning("resource_min_interval_s=%s raised to %ss", self.resource_min_interval_s, RESOURCE_NOTIFY_FLOOR_S)

    def links_path(self) -> str:
        return os.path.join(self.data_dir, "playerdata.json")

    def leaderboard_path(self) -> str:
        return os.path.join(self.data_dir, "top3_leaderboards.json")

    @classmethod
    def from_env(cls) -> "SyncConfig":
        endpoints = dict(DEFAULT_ENDPOINTS)
        for name in DEFAULT_ENDPOINTS:
            endpoints[name] = _env(f"LINKSYNC_ENDPOINT_{name.upper()}", DEFAULT_ENDPOINTS[name])

        cfg = cls(
            api_url=_env("LINKSYNC_API_URL", "http://localhost:3000/api"),
            server_key=_env("LINKSYNC_SERVER_KEY", ""),
            api_token=_env("LINKSYNC_API_TOKEN", ""),
            user_agent=_env("LINKSYNC_USER_AGENT", "linksync/0.1"),
            endpoints=endpoints,
            connect_timeout_s=_env_float("LINKSYNC_CONNECT_TIMEOUT_S", "3"),
            full_read_timeout_s=_env_float("LINKSYNC_FULL_READ_TIMEOUT_S", "10"),
            notify_timeout_s=_env_float("LINKSYNC_NOTIFY_TIMEOUT_S", "3"),
            fetch_timeout_s=_env_float("LINKSYNC_FETCH_TIMEOUT_S", "5"),
            full_sync_cooldown_s=_env_float("LINKSYNC_FULL_SYNC_COOLDOWN_S", "60"),
            lightweight_cooldown_ms=_env_int("LINKSYNC_LIGHTWEIGHT_COOLDOWN_MS", "500"),
            full_sync_interval_s=_env_float("LINKSYNC_FULL_SYNC_INTERVAL_S", "120"),
            full_sync_stagger_s=_env_float("LINKSYNC_FULL_SYNC_STAGGER_S", "1"),
            resource_poll_interval_s=_env_float("LINKSYNC_RESOURCE_POLL_INTERVAL_S", "3"),
            resource_min_change=_env_float("LINKSYNC_RESOURCE_MIN_CHANGE", "1.0"),
            resource_min_interval_s=_env_float("LINKSYNC_RESOURCE_MIN_INTERVAL_S", "10"),
            reset_timezone=_env("LINKSYNC_RESET_TIMEZONE", "Europe/London"),
            leaderboard_interval_s=_env_float("LINKSYNC_LEADERBOARD_INTERVAL_S", "300"),
            sync_distance=_env_float("LINKSYNC_SYNC_DISTANCE", "100"),
            user_id_ttl_s=_env_float("LINKSYNC_USER_ID_TTL_S", "300"),
            rate_limit_log_window_s=_env_float("LINKSYNC_RATE_LIMIT_LOG_WINDOW_S", "60"),
            realtime_updates=_env_bool("LINKSYNC_REALTIME_UPDATES", "1"),
            track_economy=_env_bool("LINKSYNC_TRACK_ECONOMY", "1"),
            track_permissions=_env_bool("LINKSYNC_TRACK_PERMISSIONS", "1"),
            track_skills=_env_bool("LINKSYNC_TRACK_SKILLS", "1"),
            data_dir=_env("LINKSYNC_DATA_DIR", "./data"),
            workers=_env_int("LINKSYNC_WORKERS", "4"),
            debug=_env_bool("LINKSYNC_DEBUG", "0"),
        )
        return cfg
