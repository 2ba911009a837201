from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

import requests

from linksync.config import SyncConfig
from linksync.errors import RateLimitedError, RemoteRejectedError, SyncError, TransportError
from linksync.runtime.log_sampler import SampledLog
from linksync.types import RemoteRecord, StateSnapshot, now_ms

logger = logging.getLogger(__name__)

DEBUG_BODY_LIMIT = 300


def _truncate(value: Any, limit: int = DEBUG_BODY_LIMIT) -> str:
    try:
        s = json.dumps(value, default=str)
    except (TypeError, ValueError):
        s = str(value)
    return s if len(s) <= limit else s[:limit] + "..."


def _body_text(r: requests.Response) -> str:
    return r.text or ""


def _body_json(r: requests.Response) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class RemoteSyncClient:
    """
    Backend client. One synchronous request per call, no automatic retry.

    Every failure is raised to the caller:
    - TransportError on timeout / connection problems
    - RateLimitedError on 429 (logged through a sampler)
    - RemoteRejectedError on any other non-2xx, with the response body
    """

    def __init__(
        self,
        config: SyncConfig,
        session: Optional[requests.Session] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.base_url = config.base_url()
        self.session = session or requests.Session()
        self._clock = clock
        self._sampled = SampledLog(logger, window_sec=config.rate_limit_log_window_s)

        self._lock = threading.Lock()
        self._user_ids: Dict[str, Tuple[str, int]] = {}

        self.requests_sent = 0
        self.failures = 0
        self.rate_limited = 0

    # -----------------
    # Transport
    # -----------------
    def _headers(self, bearer: bool = False) -> Dict[str, str]:
        h = {
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }
        if self.config.server_key:
            h["X-API-KEY"] = self.config.server_key
        if bearer and self.config.api_token:
            h["Authorization"] = f"Bearer {self.config.api_token}"
        return h

    def _request(
        self,
        method: str,
        path: str,
        op: str,
        read_timeout: float,
        body: Optional[Dict[str, Any]] = None,
        bearer: bool = False,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        if self.config.debug:
            logger.debug("%s %s body=%s", method, url, _truncate(body))

        with self._lock:
            self.requests_sent += 1
        try:
            r = self.session.request(
                method,
                url,
                json=body,
                headers=self._headers(bearer=bearer),
                timeout=(self.config.connect_timeout_s, read_timeout),
            )
        except requests.RequestException as e:
            with self._lock:
                self.failures += 1
            self._sampled.warning(f"transport:{op}", "%s %s failed: %s", method, path, e)
            raise TransportError(f"{op}: {e}") from e

        if r.status_code == 429:
            with self._lock:
                self.rate_limited += 1
            self._sampled.warning(f"rate_limited:{op}", "Backend rate limited %s (HTTP 429)", path)
            raise RateLimitedError(_body_text(r))

        if not 200 <= r.status_code < 300:
            with self._lock:
                self.failures += 1
            text = _body_text(r)
            self._sampled.warning(
                f"rejected:{op}:{r.status_code}",
                "%s %s rejected: HTTP %d %s", method, path, r.status_code, text[:DEBUG_BODY_LIMIT],
            )
            raise RemoteRejectedError(r.status_code, text)

        data = _body_json(r)
        if self.config.debug:
            logger.debug("%s %s -> %d %s", method, url, r.status_code, _truncate(data))
        return data

    # -----------------
    # Contract
    # -----------------
    def push_snapshot(self, snapshot: StateSnapshot) -> None:
        body = {
            "actorKey": snapshot.actor_id,
            "serverKey": self.config.server_key,
            "playerData": snapshot.to_player_data(),
        }
        self._request(
            "POST",
            self.config.endpoint("update"),
            op="push_snapshot",
            read_timeout=self.config.full_read_timeout_s,
            body=body,
        )

    def fetch_remote_state(self, actor_id: str) -> RemoteRecord:
        path = self.config.endpoint("player").replace("{uuid}", actor_id)
        data = self._request("GET", path, op="fetch_remote_state", read_timeout=self.config.fetch_timeout_s)
        record = RemoteRecord.from_response(data)
        if record.user_id:
            self._remember_user_id(actor_id, record.user_id)
        return record

    def notify_change(self, actor_id: str, category: str, value: Any, username: str = "") -> None:
        """Stat-level realtime signal (player_stat_update)."""
        user_id = self.resolve_user_id(actor_id)
        body = {
            "userId": user_id,
            "event": "player_stat_update",
            "data": {
                "type": "player_stat_update",
                "mcUsername": username,
                "mcUUID": actor_id,
                "statType": category,
                "value": value,
                "timestamp": self._clock(),
            },
        }
        self._request(
            "POST",
            self.config.endpoint("notify"),
            op="notify_change",
            read_timeout=self.config.notify_timeout_s,
            body=body,
            bearer=True,
        )

    def notify_update(self, actor_id: str, username: str = "") -> None:
        """Coarse 'something about this actor changed' signal (player_update)."""
        user_id = self.resolve_user_id(actor_id)
        body = {
            "userId": user_id,
            "event": "player_update",
            "data": {
                "mcUUID": actor_id,
                "mcUsername": username,
                "timestamp": self._clock(),
            },
        }
        self._request(
            "POST",
            self.config.endpoint("notify"),
            op="notify_update",
            read_timeout=self.config.notify_timeout_s,
            body=body,
            bearer=True,
        )

    def check_link_status(self, actor_id: str, username: str) -> bool:
        data = self._request(
            "POST",
            self.config.endpoint("status"),
            op="check_link_status",
            read_timeout=self.config.fetch_timeout_s,
            body={"username": username, "uuid": actor_id},
        )
        # older backends answer with isLinked
        if "linked" in data:
            return bool(data.get("linked"))
        return bool(data.get("isLinked", False))

    def unlink(self, actor_id: str, username: str) -> bool:
        data = self._request(
            "POST",
            self.config.endpoint("unlink"),
            op="unlink",
            read_timeout=self.config.fetch_timeout_s,
            body={"username": username, "uuid": actor_id},
        )
        return bool(data.get("success") or data.get("alreadyUnlinked"))

    # -----------------
    # Remote user id cache
    # -----------------
    def _remember_user_id(self, actor_id: str, user_id: str) -> None:
        now = self._clock()
        expires = now + int(self.config.user_id_ttl_s * 1000)
        with self._lock:
            for stale in [a for a, (_, exp) in self._user_ids.items() if exp <= now]:
                del self._user_ids[stale]
            self._user_ids[actor_id] = (user_id, expires)

    def resolve_user_id(self, actor_id: str) -> str:
        with self._lock:
            cached = self._user_ids.get(actor_id)
        if cached is not None and cached[1] > self._clock():
            return cached[0]

        record = self.fetch_remote_state(actor_id)
        if not record.user_id:
            raise SyncError(f"backend has no user id for actor {actor_id}")
        return record.user_id

    def forget(self, actor_id: str) -> None:
        with self._lock:
            self._user_ids.pop(actor_id, None)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            out = {
                "base_url": self.base_url,
                "requests_sent": self.requests_sent,
                "failures": self.failures,
                "rate_limited": self.rate_limited,
                "cached_user_ids": len(self._user_ids),
            }
        out["log_sampling"] = self._sampled.snapshot()
        return out
