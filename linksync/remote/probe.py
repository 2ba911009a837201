from __future__ import annotations

from typing import Tuple

import httpx


def probe_backend(base_url: str, timeout_sec: float = 1.5, path: str = "/health") -> Tuple[bool, str]:
    """
    Read-only probe. Never raises. Never POSTs.
    Returns (ok, detail).
    """
    base_url = (base_url or "").rstrip("/")
    if not base_url:
        return False, "backend URL not set"

    url = f"{base_url}{path}"
    try:
        with httpx.Client(timeout=timeout_sec) as client:
            r = client.get(url, headers={"Accept": "application/json"})
        if 200 <= r.status_code < 300:
            return True, f"reachable: {url} ({r.status_code})"
        return False, f"unhealthy: {url} ({r.status_code})"
    except httpx.HTTPError as e:
        return False, f"unreachable: {url} ({e})"
