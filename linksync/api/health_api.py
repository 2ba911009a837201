from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from linksync.remote.probe import probe_backend

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
def health() -> Dict[str, Any]:
    return {"ok": True, "service": "linksync"}


@router.get("/details")
def health_details(request: Request) -> Dict[str, Any]:
    """
    Never raises. Backend reachability plus scheduler/task state.
    """
    container = request.app.state.container
    out: Dict[str, Any] = {"ok": True, "backend": {}, "engine": {}, "error": None}

    ok, detail = probe_backend(container.config.base_url(), timeout_sec=container.config.connect_timeout_s)
    out["backend"] = {"ok": ok, "detail": detail}

    try:
        out["engine"] = container.engine.status()
    except Exception as e:
        out["ok"] = False
        out["error"] = str(e)[:300]
    out["capabilities"] = container.capabilities.describe()
    return out
