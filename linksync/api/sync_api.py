from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from linksync.types import (
    LeaderboardRow,
    LeaderboardsResponse,
    LinkStateResponse,
    ObservationState,
    ReconcileRequest,
    ReconcileResponse,
    ResourceResponse,
)

router = APIRouter(prefix="/v1", tags=["sync"])


def _container(request: Request):
    return request.app.state.container


@router.get("/sync/status")
def sync_status(request: Request) -> Dict[str, Any]:
    return {"ok": True, "status": _container(request).engine.status()}


@router.get("/links/{actor_id}", response_model=LinkStateResponse)
def get_link(actor_id: str, request: Request) -> LinkStateResponse:
    st = _container(request).link_store.state_of(actor_id)
    return LinkStateResponse(
        actor_id=actor_id,
        linked=st.linked,
        linked_at_ms=st.linked_at_ms,
        last_sync_at_ms=st.last_sync_at_ms,
    )


@router.post("/links/{actor_id}/reconcile", response_model=ReconcileResponse)
def reconcile_link(actor_id: str, req: ReconcileRequest, request: Request) -> ReconcileResponse:
    outcome = _container(request).engine.reconcile_link(actor_id, req.username)
    return ReconcileResponse(
        ok=outcome.error is None,
        actor_id=actor_id,
        linked=outcome.linked,
        remote_confirmed=outcome.remote_confirmed,
        error=outcome.error,
    )


@router.post("/links/{actor_id}/unlink", response_model=ReconcileResponse)
def unlink(actor_id: str, req: ReconcileRequest, request: Request) -> ReconcileResponse:
    outcome = _container(request).engine.unlink(actor_id, req.username)
    return ReconcileResponse(
        ok=True,
        actor_id=actor_id,
        linked=outcome.linked,
        remote_confirmed=outcome.remote_confirmed,
        error=outcome.error,
    )


@router.get("/resources/{actor_id}", response_model=ResourceResponse)
def get_resource(actor_id: str, request: Request) -> ResourceResponse:
    obs = _container(request).ledger.get(actor_id)
    if obs is None:
        return ResourceResponse(actor_id=actor_id, state=ObservationState.UNOBSERVED)
    return ResourceResponse(
        actor_id=actor_id,
        state=obs.state,
        last_known_value=obs.last_known_value,
        earned_today=obs.earned_today,
        spent_today=obs.spent_today,
        last_notified_at_ms=obs.last_notified_at_ms,
    )


@router.get("/leaderboards", response_model=LeaderboardsResponse)
def leaderboards(request: Request) -> LeaderboardsResponse:
    boards = _container(request).leaderboard.boards()
    return LeaderboardsResponse(
        categories={
            category: [
                LeaderboardRow(rank=i + 1, actor_id=e.actor_id, value=e.value)
                for i, e in enumerate(entries)
            ]
            for category, entries in boards.items()
        }
    )
