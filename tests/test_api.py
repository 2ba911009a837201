import pytest
from fastapi.testclient import TestClient

from linksync.api import health_api
from linksync.main import create_app
from linksync.services.container import ServiceContainer

from conftest import ImmediateExecutor, make_response


@pytest.fixture
def container(config, game, capabilities, session, clock):
    return ServiceContainer(
        config=config,
        accessor=game,
        capabilities=capabilities,
        session=session,
        executor=ImmediateExecutor(),
        clock=clock,
    )


@pytest.fixture
def api(container):
    return TestClient(create_app(container, start_engine=False))


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


def test_health_details_never_raises(api, monkeypatch):
    monkeypatch.setattr(health_api, "probe_backend", lambda url, timeout_sec=1.5: (False, f"unreachable: {url}"))
    r = api.get("/health/details")
    assert r.status_code == 200
    j = r.json()
    assert j["backend"]["ok"] is False
    assert "scheduler" in j["engine"]
    assert j["capabilities"]["economy"] is True


def test_link_state_roundtrip(api, container):
    assert api.get("/v1/links/actor-a").json()["linked"] is False
    container.link_store.set_linked("actor-a", True)
    j = api.get("/v1/links/actor-a").json()
    assert j["linked"] is True
    assert j["linked_at_ms"] > 0


def test_reconcile_reports_failure_without_500(api, backend):
    backend.on("POST", "/player/status", make_response(503, text="maintenance"))
    r = api.post("/v1/links/actor-a/reconcile", json={"username": "Alice"})
    assert r.status_code == 200
    j = r.json()
    assert j["ok"] is False
    assert j["linked"] is False
    assert "503" in j["error"]


def test_unlink_route(api, container, backend):
    container.link_store.set_linked("actor-a", True)
    backend.on("POST", "/minecraft/unlink", make_response(200, {"success": True}))
    j = api.post("/v1/links/actor-a/unlink", json={"username": "Alice"}).json()
    assert j["linked"] is False
    assert j["remote_confirmed"] is True
    assert container.link_store.is_linked("actor-a") is False


def test_resource_view(api, container, economy):
    assert api.get("/v1/resources/actor-a").json()["state"] == "unobserved"

    container.link_store.set_linked("actor-a", True)
    container.sessions.start("actor-a", "Alice")
    economy.balances["actor-a"] = 12.0
    container.monitor.poll()

    j = api.get("/v1/resources/actor-a").json()
    assert j["state"] == "tracking"
    assert j["last_known_value"] == 12.0


def test_leaderboards_view(api, container):
    container.sessions.start("actor-a", "Alice")
    container.sessions.start("actor-b", "Bob")
    container.engine.evaluate_leaderboard()

    j = api.get("/v1/leaderboards").json()
    mining = j["categories"]["mining"]
    assert [row["actor_id"] for row in mining] == ["actor-a", "actor-b"]
    assert mining[0]["rank"] == 1
