import logging

import pytest
import requests

from linksync.config import SyncConfig
from linksync.services.container import ServiceContainer
from linksync.types import Cadence

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


def updates(backend):
    return [c for c in backend.calls if c["url"].endswith("/player/update")]


def notifies(backend):
    return [c for c in backend.calls if c["url"].endswith("/minecraft/notify")]


def test_link_then_snapshot_tracks_economy_change(container, economy, backend):
    store = container.link_store
    assert store.is_linked("actor-x") is False

    container.engine.link("actor-x")
    assert store.is_linked("actor-x") is True
    assert len(updates(backend)) == 1

    economy.balances["actor-x"] = 100.0
    before = container.collector.collect("actor-x")
    economy.balances["actor-x"] = 100.0 + container.config.resource_min_change + 5
    after = container.collector.collect("actor-x")
    assert before.change_fingerprint["economy"] != after.change_fingerprint["economy"]


def test_unlink_twice_is_idempotent(container, backend):
    engine = container.engine
    engine.link("actor-a")

    backend.on("POST", "/minecraft/unlink", make_response(200, {"success": True}))
    first = engine.unlink("actor-a", "Alice")
    backend.on("POST", "/minecraft/unlink", make_response(200, {"alreadyUnlinked": True}))
    second = engine.unlink("actor-a", "Alice")

    assert first.linked is False and second.linked is False
    assert first.remote_confirmed and second.remote_confirmed
    assert container.link_store.is_linked("actor-a") is False


def test_unlink_falls_back_to_local_when_backend_is_down(container, backend):
    container.engine.link("actor-a")
    backend.on("POST", "/minecraft/unlink", requests.ConnectionError("refused"))

    outcome = container.engine.unlink("actor-a", "Alice")
    assert outcome.linked is False
    assert outcome.remote_confirmed is False
    assert outcome.error
    assert container.link_store.is_linked("actor-a") is False


def test_reconcile_adopts_backend_answer(container, backend):
    backend.on("POST", "/player/status", make_response(200, {"isLinked": True}))
    outcome = container.engine.reconcile_link("actor-a", "Alice")
    assert outcome.linked is True and outcome.remote_confirmed
    assert container.link_store.is_linked("actor-a") is True


def test_reconcile_rejection_rolls_back_to_unlinked(container, backend):
    container.link_store.set_linked("actor-a", True)
    backend.on("POST", "/player/status", make_response(404, text="unknown player"))
    outcome = container.engine.reconcile_link("actor-a", "Alice")
    assert outcome.linked is False
    assert "404" in outcome.error
    assert container.link_store.is_linked("actor-a") is False


def test_reconcile_transport_failure_keeps_local_value(container, backend):
    container.link_store.set_linked("actor-a", True)
    backend.on("POST", "/player/status", requests.Timeout("slow"))
    outcome = container.engine.reconcile_link("actor-a", "Alice")
    assert outcome.linked is True
    assert outcome.remote_confirmed is False
    assert container.link_store.is_linked("actor-a") is True


def test_full_sync_triggers_respect_cooldown(container, backend, clock):
    engine = container.engine
    container.link_store.set_linked("actor-a", True)

    assert engine.start_session("actor-a", "Alice") is True
    assert engine.on_state_changed("actor-a", "teleport") is False
    clock.advance(60_001)
    assert engine.on_state_changed("actor-a", "teleport") is True
    assert len(updates(backend)) == 2


def test_unlinked_actor_sends_nothing(container, backend):
    engine = container.engine
    engine.start_session("actor-b", "Bob")
    assert engine.on_state_changed("actor-b", "death") is False
    assert engine.on_field_changed("actor-b", "level", 3) is False
    assert backend.calls == []


def test_field_change_uses_lightweight_cooldown(container, backend, clock):
    backend.on("GET", "/player/actor-a", make_response(200, {"data": {"id": "u-1"}}))
    engine = container.engine
    container.link_store.set_linked("actor-a", True)
    engine.start_session("actor-a", "Alice")

    assert engine.on_field_changed("actor-a", "level", 6) is True
    assert engine.on_field_changed("actor-a", "level", 7) is False
    clock.advance(501)
    assert engine.on_field_changed("actor-a", "level", 7) is True

    notifies = [c for c in backend.calls if c["url"].endswith("/minecraft/notify")]
    stat_updates = [c for c in notifies if c["json"]["event"] == "player_stat_update"]
    assert len(stat_updates) == 2
    assert stat_updates[0]["json"]["data"]["mcUsername"] == "Alice"


def test_movement_trigger_needs_distance_or_world_change(container, clock):
    engine = container.engine
    container.link_store.set_linked("actor-a", True)
    engine.start_session("actor-a", "Alice")
    origin = container.sessions.last_sync_location("actor-a")
    assert origin is not None

    clock.advance(61_000)
    near = dict(origin, x=origin["x"] + 5)
    assert engine.on_moved("actor-a", near) is False

    far = dict(origin, x=origin["x"] + 150)
    assert engine.on_moved("actor-a", far) is True

    clock.advance(61_000)
    assert engine.on_moved("actor-a", dict(far, world="nether")) is True


def test_end_session_clears_ephemeral_state_and_sends_final(container, backend, economy, clock):
    engine = container.engine
    backend.on("GET", "/player/actor-a", make_response(200, {"data": {"id": "u-1"}}))
    container.link_store.set_linked("actor-a", True)
    engine.start_session("actor-a", "Alice")
    economy.balances["actor-a"] = 10.0
    container.monitor.poll()
    sent_before = len(updates(backend))
    notifies_before = len(notifies(backend))
    assert container.client.status()["cached_user_ids"] == 1

    future = engine.end_session("actor-a")
    assert future is not None and future.result() is True
    assert len(updates(backend)) == sent_before + 1
    # the quit push sends no player_update, so no user id is looked up again
    assert len(notifies(backend)) == notifies_before
    assert container.client.status()["cached_user_ids"] == 0

    assert container.sessions.is_active("actor-a") is False
    assert container.scheduler.last_fired("actor-a", Cadence.FULL) is None
    assert container.ledger.get("actor-a") is None
    # durable link state survives the session
    assert container.link_store.is_linked("actor-a") is True


def test_periodic_cycle_walks_actors_then_evaluates_leaderboard(container, backend, game, clock):
    heard = []
    container.leaderboard._announce = heard.append
    engine = container.engine
    for actor_id, name in (("actor-a", "Alice"), ("actor-b", "Bob")):
        container.link_store.set_linked(actor_id, True)
        engine.sessions.start(actor_id, name)

    assert engine.full_sync_step() == "actor-a"
    assert engine.full_sync_step() == "actor-b"
    assert engine.full_sync_step() is None
    assert engine.cycles_completed == 1
    assert len(updates(backend)) == 2
    assert container.leaderboard.top("mining")[0].actor_id == "actor-a"
    assert heard

    # next cycle waits for the full interval
    assert engine.full_sync_step() is None
    assert engine.cycles_completed == 1
    clock.advance(int(container.config.effective_full_interval_s() * 1000))
    assert engine.full_sync_step() == "actor-a"


def test_economy_event_polls_immediately(container, economy, backend, clock):
    engine = container.engine
    container.link_store.set_linked("actor-a", True)
    engine.sessions.start("actor-a", "Alice")
    economy.balances["actor-a"] = 10.0
    container.monitor.poll()

    economy.balances["actor-a"] = 40.0
    future = engine.on_economy_event("actor-a")
    assert future.result() is True
    assert container.ledger.daily_totals("actor-a") == (30.0, 0.0)


def test_rejoin_after_quit_resolves_user_id_again(container, backend):
    backend.on("GET", "/player/actor-a", make_response(200, {"data": {"id": "u-1"}}))
    container.link_store.set_linked("actor-a", True)
    container.engine.start_session("actor-a", "Alice")

    container.engine.end_session("actor-a").result()
    assert container.client.status()["cached_user_ids"] == 0

    container.engine.start_session("actor-a", "Alice")
    assert container.client.status()["cached_user_ids"] == 1


def test_rate_limited_backend_warns_once_per_window(container, backend, clock, caplog):
    backend.on("POST", "/player/update", make_response(429, text="slow down"))
    container.link_store.set_linked("actor-a", True)
    engine = container.engine

    with caplog.at_level(logging.WARNING):
        engine.start_session("actor-a", "Alice")
        for _ in range(10):
            clock.advance(61_000)
            assert engine.on_state_changed("actor-a", "teleport") is True

    assert container.client.rate_limited == 11
    assert engine.full_sync_failures == 11
    warnings = [r for r in caplog.records if r.name.startswith("linksync") and r.levelno >= logging.WARNING]
    assert len(warnings) == 1


def test_balance_polls_against_rate_limited_backend_warn_once(container, backend, economy, clock, caplog):
    backend.on("POST", "/player/update", make_response(429, text="slow down"))
    backend.on("GET", "/player/actor-a", make_response(429, text="slow down"))
    container.link_store.set_linked("actor-a", True)
    container.sessions.start("actor-a", "Alice")
    economy.balances["actor-a"] = 0.0
    container.monitor.poll()

    with caplog.at_level(logging.WARNING):
        for i in range(1, 11):
            clock.advance(61_000)
            economy.balances["actor-a"] = 100.0 * i
            container.monitor.poll()

    assert container.monitor.poll_failures == 10
    by_logger = {}
    for r in caplog.records:
        if r.levelno >= logging.WARNING:
            by_logger[r.name] = by_logger.get(r.name, 0) + 1
    # one sampled line per failing operation, nothing from the monitor itself
    assert by_logger == {"linksync.remote.client": 2}


def test_low_configured_intervals_are_reported_at_startup(tmp_path, game, capabilities, session, clock, caplog):
    config = SyncConfig(
        api_url="http://backend.test/api",
        data_dir=str(tmp_path / "data"),
        full_sync_cooldown_s=1,
        resource_min_interval_s=0,
    )
    with caplog.at_level(logging.WARNING, logger="linksync.config"):
        ServiceContainer(
            config=config,
            accessor=game,
            capabilities=capabilities,
            session=session,
            executor=ImmediateExecutor(),
            clock=clock,
        )
    assert "full_sync_cooldown_s=1" in caplog.text
    assert "resource_min_interval_s=0" in caplog.text
