import pytest

from linksync.monitor.ledger import ResourceLedger
from linksync.sync.collector import SnapshotCollector, format_playtime


@pytest.fixture
def collector(game, capabilities, config, clock):
    return SnapshotCollector(
        game,
        capabilities=capabilities,
        ledger=ResourceLedger(),
        config=config,
        session_start_of=lambda _a: clock() - 90_000,
        clock=clock,
    )


def test_every_fingerprinted_category_is_stamped(collector, clock):
    snap = collector.collect("actor-a")
    assert set(snap.change_fingerprint) == set(snap.last_updated)
    assert all(ts == clock() for ts in snap.last_updated.values())
    for category in ("location", "health", "experience", "inventory", "statistics", "economy", "advancements"):
        assert category in snap.change_fingerprint
    assert "blocks_mined" in snap.change_fingerprint


def test_snapshot_attributes(collector, economy):
    economy.balances["actor-a"] = 250.0
    snap = collector.collect("actor-a")
    attrs = snap.attributes

    assert snap.username == "Alice"
    assert attrs["uuid"] == "actor-a"
    assert attrs["balance"] == 250.0
    assert attrs["blocks_mined"] == 10
    assert attrs["playtime_minutes"] == 185
    assert attrs["playtime"] == "3h 5m"
    assert attrs["achievements"] == 1
    assert attrs["currentSession"] == 90
    assert attrs["group"] == "default"
    assert attrs["mcmmo_power_level"] == 0


def test_accessor_failure_uses_defaults(collector, game, caplog):
    game.broken.update({"inventory", "statistics"})
    with caplog.at_level("WARNING"):
        snap = collector.collect("actor-a")

    assert snap.attributes["inventory"] == []
    assert snap.attributes["blocks_mined"] == 0
    assert collector.accessor_failures == 2
    assert "inventory" in caplog.text


def test_snapshot_is_read_only(collector):
    snap = collector.collect("actor-a")
    with pytest.raises(TypeError):
        snap.attributes["balance"] = 1  # type: ignore[index]


def test_economy_fingerprint_follows_balance(collector, economy):
    economy.balances["actor-a"] = 100.0
    before = collector.collect("actor-a")
    economy.balances["actor-a"] = 105.0
    after = collector.collect("actor-a")

    assert before.change_fingerprint["economy"] != after.change_fingerprint["economy"]
    assert before.change_fingerprint["location"] == after.change_fingerprint["location"]


def test_daily_totals_come_from_ledger(game, capabilities, config):
    ledger = ResourceLedger()
    ledger.observe("actor-a", 10.0)
    ledger.observe("actor-a", 25.0)
    ledger.observe("actor-a", 20.0)
    c = SnapshotCollector(game, capabilities=capabilities, ledger=ledger, config=config)

    attrs = c.collect("actor-a").attributes
    assert attrs["money_earned_today"] == 15.0
    assert attrs["money_spent_today"] == 5.0


def test_format_playtime():
    assert format_playtime(0) == "0h 0m"
    assert format_playtime(61) == "1h 1m"


def test_malformed_provider_values_fall_back_to_defaults(collector, game, economy, caplog):
    economy.balances["actor-a"] = "n/a"
    game.vitals = lambda _a: "dead"
    game.experience = lambda _a: {"level": "n/a", "exp": None, "total": 7}
    game.stats["actor-a"]["jumps"] = "n/a"

    with caplog.at_level("WARNING"):
        snap = collector.collect("actor-a")

    attrs = snap.attributes
    assert attrs["balance"] == 0.0
    assert attrs["health"] == 0.0 and attrs["food"] == 0
    assert attrs["level"] == 0
    assert attrs["exp"] == 0.0
    assert attrs["total_experience"] == 7
    assert attrs["jumps"] == 0
    assert collector.accessor_failures == 3
    assert "level" in caplog.text
