import json
from concurrent.futures import Future
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
import requests

from linksync.config import SyncConfig
from linksync.integrations import Capabilities, NoPermissions, NoSkills


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start_ms: int = 1_700_000_000_000) -> None:
        self.t = start_ms

    def __call__(self) -> int:
        return self.t

    def advance(self, ms: int) -> None:
        self.t += int(ms)


class FakeGame:
    def __init__(self) -> None:
        self.names: Dict[str, str] = {}
        self.locations: Dict[str, Dict[str, Any]] = {}
        self.stats: Dict[str, Dict[str, Any]] = {}
        self.items: Dict[str, List[Dict[str, Any]]] = {}
        self.broken: set = set()

    def add(self, actor_id: str, name: str, **stats: Any) -> None:
        self.names[actor_id] = name
        self.locations[actor_id] = {"world": "world", "x": 10.2, "y": 64.0, "z": -3.7}
        self.stats[actor_id] = dict(stats)
        self.items[actor_id] = [{"type": "DIRT", "amount": 3}]

    def _check(self, what: str) -> None:
        if what in self.broken:
            raise RuntimeError(f"{what} unavailable")

    def username(self, actor_id: str) -> str:
        return self.names.get(actor_id, actor_id)

    def location(self, actor_id: str):
        self._check("location")
        return self.locations.get(actor_id, {})

    def vitals(self, actor_id: str):
        self._check("vitals")
        return {"health": 20.0, "food": 18}

    def experience(self, actor_id: str):
        self._check("experience")
        return {"level": 5, "exp": 0.25, "total": 120}

    def inventory(self, actor_id: str):
        self._check("inventory")
        return self.items.get(actor_id, [])

    def statistics(self, actor_id: str):
        self._check("statistics")
        return self.stats.get(actor_id, {})

    def advancements(self, actor_id: str):
        self._check("advancements")
        return ["story/root"]

    def gamemode(self, actor_id: str) -> str:
        return "SURVIVAL"


class FakeEconomy:
    available = True

    def __init__(self) -> None:
        self.balances: Dict[str, float] = {}

    def balance(self, actor_id: str) -> float:
        return self.balances.get(actor_id, 0.0)


class ImmediateExecutor:
    """Runs submitted work inline and hands back a finished Future."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, *args, **kwargs) -> Future:
        self.submitted += 1
        f: Future = Future()
        try:
            f.set_result(fn(*args, **kwargs))
        except Exception as e:
            f.set_exception(e)
        return f

    def shutdown(self, wait: bool = True) -> None:
        pass


def make_response(status: int, body: Optional[Any] = None, text: Optional[str] = None) -> requests.Response:
    r = requests.Response()
    r.status_code = status
    if text is not None:
        r._content = text.encode("utf-8")
    else:
        r._content = json.dumps(body if body is not None else {}).encode("utf-8")
    r.encoding = "utf-8"
    return r


class FakeBackend:
    """
    Stand-in for requests.Session.request. Routes by (METHOD, path suffix);
    unrouted requests answer 200 {}.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.calls: List[Dict[str, Any]] = []

    def on(self, method: str, suffix: str, response: Any) -> None:
        self.routes[(method.upper(), suffix)] = response

    def __call__(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout})
        for (m, suffix), resp in self.routes.items():
            if m == method.upper() and url.endswith(suffix):
                if isinstance(resp, Exception):
                    raise resp
                return resp() if callable(resp) else resp
        return make_response(200, {})

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [c["url"] for c in self.calls if method is None or c["method"] == method]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return SyncConfig(
        api_url="http://backend.test/api",
        server_key="srv-key",
        api_token="tok",
        data_dir=str(tmp_path / "data"),
    )


@pytest.fixture
def game():
    g = FakeGame()
    g.add("actor-a", "Alice", blocks_mined=10, mobs_killed=2, play_time_ticks=72000 * 3 + 1200 * 5)
    g.add("actor-b", "Bob", blocks_mined=4)
    return g


@pytest.fixture
def economy():
    return FakeEconomy()


@pytest.fixture
def capabilities(economy):
    return Capabilities(economy=economy, permissions=NoPermissions(), skills=NoSkills())


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def session(backend):
    s = MagicMock(spec=requests.Session)
    s.request.side_effect = backend
    return s
