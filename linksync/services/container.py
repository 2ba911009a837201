from __future__ import annotations

import logging
from concurrent.futures import Executor
from typing import Any, Callable, Optional

import requests

from linksync.config import SyncConfig
from linksync.engine import SyncEngine
from linksync.integrations import Capabilities, GameStateAccessor, NullGameState
from linksync.leaderboard.tracker import LeaderboardFileStore, LeaderboardTracker
from linksync.monitor.ledger import ResourceLedger
from linksync.monitor.resource import ResourceDeltaMonitor
from linksync.remote.client import RemoteSyncClient
from linksync.sessions import SessionRegistry
from linksync.store.link_store import LinkStateStore
from linksync.sync.collector import SnapshotCollector
from linksync.sync.fingerprint import ChangeFingerprinter
from linksync.sync.scheduler import SyncScheduler
from linksync.types import LeaderboardEvent, now_ms

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Explicit wiring of the sync core. Every component gets its
    collaborators through the constructor; nothing is global.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        accessor: Optional[GameStateAccessor] = None,
        capabilities: Optional[Capabilities] = None,
        session: Optional[requests.Session] = None,
        executor: Optional[Executor] = None,
        announce: Optional[Callable[[LeaderboardEvent], Any]] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config or SyncConfig.from_env()
        self.config.warn_on_clamped()
        self.capabilities = capabilities or Capabilities()
        self.accessor = accessor or NullGameState()

        self.sessions = SessionRegistry(clock=clock)
        self.link_store = LinkStateStore(self.config.links_path(), clock=clock)
        self.fingerprinter = ChangeFingerprinter()
        self.ledger = ResourceLedger(is_active=self.sessions.is_active)
        self.scheduler = SyncScheduler(self.config, clock=clock)
        self.collector = SnapshotCollector(
            self.accessor,
            capabilities=self.capabilities,
            fingerprinter=self.fingerprinter,
            ledger=self.ledger,
            config=self.config,
            session_start_of=self.sessions.started_at,
            clock=clock,
        )
        self.client = RemoteSyncClient(self.config, session=session, clock=clock)
        self.monitor = ResourceDeltaMonitor(
            self.config,
            self.ledger,
            self.link_store,
            self.client,
            self.collector,
            economy=self.capabilities.economy,
            active_actors=self.sessions.active_actors,
            clock=clock,
        )
        self.leaderboard = LeaderboardTracker(
            LeaderboardFileStore(self.config.leaderboard_path()),
            announce=announce,
            name_of=self.sessions.username_of,
        )
        self.engine = SyncEngine(
            self.config,
            self.link_store,
            self.scheduler,
            self.collector,
            self.client,
            self.monitor,
            self.leaderboard,
            self.sessions,
            executor=executor,
            clock=clock,
        )
        logger.info("Sync core wired (capabilities: %s)", self.capabilities.describe())
