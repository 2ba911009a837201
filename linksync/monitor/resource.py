from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Dict, Iterable, Optional

from linksync.config import SyncConfig
from linksync.errors import SyncError
from linksync.integrations import EconomyProvider, NoEconomy
from linksync.monitor.ledger import ResourceLedger
from linksync.remote.client import RemoteSyncClient
from linksync.store.link_store import LinkStateStore
from linksync.sync.collector import SnapshotCollector
from linksync.types import ObservationState, now_ms

logger = logging.getLogger(__name__)


class ResourceDeltaMonitor:
    """
    Balance poller.

    Per actor: Unobserved -> Tracking on the first poll, then for every poll
    the daily earned/spent totals follow the sign of the move. A remote
    notification plus a full snapshot is sent only when the move is at least
    `resource_min_change` and the last notification is at least the minimum
    interval old. Bookkeeping is never gated by that threshold.
    """

    def __init__(
        self,
        config: SyncConfig,
        ledger: ResourceLedger,
        link_store: LinkStateStore,
        client: RemoteSyncClient,
        collector: SnapshotCollector,
        economy: Optional[EconomyProvider] = None,
        active_actors: Callable[[], Iterable[str]] = lambda: (),
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.link_store = link_store
        self.client = client
        self.collector = collector
        self.economy = economy or NoEconomy()
        self._active_actors = active_actors
        self._clock = clock

        self.polls = 0
        self.notifications = 0
        self.poll_failures = 0
        self.resets = 0

    def poll(self) -> int:
        """One pass over every active actor. Returns how many notified."""
        if not self.config.track_economy:
            return 0
        fired = 0
        for actor_id in list(self._active_actors()):
            try:
                if self.poll_actor(actor_id):
                    fired += 1
            except SyncError as e:
                self.poll_failures += 1
                logger.debug("Balance sync for %s skipped: %s", actor_id, e)
            except Exception:
                self.poll_failures += 1
                logger.exception("Balance poll failed for %s", actor_id)
        self.polls += 1
        return fired

    def poll_actor(self, actor_id: str) -> bool:
        if not self.link_store.is_linked(actor_id):
            return False

        current = float(self.economy.balance(actor_id))
        previous = self.ledger.observe(actor_id, current)
        if previous is None:
            logger.debug("Tracking balance for %s from %.2f", actor_id, current)
            return False

        diff = abs(current - previous)
        if diff < self.config.resource_min_change:
            return False

        now = self._clock()
        if now - self.ledger.last_notified_at(actor_id) < self.config.effective_notify_interval_ms():
            return False

        try:
            snapshot = self.collector.collect(actor_id)
            if self.config.realtime_updates:
                try:
                    self.client.notify_change(actor_id, "balance", current, username=snapshot.username)
                except SyncError as e:
                    logger.debug("Balance notification for %s not delivered: %s", actor_id, e)
            self.client.push_snapshot(snapshot)
            self.link_store.touch_sync_time(actor_id)
        finally:
            # counts as attempted even when the push fails
            self.ledger.mark_notified(actor_id, now)

        self.notifications += 1
        logger.info("Balance change for %s: %.2f -> %.2f synced", actor_id, previous, current)
        return True

    def reset_daily(self, day: date) -> bool:
        if not self.ledger.roll_over(day):
            return False
        self.resets += 1
        logger.info("Daily earned/spent totals reset for %s", day.isoformat())
        return True

    def state_of(self, actor_id: str) -> ObservationState:
        obs = self.ledger.get(actor_id)
        return obs.state if obs else ObservationState.UNOBSERVED

    def forget(self, actor_id: str) -> None:
        self.ledger.forget(actor_id)

    def status(self) -> Dict[str, int]:
        return {
            "tracked_actors": len(self.ledger),
            "polls": self.polls,
            "notifications": self.notifications,
            "poll_failures": self.poll_failures,
            "resets": self.resets,
        }
