"""
Sync engine: wires game events and timers to the sync components.

Event handlers are called inline from whatever thread observed the event
(typically the simulation tick). They only do cooldown checks and hand
network work to the executor; nothing here blocks on the backend.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional

from linksync.config import SyncConfig
from linksync.errors import RemoteRejectedError, SyncError
from linksync.leaderboard.tracker import LeaderboardTracker
from linksync.monitor.resource import ResourceDeltaMonitor
from linksync.remote.client import RemoteSyncClient
from linksync.runtime.timers import ActorCursor, DailyResetTimer, PeriodicTask, TaskConfig
from linksync.sessions import SessionRegistry, moved_far_enough
from linksync.store.link_store import LinkStateStore
from linksync.sync.collector import SnapshotCollector
from linksync.sync.scheduler import SyncScheduler
from linksync.types import Cadence, LeaderboardEvent, StateSnapshot, now_ms

logger = logging.getLogger(__name__)


@dataclass
class LinkOutcome:
    actor_id: str
    linked: bool
    remote_confirmed: bool = False
    error: Optional[str] = None


class SyncEngine:
    def __init__(
        self,
        config: SyncConfig,
        link_store: LinkStateStore,
        scheduler: SyncScheduler,
        collector: SnapshotCollector,
        client: RemoteSyncClient,
        monitor: ResourceDeltaMonitor,
        leaderboard: LeaderboardTracker,
        sessions: SessionRegistry,
        executor: Optional[Executor] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.config = config
        self.link_store = link_store
        self.scheduler = scheduler
        self.collector = collector
        self.client = client
        self.monitor = monitor
        self.leaderboard = leaderboard
        self.sessions = sessions
        self._clock = clock

        self._owns_executor = executor is None
        self.executor: Executor = executor or ThreadPoolExecutor(
            max_workers=max(1, int(config.workers)),
            thread_name_prefix="linksync",
        )

        # periodic full-sync cycle
        self._cycle_lock = threading.Lock()
        self._cursor: Optional[ActorCursor] = None
        self._cycle_batch: List[StateSnapshot] = []
        self._cycle_started_ms: Optional[int] = None
        self.cycles_completed = 0

        self.full_syncs = 0
        self.full_sync_failures = 0
        self.notifications = 0

        self._tasks: List[PeriodicTask] = [
            PeriodicTask(
                "linksync-full-sync",
                TaskConfig(interval_sec=max(0.05, float(config.full_sync_stagger_s))),
                self.full_sync_step,
            ),
            PeriodicTask(
                "linksync-resource-poll",
                TaskConfig(enabled=config.track_economy, interval_sec=config.effective_poll_interval_s()),
                self.monitor.poll,
            ),
            PeriodicTask(
                "linksync-leaderboard",
                TaskConfig(
                    interval_sec=float(config.leaderboard_interval_s),
                    initial_delay_sec=float(config.leaderboard_interval_s),
                ),
                self.evaluate_leaderboard,
            ),
        ]
        self.daily_reset = DailyResetTimer(config.reset_timezone, self.monitor.reset_daily)

    # -----------------
    # Lifecycle
    # -----------------
    def start(self) -> None:
        today = datetime.now(self.daily_reset.tz).date()
        self.monitor.ledger.roll_over(today)
        for t in self._tasks:
            t.start()
        self.daily_reset.start()
        logger.info(
            "Sync engine started (full cooldown %dms, lightweight %dms, full interval %.0fs)",
            self.config.effective_full_cooldown_ms(),
            self.config.effective_lightweight_cooldown_ms(),
            self.config.effective_full_interval_s(),
        )

    def stop(self) -> None:
        for t in self._tasks:
            t.stop()
        self.daily_reset.stop()
        if self._owns_executor:
            self.executor.shutdown(wait=False)
        logger.info("Sync engine stopped")

    # -----------------
    # Background work
    # -----------------
    def _submit(self, actor_id: str, fn: Callable[..., Any], *args: Any) -> Future:
        future = self.executor.submit(fn, *args)
        self.sessions.track(actor_id, future)
        return future

    def _push(self, snapshot: StateSnapshot, reason: str, notify: bool = True) -> bool:
        try:
            self.client.push_snapshot(snapshot)
        except SyncError as e:
            self.full_sync_failures += 1
            # the client already logged this failure through its sampler
            logger.debug("Full sync for %s (%s) skipped: %s", snapshot.actor_id, reason, e)
            return False
        self.full_syncs += 1
        self.link_store.touch_sync_time(snapshot.actor_id)
        location = snapshot.attributes.get("location")
        if isinstance(location, Mapping) and location:
            self.sessions.set_last_sync_location(snapshot.actor_id, location)
        logger.debug("Full sync for %s (%s) sent", snapshot.actor_id, reason)

        if notify and self.config.realtime_updates:
            try:
                self.client.notify_update(snapshot.actor_id, username=snapshot.username)
            except SyncError as e:
                logger.debug("player_update for %s not delivered: %s", snapshot.actor_id, e)
        return True

    def _full_sync(self, actor_id: str, reason: str) -> bool:
        if not self.link_store.is_linked(actor_id):
            return False
        try:
            snapshot = self.collector.collect(actor_id)
            return self._push(snapshot, reason)
        except Exception:
            self.full_sync_failures += 1
            logger.exception("Full sync for %s (%s) failed", actor_id, reason)
            return False

    def _notify(self, actor_id: str, category: str, value: Any) -> bool:
        try:
            self.client.notify_change(actor_id, category, value, username=self.sessions.username_of(actor_id) or "")
        except SyncError as e:
            logger.debug("Stat notification %s for %s not delivered: %s", category, actor_id, e)
            return False
        self.notifications += 1
        return True

    def request_full_sync(self, actor_id: str, reason: str) -> bool:
        """Queue a full sync if the actor is linked and the full cooldown allows it."""
        if not self.link_store.is_linked(actor_id):
            return False
        if not self.scheduler.try_acquire(actor_id, Cadence.FULL):
            logger.debug("Full sync for %s (%s) inside cooldown, skipped", actor_id, reason)
            return False
        self._submit(actor_id, self._full_sync, actor_id, reason)
        return True

    # -----------------
    # Event triggers
    # -----------------
    def on_field_changed(self, actor_id: str, category: str, value: Any) -> bool:
        """Single-field change (level, experience, gamemode, deaths, kills, achievements)."""
        if not self.config.realtime_updates or not self.link_store.is_linked(actor_id):
            return False
        if not self.scheduler.try_acquire(actor_id, Cadence.LIGHTWEIGHT):
            return False
        self._submit(actor_id, self._notify, actor_id, category, value)
        return True

    def on_state_changed(self, actor_id: str, reason: str) -> bool:
        """World change, teleport, death, advancement."""
        return self.request_full_sync(actor_id, reason)

    def on_moved(self, actor_id: str, location: Mapping[str, Any]) -> bool:
        last = self.sessions.last_sync_location(actor_id)
        if not moved_far_enough(last, location, self.config.sync_distance):
            return False
        if not self.request_full_sync(actor_id, "moved"):
            return False
        self.sessions.set_last_sync_location(actor_id, location)
        return True

    def on_economy_event(self, actor_id: str) -> Optional[Future]:
        """Balance-affecting command observed; poll this actor now instead of waiting."""
        if not self.config.track_economy or not self.link_store.is_linked(actor_id):
            return None
        return self._submit(actor_id, self._poll_one, actor_id)

    def _poll_one(self, actor_id: str) -> bool:
        try:
            return self.monitor.poll_actor(actor_id)
        except SyncError as e:
            logger.debug("Balance sync for %s skipped: %s", actor_id, e)
        except Exception:
            logger.exception("Balance poll failed for %s", actor_id)
        return False

    # -----------------
    # Sessions
    # -----------------
    def start_session(self, actor_id: str, username: str) -> bool:
        self.sessions.start(actor_id, username)
        logger.debug("Session started for %s (%s)", username, actor_id)
        return self.request_full_sync(actor_id, "join")

    def end_session(self, actor_id: str) -> Optional[Future]:
        final: Optional[StateSnapshot] = None
        if self.sessions.is_active(actor_id) and self.link_store.is_linked(actor_id):
            try:
                final = self.collector.collect(actor_id)
            except Exception:
                logger.exception("Final snapshot for %s could not be collected", actor_id)

        session = self.sessions.end(actor_id)
        if session is not None:
            for f in list(session.pending):
                f.cancel()

        self._forget_actor(actor_id)

        if final is None:
            return None
        # no player_update: resolving the user id would re-cache it
        future = self.executor.submit(self._push, final, "quit", False)
        future.add_done_callback(lambda _f: self._forget_actor(actor_id))
        return future

    def _forget_actor(self, actor_id: str) -> None:
        if self.sessions.is_active(actor_id):
            return
        self.scheduler.forget(actor_id)
        self.monitor.forget(actor_id)
        self.client.forget(actor_id)

    # -----------------
    # Periodic full sync
    # -----------------
    def full_sync_step(self) -> Optional[str]:
        """
        Advance the periodic cycle by one actor. A new cycle starts once the
        full interval has passed since the previous one started; a finished
        cycle hands its snapshots to the leaderboard.
        """
        now = self._clock()
        with self._cycle_lock:
            if self._cursor is None:
                interval_ms = int(self.config.effective_full_interval_s() * 1000)
                if self._cycle_started_ms is not None and now - self._cycle_started_ms < interval_ms:
                    return None
                linked = [a for a in self.sessions.active_actors() if self.link_store.is_linked(a)]
                self._cursor = ActorCursor(linked, is_active=self.sessions.is_active)
                self._cycle_batch = []
                self._cycle_started_ms = now
                logger.debug("Full sync cycle started for %d actors", len(linked))

            actor_id, done = self._cursor.next()
            if done:
                batch, self._cycle_batch = self._cycle_batch, []
                self._cursor = None
                self.cycles_completed += 1
            else:
                batch = None

        if batch is not None:
            self.on_batch_complete(batch)
            return None

        try:
            snapshot = self.collector.collect(actor_id)
        except Exception:
            logger.exception("Periodic collect for %s failed", actor_id)
            return actor_id
        with self._cycle_lock:
            self._cycle_batch.append(snapshot)
        if self.scheduler.try_acquire(actor_id, Cadence.FULL):
            self._push(snapshot, "periodic")
        return actor_id

    def on_batch_complete(self, batch: List[StateSnapshot]) -> List[LeaderboardEvent]:
        if not batch:
            return []
        return self.leaderboard.evaluate(batch)

    def evaluate_leaderboard(self) -> List[LeaderboardEvent]:
        snapshots: List[StateSnapshot] = []
        for actor_id in self.sessions.active_actors():
            try:
                snapshots.append(self.collector.collect(actor_id))
            except Exception:
                logger.exception("Leaderboard collect for %s failed", actor_id)
        return self.leaderboard.evaluate(snapshots)

    # -----------------
    # Link lifecycle
    # -----------------
    def link(self, actor_id: str) -> bool:
        """Mark linked locally and push an initial snapshot."""
        self.link_store.set_linked(actor_id, True)
        self.scheduler.mark_synced(actor_id, Cadence.FULL)
        self._submit(actor_id, self._full_sync, actor_id, "linked")
        return True

    def unlink(self, actor_id: str, username: Optional[str] = None) -> LinkOutcome:
        """
        Remote unlink, then local unlink whatever the remote said.
        Safe to call repeatedly.
        """
        name = username or self.sessions.username_of(actor_id) or actor_id
        confirmed = False
        error: Optional[str] = None
        try:
            confirmed = self.client.unlink(actor_id, name)
        except SyncError as e:
            error = e.message
            logger.warning("Remote unlink for %s failed, unlinking locally: %s", actor_id, e)
        finally:
            self.link_store.clear_link(actor_id)
        return LinkOutcome(actor_id=actor_id, linked=False, remote_confirmed=confirmed, error=error)

    def reconcile_link(self, actor_id: str, username: str) -> LinkOutcome:
        """
        Ask the backend whether the actor is linked and adopt its answer.
        Transport trouble keeps the local value; a 4xx rolls back to unlinked.
        """
        was_linked = self.link_store.is_linked(actor_id)
        try:
            linked = self.client.check_link_status(actor_id, username)
        except RemoteRejectedError as e:
            if e.is_client_error and not e.transient:
                self.link_store.set_linked(actor_id, False)
                return LinkOutcome(actor_id=actor_id, linked=False, error=e.message)
            return LinkOutcome(actor_id=actor_id, linked=was_linked, error=e.message)
        except SyncError as e:
            logger.warning("Link status for %s unavailable, keeping local value: %s", actor_id, e)
            return LinkOutcome(actor_id=actor_id, linked=was_linked, error=e.message)

        if linked and not was_linked:
            self.link(actor_id)
        elif linked != was_linked:
            self.link_store.set_linked(actor_id, linked)
        return LinkOutcome(actor_id=actor_id, linked=linked, remote_confirmed=True)

    # -----------------
    # Introspection
    # -----------------
    def status(self) -> Dict[str, Any]:
        with self._cycle_lock:
            cycle = {
                "in_progress": self._cursor is not None,
                "remaining": self._cursor.remaining if self._cursor else 0,
                "completed": self.cycles_completed,
            }
        return {
            "active_actors": len(self.sessions),
            "full_syncs": self.full_syncs,
            "full_sync_failures": self.full_sync_failures,
            "notifications": self.notifications,
            "cycle": cycle,
            "scheduler": self.scheduler.status(),
            "monitor": self.monitor.status(),
            "leaderboard": self.leaderboard.status(),
            "link_store": self.link_store.snapshot(),
            "client": self.client.status(),
            "tasks": [t.status() for t in self._tasks],
            "daily_reset": self.daily_reset.status(),
        }
