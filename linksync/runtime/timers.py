from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


@dataclass
class TaskConfig:
    enabled: bool = True
    interval_sec: float = 60.0
    initial_delay_sec: float = 0.0
    max_ticks: int = 0                  # 0 = unlimited (still bounded by stop)
    daemon: bool = True


class PeriodicTask:
    """
    Fixed-period background loop.
    - Runs only if enabled
    - Can be stopped cleanly
    - A failing tick is logged; the loop keeps going
    """

    def __init__(self, name: str, config: TaskConfig, tick_fn: Callable[[], Any]) -> None:
        self.name = name
        self.config = config
        self._tick_fn = tick_fn
        self._stop_evt = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.ticks = 0
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if not self.config.enabled:
            return
        if self.running:
            return
        self._stop_evt.clear()
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=self.config.daemon)
        self._thread.start()

    def stop(self) -> None:
        self._stop_evt.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)

    def status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.config.enabled,
            "interval_sec": self.config.interval_sec,
            "running": self.running,
            "ticks": self.ticks,
            "last_error": self.last_error,
        }

    def _run(self) -> None:
        if self._stop_evt.wait(self.config.initial_delay_sec):
            return
        while not self._stop_evt.is_set():
            try:
                self._tick_fn()
            except Exception as e:
                self.last_error = str(e)[:300]
                logger.exception("%s tick failed", self.name)

            self.ticks += 1
            if self.config.max_ticks and self.ticks >= self.config.max_ticks:
                break
            self._stop_evt.wait(self.config.interval_sec)


def seconds_until_next_midnight(now: datetime, tz: ZoneInfo) -> float:
    """
    Seconds from `now` to the next local midnight in `tz`.
    Computed on the calendar, so DST days are 23h or 25h long.
    """
    local = now.astimezone(tz)
    next_day = local.date() + timedelta(days=1)
    midnight = datetime(next_day.year, next_day.month, next_day.day, tzinfo=tz)
    # compare in UTC; same-tzinfo subtraction would ignore the DST shift
    delta = midnight.astimezone(timezone.utc) - local.astimezone(timezone.utc)
    return max(0.0, delta.total_seconds())


class DailyResetTimer:
    """
    Self-perpetuating one-shot timer that fires at local midnight.

    Each firing runs `reset_fn(day)` with the new local date and then arms
    the next one-shot, so it follows the calendar rather than a 24h period.
    """

    def __init__(
        self,
        tz_name: str,
        reset_fn: Callable[[date], Any],
        now_fn: Callable[[], datetime] = lambda: datetime.now().astimezone(),
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.tz = ZoneInfo(tz_name)
        self._reset_fn = reset_fn
        self._now_fn = now_fn
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Optional[Any] = None
        self._stopped = True
        self.fired = 0

    def start(self) -> None:
        with self._lock:
            self._stopped = False
        self._arm()

    def stop(self) -> None:
        with self._lock:
            self._stopped = True
            t, self._timer = self._timer, None
        if t is not None:
            t.cancel()

    def next_delay_sec(self) -> float:
        return seconds_until_next_midnight(self._now_fn(), self.tz)

    def _arm(self) -> None:
        # a small pad keeps the timer from landing a hair before midnight
        delay = self.next_delay_sec() + 0.5
        with self._lock:
            if self._stopped:
                return
            t = self._timer_factory(delay, self.fire)
            t.daemon = True
            self._timer = t
        t.start()
        logger.debug("daily reset armed in %.0fs (%s)", delay, self.tz.key)

    def fire(self) -> None:
        today = self._now_fn().astimezone(self.tz).date()
        try:
            self._reset_fn(today)
            self.fired += 1
        except Exception:
            logger.exception("daily reset failed")
        self._arm()

    def status(self) -> Dict[str, Any]:
        return {
            "timezone": self.tz.key,
            "armed": self._timer is not None and not self._stopped,
            "fired": self.fired,
        }


class ActorCursor:
    """
    Walks a fixed list of actors one step at a time.

    `next()` returns (actor_id, False) while work remains and (None, True)
    once exhausted. Actors that are no longer active are skipped.
    """

    def __init__(self, actor_ids: Iterable[str], is_active: Callable[[str], bool] = lambda _a: True) -> None:
        self._ids: Sequence[str] = tuple(actor_ids)
        self._is_active = is_active
        self._pos = 0
        self.started_at = time.monotonic()

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def remaining(self) -> int:
        return max(0, len(self._ids) - self._pos)

    def next(self) -> Tuple[Optional[str], bool]:
        while self._pos < len(self._ids):
            actor_id = self._ids[self._pos]
            self._pos += 1
            if self._is_active(actor_id):
                return actor_id, False
        return None, True
