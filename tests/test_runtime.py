import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from linksync.runtime.log_sampler import SampledLog
from linksync.runtime.timers import ActorCursor, DailyResetTimer, seconds_until_next_midnight

LONDON = ZoneInfo("Europe/London")


class FakeTimer:
    created = []

    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True


def test_midnight_follows_the_calendar_across_dst():
    # clocks go forward on 2024-03-31, so that day is 23h long
    before = datetime(2024, 3, 30, 23, 0, tzinfo=LONDON)
    assert seconds_until_next_midnight(before, LONDON) == 3600

    start_of_short_day = datetime(2024, 3, 31, 0, 0, tzinfo=LONDON)
    assert seconds_until_next_midnight(start_of_short_day, LONDON) == 23 * 3600


def test_daily_reset_fires_then_rearms():
    FakeTimer.created = []
    now = [datetime(2024, 6, 1, 23, 59, 0, tzinfo=LONDON)]
    days = []
    timer = DailyResetTimer("Europe/London", days.append, now_fn=lambda: now[0], timer_factory=FakeTimer)

    timer.start()
    first = FakeTimer.created[-1]
    assert first.started and first.daemon
    assert first.delay == 60.5

    now[0] = datetime(2024, 6, 2, 0, 0, 1, tzinfo=LONDON)
    first.fn()
    assert days == [date(2024, 6, 2)]
    assert len(FakeTimer.created) == 2

    timer.stop()
    assert FakeTimer.created[-1].cancelled
    assert timer.status()["fired"] == 1


def test_cursor_walks_once_and_skips_inactive():
    active = {"a", "c"}
    cursor = ActorCursor(["a", "b", "c"], is_active=lambda x: x in active)
    assert cursor.next() == ("a", False)
    assert cursor.next() == ("c", False)
    assert cursor.next() == (None, True)
    assert cursor.next() == (None, True)
    assert cursor.remaining == 0


def test_sampled_log_reports_suppressed(caplog):
    t = [0.0]
    log = SampledLog(logging.getLogger("sampler-test"), window_sec=60, clock=lambda: t[0])

    with caplog.at_level(logging.WARNING, logger="sampler-test"):
        assert log.warning("k", "boom %s", 1) is True
        for _ in range(5):
            assert log.warning("k", "boom %s", 2) is False
        t[0] = 61.0
        assert log.warning("k", "boom %s", 3) is True

    msgs = [r.getMessage() for r in caplog.records]
    assert msgs == ["boom 1", "boom 3 (5 similar suppressed)"]
    assert log.snapshot()["total_suppressed"] == 5
