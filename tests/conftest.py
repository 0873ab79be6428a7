"""Shared fixtures: virtual timers, in-memory settings and recording fakes."""
import pytest

from modem import Telemetry
from settings_store import SettingsStore
from tray import TrayState


class FakeTimer:
    def __init__(self, clock, interval_ms, callback):
        self.clock = clock
        self.interval_ms = interval_ms
        self.callback = callback
        self.next_due = None
        self.cancelled = False

    def start(self):
        self.next_due = self.clock.now + self.interval_ms
        self.clock.timers.append(self)

    def cancel(self):
        self.cancelled = True


class FakeClock:
    """Virtual time in milliseconds. Pass ``clock.timer`` as timer_factory."""

    def __init__(self):
        self.now = 0
        self.timers = []

    def timer(self, interval_ms, callback):
        return FakeTimer(self, interval_ms, callback)

    @property
    def live_timers(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, ms):
        target = self.now + ms
        while True:
            due = [t for t in self.live_timers if t.next_due <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.next_due)
            self.now = timer.next_due
            timer.next_due += timer.interval_ms
            timer.callback()
        self.now = target


class FakeClient:
    """Returns queued results; repeats the last one when the queue runs dry."""

    def __init__(self, *results):
        self.results = list(results) or [Telemetry(signal_level=4, battery_percent=85)]
        self.calls = []

    def fetch(self, settings, is_current=None):
        self.calls.append(settings)
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, title, body):
        self.sent.append((title, body))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return SettingsStore()


@pytest.fixture
def tray():
    return TrayState()


@pytest.fixture
def notifier():
    return RecordingNotifier()
