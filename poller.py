"""Modem poll scheduler: one repeating timer, signal icon and battery alerts."""
from dataclasses import dataclass
import functools
import logging
import threading

from modem import FetchError, signal_to_bucket
from tray import format_tooltip

logger = logging.getLogger(__name__)

BATTERY_LOW_THRESHOLD = 20       # notify below this
BATTERY_RECOVERED_THRESHOLD = 30  # re-arm above this

ERROR_TITLE = "Error fetching modem data"
BATTERY_LOW_TITLE = "Battery low"


class RepeatingTimer(threading.Thread):
    """Calls ``function`` every ``interval_ms`` until cancelled."""

    def __init__(self, interval_ms, function):
        super().__init__(daemon=True)
        self.interval = interval_ms / 1000
        self.function = function
        self._cancelled = threading.Event()

    def run(self):
        while not self._cancelled.wait(self.interval):
            self.function()

    def cancel(self):
        self._cancelled.set()


@dataclass
class PollSession:
    """State for one enabled period. Replaced whenever polling is reconfigured."""
    generation: int
    interval_ms: int
    timer: object
    battery_low_triggered: bool = False
    failing: bool = False


class ModemPoller:
    """Polls the modem on a timer and turns readings into tray updates and alerts.

    ``timer_factory(interval_ms, callback)`` must return an object with
    ``start()`` and ``cancel()``; tests pass a virtual clock here.
    """

    def __init__(self, client, store, tray, notifier, timer_factory=RepeatingTimer):
        self.client = client
        self.store = store
        self.tray = tray
        self.notifier = notifier
        self.timer_factory = timer_factory
        self.session = None
        self._generation = 0
        self._lock = threading.RLock()
        self._cycle_lock = threading.Lock()

    @property
    def active(self):
        with self._lock:
            return self.session is not None

    def configure(self):
        """Stop the current session and start a new one if polling is enabled.

        Safe to call after every settings change; at most one timer is ever
        scheduled.
        """
        with self._lock:
            self._teardown()
            settings = self.store.get_all()
            if not settings["ping"]:
                logger.info("Modem polling disabled")
                return

            self._generation += 1
            generation = self._generation
            interval = settings["ping_interval"]
            timer = self.timer_factory(interval, functools.partial(self._tick, generation))
            self.session = PollSession(
                generation=generation,
                interval_ms=interval,
                timer=timer,
                battery_low_triggered=settings["battery_notification_triggered"],
            )
            timer.start()
            logger.info("Modem polling every %dms (session %d)", interval, generation)

    def stop(self):
        with self._lock:
            self._teardown()

    def _teardown(self):
        """Cancel the session's timer (caller must hold self._lock)."""
        if self.session is None:
            return
        self.session.timer.cancel()
        logger.debug("Stopped polling session %d", self.session.generation)
        self.session = None
        # Results still in flight for the old session are discarded
        self._generation += 1

    def _is_current(self, generation):
        with self._lock:
            return self.session is not None and self.session.generation == generation

    def _tick(self, generation):
        if not self._cycle_lock.acquire(blocking=False):
            logger.warning("Previous modem poll still running, skipping tick")
            return
        try:
            self._poll(generation)
        except Exception:
            logger.exception("Error polling modem")
        finally:
            self._cycle_lock.release()

    def _poll(self, generation):
        """Run one fetch-and-update cycle for the given session."""
        if not self._is_current(generation):
            return
        settings = self.store.get_all()
        result = self.client.fetch(
            settings, is_current=functools.partial(self._is_current, generation)
        )

        with self._lock:
            if self.session is None or self.session.generation != generation:
                logger.debug("Discarding modem result from a replaced session")
                return
            notifications = self._apply(result, settings)

        for title, body in notifications:
            self.notifier.notify(title, body)

    def _apply(self, result, settings):
        """Update tray state and the battery latch. Returns notifications to send."""
        notifications = []

        if isinstance(result, FetchError):
            # Warn once per outage, the rest go to debug
            if not self.session.failing:
                logger.warning("Modem poll failed (%s): %s", result.code, result.message)
                self.session.failing = True
            else:
                logger.debug("Modem poll failed (%s): %s", result.code, result.message)
            if settings["notification"]:
                notifications.append((ERROR_TITLE, result.message))
            return notifications

        if self.session.failing:
            logger.info("Modem reachable again")
            self.session.failing = False

        signal, battery = result.signal_level, result.battery_percent
        self.tray.set_icon(signal_to_bucket(signal))
        self.tray.set_tooltip(format_tooltip(signal, battery))
        logger.debug("Modem signal=%s battery=%s%%", signal, battery)

        if not settings["battery_notification"]:
            return notifications

        if battery < BATTERY_LOW_THRESHOLD and not self.session.battery_low_triggered:
            notifications.append((
                BATTERY_LOW_TITLE,
                f"Battery is at {battery}%, please charge your device",
            ))
            self._set_battery_latch(True)
            logger.info("Battery low notification triggered (%s%%)", battery)
        elif battery > BATTERY_RECOVERED_THRESHOLD and self.session.battery_low_triggered:
            self._set_battery_latch(False)
            logger.info("Battery recovered (%s%%), low battery alert re-armed", battery)
        return notifications

    def _set_battery_latch(self, value):
        self.session.battery_low_triggered = value
        try:
            self.store.set("battery_notification_triggered", value)
        except Exception:
            logger.exception("Failed to persist battery notification state")
