"""Tray indicator state shared between the poller and the control surface."""
from datetime import datetime
import logging
import threading

from modem import ICON_DISABLED

logger = logging.getLogger(__name__)

DEFAULT_TOOLTIP = "Signal Tray"


def format_tooltip(signal_level, battery_percent):
    return f"Signal: {signal_level}%, Battery: {battery_percent}%"


def format_last_checked(value):
    """Format an ISO timestamp as 'HH:MM:SS, Mon D' in local time."""
    try:
        dt = datetime.fromisoformat(value)
    except (TypeError, ValueError):
        return "never"
    if dt.tzinfo is not None:
        dt = dt.astimezone()
    return f"{dt:%H:%M:%S}, {dt:%b} {dt.day}"


class TrayState:
    """Current icon bucket and tooltip as last set by the poller."""

    def __init__(self, enabled=True):
        self._lock = threading.Lock()
        self._icon = 0 if enabled else ICON_DISABLED
        self._tooltip = DEFAULT_TOOLTIP

    @property
    def icon(self):
        with self._lock:
            return self._icon

    @property
    def tooltip(self):
        with self._lock:
            return self._tooltip

    def set_icon(self, bucket):
        with self._lock:
            self._icon = bucket

    def set_tooltip(self, text):
        with self._lock:
            self._tooltip = text

    def show_enabled(self, enabled):
        """Reset the icon when polling is switched on or off."""
        self.set_icon(0 if enabled else ICON_DISABLED)

    def snapshot(self, settings):
        """Return the indicator state plus the informational menu lines."""
        with self._lock:
            icon, tooltip = self._icon, self._tooltip
        return {
            "icon": icon,
            "tooltip": tooltip,
            "polling": settings["ping"],
            "status": (f"Signal: {settings['last_signal']}/5, "
                       f"Battery: {settings['last_battery']}%"),
            "last_checked": f"Last checked: {format_last_checked(settings['last_checked'])}",
        }
