"""Modem telemetry reader module."""
from dataclasses import dataclass
from datetime import datetime, timezone
import errno
import logging
import re
import socket

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 1.0   # seconds, kept below the shortest ping interval
SIGNAL_FIELD = "signalbar"
BATTERY_FIELD = "battery_vol_percent"

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:144.0) "
    "Gecko/20100101 Firefox/144.0"
)

# Signal level -> icon bucket. There is no 5-bar icon, level 5 shows 4 bars.
ICON_BUCKETS = {0: 0, 1: 1, 2: 2, 3: 3, 4: 4, 5: 4}
MAX_BUCKET = 4
ICON_DISABLED = "disabled"

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


@dataclass
class Telemetry:
    """A successful reading from the modem."""
    signal_level: int
    battery_percent: int


@dataclass
class FetchError:
    """Any failure to obtain a reading: transport, HTTP status or parse."""
    code: object
    message: str


def signal_to_bucket(signal_level):
    """Map a signal level to an icon bucket, saturating at both ends."""
    if signal_level in ICON_BUCKETS:
        return ICON_BUCKETS[signal_level]
    if signal_level > MAX_BUCKET:
        return MAX_BUCKET
    return 0


def parse_int(value):
    """Parse a leading base-10 integer the lenient way the modem UI does.

    ``"85"`` and ``" 85%"`` both give 85. Returns None when there are no
    leading digits.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        return None
    match = _INT_PREFIX.match(value)
    if not match:
        return None
    return int(match.group(1))


def _error_code(exc):
    """Find an errno-style code for a requests exception."""
    if isinstance(exc, requests.Timeout):
        return "ETIMEDOUT"
    seen = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, socket.gaierror):
            return "ENOTFOUND"
        if isinstance(current, OSError) and current.errno in errno.errorcode:
            return errno.errorcode[current.errno]
        # urllib3 wraps the socket error in its own exception args
        for arg in getattr(current, "args", ()):
            if isinstance(arg, BaseException) and id(arg) not in seen:
                nested = _error_code(arg)
                if nested != type(arg).__name__:
                    return nested
        current = current.__cause__ or current.__context__
    return type(exc).__name__


class ModemClient:
    """Reads signal and battery level from the modem's goform endpoint."""

    def __init__(self, store, timeout=REQUEST_TIMEOUT, session=None):
        self.store = store
        self.timeout = timeout
        self.http = session or requests

    def build_request(self, settings):
        """Return (url, params, headers) for one telemetry query."""
        modem_ip = settings.get("modem_ip") or ""
        auth_token = settings.get("auth_token") or ""
        auth_cookie = settings.get("auth_cookie") or ""

        url = f"http://{modem_ip}/goform/goform_get_cmd_process"
        params = {
            "multi_data": 1,
            "isTest": "false",
            "cmd": f"{SIGNAL_FIELD},{BATTERY_FIELD}",
            "_": auth_token,
        }
        headers = {
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Expires": "0",
            "Accept": "application/json, text/javascript, */*; q=0.01",
            "User-Agent": USER_AGENT,
            "X-Requested-With": "XMLHttpRequest",
            "Referer": f"http://{modem_ip}/m/index.html",
            "Cookie": f"stok={auth_cookie}",
        }
        return url, params, headers

    def fetch(self, settings, is_current=None):
        """Query the modem once and return Telemetry or FetchError.

        Never raises. On success the reading is recorded in the settings
        store, unless ``is_current`` is given and reports that the caller's
        session has been replaced in the meantime.
        """
        url, params, headers = self.build_request(settings)
        try:
            resp = self.http.get(url, params=params, headers=headers,
                                 timeout=self.timeout)
        except requests.RequestException as e:
            code = _error_code(e)
            logger.debug("Modem request failed (%s): %s", code, e)
            return FetchError(code=code, message=str(e))

        if not resp.ok:
            logger.debug("Modem returned HTTP %s", resp.status_code)
            return FetchError(
                code=resp.status_code,
                message=f"Failed to fetch modem data: {resp.reason}",
            )

        try:
            data = resp.json()
        except ValueError as e:
            return FetchError(code="EPARSE", message=f"Invalid modem response: {e}")
        if not isinstance(data, dict):
            return FetchError(code="EPARSE", message="Invalid modem response: expected an object")

        signal_level = parse_int(data.get(SIGNAL_FIELD))
        battery_percent = parse_int(data.get(BATTERY_FIELD))
        if signal_level is None or battery_percent is None:
            return FetchError(
                code="EPARSE",
                message=(f"Invalid modem response: {SIGNAL_FIELD}={data.get(SIGNAL_FIELD)!r} "
                         f"{BATTERY_FIELD}={data.get(BATTERY_FIELD)!r}"),
            )

        telemetry = Telemetry(signal_level=signal_level, battery_percent=battery_percent)
        if is_current is None or is_current():
            self._record(telemetry)
        else:
            logger.debug("Discarding write-back from a replaced polling session")
        return telemetry

    def _record(self, telemetry):
        """Store the latest reading. A store failure does not fail the fetch."""
        try:
            self.store.set("last_checked", datetime.now(timezone.utc).isoformat())
            self.store.set("last_signal", max(0, min(5, telemetry.signal_level)))
            self.store.set("last_battery", max(0, min(100, telemetry.battery_percent)))
        except Exception:
            logger.exception("Failed to record modem telemetry")
