"""Persistent key-value settings for the modem monitor."""
import ipaddress
import json
import logging
import os
import threading

logger = logging.getLogger(__name__)

MIN_PING_INTERVAL = 1000
MAX_PING_INTERVAL = 60 * 60 * 1000

SCHEMA = {
    "modem_ip": {"type": str, "default": "192.168.0.1", "format": "ipv4"},
    "ping_interval": {"type": int, "default": 1000,
                      "minimum": MIN_PING_INTERVAL, "maximum": MAX_PING_INTERVAL},
    "ping": {"type": bool, "default": True},
    "auth_token": {"type": str, "default": ""},
    "auth_cookie": {"type": str, "default": ""},
    "notification": {"type": bool, "default": True},
    "last_checked": {"type": str, "default": "2025-12-09T15:58:18.316000+00:00"},
    "last_signal": {"type": int, "default": 0, "minimum": 0, "maximum": 5},
    "last_battery": {"type": int, "default": 0, "minimum": 0, "maximum": 100},
    "battery_notification": {"type": bool, "default": True},
    "battery_notification_triggered": {"type": bool, "default": False},
}

# Fields the settings editor is allowed to change
EDITABLE_KEYS = ("modem_ip", "auth_token", "auth_cookie")


class SettingsError(ValueError):
    """Raised when a value does not satisfy the settings schema."""


def validate(key, value):
    """Check a single value against the schema, returning it unchanged."""
    rule = SCHEMA.get(key)
    if rule is None:
        raise SettingsError(f"Unknown setting: {key}")

    expected = rule["type"]
    # bool is a subclass of int, reject it for numeric fields
    if expected is int and isinstance(value, bool):
        raise SettingsError(f"{key} must be an integer")
    if not isinstance(value, expected):
        raise SettingsError(f"{key} must be of type {expected.__name__}")

    if "minimum" in rule and value < rule["minimum"]:
        raise SettingsError(f"{key} must be >= {rule['minimum']}")
    if "maximum" in rule and value > rule["maximum"]:
        raise SettingsError(f"{key} must be <= {rule['maximum']}")

    if rule.get("format") == "ipv4":
        try:
            ipaddress.IPv4Address(value)
        except ValueError:
            raise SettingsError(f"{key} must be an IPv4 address, got {value!r}")
    return value


class SettingsStore:
    """Schema-checked settings persisted to a JSON file.

    With ``path=None`` the store lives in memory only, which is what the
    tests use.
    """

    def __init__(self, path=None):
        self.path = path
        self._values = {key: rule["default"] for key, rule in SCHEMA.items()}
        self._lock = threading.Lock()
        self._load()

    def _load(self):
        """Merge valid values from the settings file over the defaults."""
        if not self.path or not os.path.exists(self.path):
            return
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except Exception:
            logger.exception("Failed to load settings from %s, using defaults", self.path)
            return
        if not isinstance(data, dict):
            logger.warning("Settings file %s does not hold an object, using defaults", self.path)
            return

        for key, value in data.items():
            try:
                self._values[key] = validate(key, value)
            except SettingsError as e:
                logger.warning("Ignoring stored setting: %s", e)
        logger.info("Loaded settings from %s", self.path)

    def _save(self):
        """Write all values to the settings file (caller must hold self._lock)."""
        if not self.path:
            return
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w") as f:
            json.dump(self._values, f, indent=2)
        os.replace(tmp_path, self.path)

    def get(self, key):
        if key not in SCHEMA:
            raise SettingsError(f"Unknown setting: {key}")
        with self._lock:
            return self._values[key]

    def set(self, key, value):
        """Validate and store one value. Raises SettingsError or OSError."""
        validate(key, value)
        with self._lock:
            previous = self._values[key]
            self._values[key] = value
            try:
                self._save()
            except OSError:
                self._values[key] = previous
                raise

    def get_all(self):
        with self._lock:
            return dict(self._values)


def update_settings(store, changes):
    """Apply a partial update from the settings editor.

    Only ``modem_ip``, ``auth_token`` and ``auth_cookie`` are considered;
    keys that are absent stay untouched and an empty ``modem_ip`` is ignored.
    Returns ``{"success": True}`` or ``{"success": False, "error": msg}``.
    """
    try:
        if changes.get("modem_ip"):
            store.set("modem_ip", changes["modem_ip"])
        if "auth_token" in changes:
            store.set("auth_token", changes["auth_token"])
        if "auth_cookie" in changes:
            store.set("auth_cookie", changes["auth_cookie"])
    except (SettingsError, OSError) as e:
        logger.warning("Settings update failed: %s", e)
        return {"success": False, "error": str(e)}
    return {"success": True}
