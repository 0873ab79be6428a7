"""Modem Monitor - tray-style signal and battery monitor for 4G modems."""
from dotenv import load_dotenv
load_dotenv()

from flask import Flask, jsonify, request
from modem import ModemClient
from notifier import LogNotifier, TelegramNotifier, parse_chat_ids
from poller import ModemPoller, RepeatingTimer
from settings_store import SettingsStore, SettingsError, update_settings
from tray import TrayState
import os
import logging

logger = logging.getLogger(__name__)

SETTINGS_FILE = os.environ.get("SETTINGS_FILE", "settings.json")

# Presets offered by the tray's "Ping interval" submenu
PING_INTERVAL_PRESETS = {
    1000: "1 second",
    5000: "5 seconds",
    30000: "30 seconds",
    60000: "1 minute",
}

app = Flask(__name__)

# Service variables, initialised by init_services()
store = None
tray = None
notifier = None
modem_client = None
poller = None


def build_notifier():
    """Pick the notification sink from the environment."""
    if os.environ.get("TELEGRAM_ENABLED", "true").lower() == "false":
        logger.info("Telegram notifications disabled via TELEGRAM_ENABLED=false")
        return LogNotifier()

    token = os.environ.get("TELEGRAM_BOT_TOKEN", "")
    chat_ids = parse_chat_ids(os.environ.get("TELEGRAM_ALLOWED_USERS", ""))
    if not token or not chat_ids:
        logger.info("TELEGRAM_BOT_TOKEN or TELEGRAM_ALLOWED_USERS not set, logging notifications only")
        return LogNotifier()

    logger.info("Telegram notifications enabled for %d chat(s)", len(chat_ids))
    return TelegramNotifier(token, chat_ids)


def init_services(settings_store=None, notification_sink=None, client=None,
                  timer_factory=RepeatingTimer):
    """Create the settings store, tray state and poller, and start polling."""
    global store, tray, notifier, modem_client, poller

    store = settings_store or SettingsStore(SETTINGS_FILE)
    tray = TrayState(enabled=store.get("ping"))
    notifier = notification_sink or build_notifier()
    modem_client = client or ModemClient(store)
    poller = ModemPoller(modem_client, store, tray, notifier,
                         timer_factory=timer_factory)
    poller.configure()


def _toggle(key):
    """Flip a boolean setting and return the new value."""
    value = not store.get(key)
    store.set(key, value)
    return value


@app.route("/api/state")
def get_state():
    """Current tray icon, tooltip and status lines."""
    return jsonify(tray.snapshot(store.get_all()))


@app.route("/api/settings", methods=["GET"])
def get_settings():
    """Return the full settings snapshot."""
    return jsonify(store.get_all())


@app.route("/api/settings", methods=["POST"])
def save_settings():
    """Update modem address and credentials, then restart polling."""
    changes = request.get_json(silent=True)
    if not isinstance(changes, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400

    result = update_settings(store, changes)
    if result["success"]:
        poller.configure()
    return jsonify(result)


@app.route("/api/ping", methods=["POST"])
def toggle_ping():
    """Switch modem polling on or off."""
    try:
        enabled = _toggle("ping")
    except (SettingsError, OSError) as e:
        return jsonify({"success": False, "error": str(e)}), 500
    # Reconfigure first so a late result from the old session is discarded
    poller.configure()
    tray.show_enabled(enabled)
    return jsonify({"success": True, "ping": enabled})


@app.route("/api/notifications", methods=["POST"])
def toggle_notifications():
    """Switch error notifications on or off."""
    try:
        enabled = _toggle("notification")
    except (SettingsError, OSError) as e:
        return jsonify({"success": False, "error": str(e)}), 500
    return jsonify({"success": True, "notification": enabled})


@app.route("/api/battery-notifications", methods=["POST"])
def toggle_battery_notifications():
    """Switch low battery notifications on or off."""
    try:
        enabled = _toggle("battery_notification")
    except (SettingsError, OSError) as e:
        return jsonify({"success": False, "error": str(e)}), 500
    return jsonify({"success": True, "battery_notification": enabled})


@app.route("/api/interval", methods=["GET"])
def get_interval():
    """Return the current interval and the menu presets."""
    current = store.get("ping_interval")
    return jsonify({
        "ping_interval": current,
        "presets": [
            {"value": value, "label": label, "checked": value == current}
            for value, label in PING_INTERVAL_PRESETS.items()
        ],
    })


@app.route("/api/interval", methods=["POST"])
def set_interval():
    """Change the polling interval and restart polling."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"success": False, "error": "Invalid request body"}), 400
    interval = data.get("ping_interval")
    try:
        store.set("ping_interval", interval)
    except SettingsError as e:
        return jsonify({"success": False, "error": str(e)}), 400
    except OSError as e:
        return jsonify({"success": False, "error": str(e)}), 500
    poller.configure()
    return jsonify({"success": True, "ping_interval": interval})


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info("=== Modem Monitor starting ===")
    init_services()
    settings = store.get_all()
    logger.info("MODEM_IP=%s  ping=%s  interval=%dms", settings["modem_ip"],
                settings["ping"], settings["ping_interval"])
    logger.info("Notifications: errors=%s battery=%s",
                settings["notification"], settings["battery_notification"])

    try:
        app.run(host="127.0.0.1", port=int(os.environ.get("PORT", 8080)))
    finally:
        poller.stop()
