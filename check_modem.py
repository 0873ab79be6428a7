"""Query the modem once with the stored settings and print the result."""
from dotenv import load_dotenv
import os
import sys

from modem import FetchError, ModemClient, signal_to_bucket
from settings_store import SettingsStore

load_dotenv()

SETTINGS_FILE = os.environ.get("SETTINGS_FILE", "settings.json")


def main():
    store = SettingsStore(SETTINGS_FILE)
    settings = store.get_all()
    # Allow a one-off address without touching the stored settings
    if len(sys.argv) > 1:
        settings["modem_ip"] = sys.argv[1]

    client = ModemClient(store)
    url, _, _ = client.build_request(settings)
    print(f"Querying {url} ...")

    result = client.fetch(settings, is_current=lambda: False)
    if isinstance(result, FetchError):
        print(f"❌ Error ({result.code}): {result.message}")
        return 1

    print("✅ Connection successful!")
    print(f"   Signal: {result.signal_level}/5 (icon bucket {signal_to_bucket(result.signal_level)})")
    print(f"   Battery: {result.battery_percent}%")
    return 0


if __name__ == "__main__":
    sys.exit(main())
