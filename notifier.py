"""Notification sinks for modem monitor alerts."""
import html
import logging
import time

import requests

logger = logging.getLogger(__name__)


class LogNotifier:
    """Writes notifications to the log. Used when Telegram is not configured."""

    def notify(self, title, body):
        logger.warning("%s: %s", title, body)


class TelegramNotifier:
    """Sends notifications to a set of Telegram chats through the Bot API."""

    def __init__(self, token, chat_ids, retries=4, timeout=5, sleep=time.sleep):
        self.token = token
        self.chat_ids = set(chat_ids)
        self.retries = retries
        self.timeout = timeout
        self.api_url = f"https://api.telegram.org/bot{token}"
        self._sleep = sleep

    def send_message(self, chat_id, text):
        """Send a message to a specific chat with exponential backoff retry.

        Runs on the poller thread. With the defaults the worst case is four
        5 s timeouts plus 1 + 2 + 4 s of backoff, about 27 s per chat; ticks
        arriving meanwhile are skipped.
        """
        payload = {"chat_id": chat_id, "text": text, "parse_mode": "HTML"}

        for attempt in range(self.retries):  # backoff 1s, 2s, 4s ...
            try:
                resp = requests.post(
                    f"{self.api_url}/sendMessage",
                    json=payload,
                    timeout=self.timeout,
                )
                if resp.ok:
                    return True
                logger.error("Failed to send message (attempt %d): %s", attempt + 1, resp.text)
            except requests.RequestException:
                logger.warning("Error sending Telegram message (attempt %d)", attempt + 1)
            if attempt < self.retries - 1:
                self._sleep(2 ** attempt)

        logger.error("Failed to send message after %d attempts to chat %s", self.retries, chat_id)
        return False

    def notify(self, title, body):
        """Send the notification to all configured chats."""
        text = f"<b>{html.escape(title)}</b>\n{html.escape(body)}"
        for chat_id in self.chat_ids:
            self.send_message(chat_id, text)


def parse_chat_ids(value):
    """Parse a comma-separated list of numeric chat IDs."""
    chat_ids = set()
    for item in (value or "").split(","):
        item = item.strip()
        if item.lstrip("-").isdigit():
            chat_ids.add(int(item))
    return chat_ids
