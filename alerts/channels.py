"""Notification channels and the dispatcher that fans out to them."""
import json
import logging
from datetime import datetime, timezone

from rich.console import Console

from monitor.errors import NotificationFailure
from utils.http_client import APIError

logger = logging.getLogger("guardian.alerts.channels")


class _BaseChannel:
    name = "base"

    def __init__(self, types=None):
        # None accepts every notification type
        self.types = set(types) if types else None

    def accepts(self, notification_type):
        return self.types is None or notification_type in self.types


class ConsoleChannel(_BaseChannel):
    """Print notifications to the terminal with rich formatting."""
    name = "console"

    def __init__(self, console=None, types=None):
        super().__init__(types)
        self.console = console or Console()

    def send(self, recipients, title, body, data):
        style = "bold yellow" if data.get("type") == "drawdown" else "bold cyan"
        self.console.print(f"[{style}]{title}[/]")
        self.console.print(body, markup=False)
        return True


class FileChannel(_BaseChannel):
    """Append notifications to a JSON lines log file."""
    name = "file"

    def __init__(self, log_path="data/notifications.jsonl", types=None):
        super().__init__(types)
        self.log_path = log_path

    def send(self, recipients, title, body, data):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "title": title,
            "body": body,
            "data": data,
            "recipients": len(recipients),
        }
        try:
            with open(self.log_path, "a") as f:
                f.write(json.dumps(entry) + "\n")
            return True
        except OSError as e:
            logger.warning(f"Failed to write notification to file: {e}")
            return False


class ExpoPushChannel(_BaseChannel):
    """Push to the registered device tokens through Expo."""
    name = "expo"

    def __init__(self, client, types=None):
        super().__init__(types)
        self.client = client

    def send(self, recipients, title, body, data):
        if not recipients:
            logger.info("No device tokens registered, push skipped")
            return True
        try:
            tickets = self.client.send(recipients, title, body, data)
        except APIError as e:
            logger.warning(f"Expo push failed: {e}")
            return False
        ok = sum(1 for t in tickets if t.get("status") == "ok")
        logger.info(f"Push sent to {ok}/{len(recipients)} devices")
        return ok > 0


class NotificationDispatcher:
    """Fans one notification out to every channel that accepts its type.

    Delivery is fire-and-forget: failures are logged and reported through the
    return value, never retried.
    """

    def __init__(self, channels=None):
        self.channels = list(channels or [])

    def add(self, channel):
        self.channels.append(channel)

    def notify(self, recipients, title, body, data) -> bool:
        notification_type = data.get("type")
        delivered = True
        for channel in self.channels:
            if hasattr(channel, "accepts") and not channel.accepts(notification_type):
                continue
            try:
                if not channel.send(recipients, title, body, data):
                    delivered = False
                    logger.warning(f"Channel {channel.name} did not deliver '{title}'")
            except Exception as e:
                delivered = False
                logger.warning(f"Channel {getattr(channel, 'name', channel)} dispatch error: {e}")
        return delivered

    def notify_or_raise(self, recipients, title, body, data, symbol=None):
        """Like notify, but signals a failed delivery with NotificationFailure."""
        if not self.notify(recipients, title, body, data):
            raise NotificationFailure(f"Delivery failed: {title}", symbol=symbol)
