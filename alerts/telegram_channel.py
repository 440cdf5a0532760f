"""Telegram notification channel."""
import logging

logger = logging.getLogger("guardian.alerts.telegram")


class TelegramChannel:
    """Send notifications to the configured Telegram chat.

    The chat id comes from configuration; device recipients do not apply.
    """
    name = "telegram"

    def __init__(self, bot, types=None):
        self.bot = bot
        self.types = set(types) if types else None

    def accepts(self, notification_type):
        return self.types is None or notification_type in self.types

    def send(self, recipients, title, body, data) -> bool:
        text = f"*{_escape(title)}*\n\n{_escape(body)}"
        try:
            resp = self.bot.send_message(text)
        except Exception as e:
            logger.warning("Telegram notification failed: %s", e)
            return False
        return bool(resp.get("ok"))


def _escape(text):
    """Escape the legacy-Markdown control characters Telegram would choke on."""
    for ch in ("_", "*", "`", "["):
        text = text.replace(ch, f"\\{ch}")
    return text
