"""Registry of push recipients (Expo device tokens)."""
import logging

logger = logging.getLogger("guardian.devices")


class DeviceRegistry:
    def __init__(self, db):
        self.db = db

    def recipients(self):
        """Active tokens, read fresh from the store on every call."""
        return [r["token"] for r in self.db.get_device_tokens(active_only=True)]

    def register(self, token, platform=None):
        token = token.strip()
        if not token:
            raise ValueError("device token must not be empty")
        self.db.add_device_token(token, platform)
        logger.info(f"Registered device token {token[:24]}...")

    def unregister(self, token):
        return self.db.remove_device_token(token.strip())

    def list(self):
        return self.db.get_device_tokens(active_only=False)
