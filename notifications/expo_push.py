"""Expo push notification client.

Device tokens registered by the mobile app are Expo push tokens
(``ExponentPushToken[...]``). Messages are posted in batches to the Expo
push service; per-message failures come back as error tickets.
"""
import logging

from utils.http_client import HTTPClient

logger = logging.getLogger("guardian.expo")

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"
MAX_BATCH = 100


class ExpoPushClient:
    def __init__(self, url=EXPO_PUSH_URL, access_token=None, timeout=15, http=None):
        self.http = http or HTTPClient(url, timeout=timeout, max_retries=1, source="expo")
        if access_token:
            self.http.session.headers.update({"Authorization": f"Bearer {access_token}"})
        self.http.session.headers.update({"Accept": "application/json"})

    def send(self, tokens, title, body, data=None, sound="default"):
        """Push one message to every token. Returns the list of Expo tickets.

        Raises utils.http_client.APIError on transport failure.
        """
        tickets = []
        messages = [
            {"to": token, "sound": sound, "title": title, "body": body, "data": data or {}}
            for token in tokens
        ]
        for i in range(0, len(messages), MAX_BATCH):
            batch = messages[i:i + MAX_BATCH]
            resp = self.http.post(json_body=batch)
            batch_tickets = resp.get("data", []) if isinstance(resp, dict) else []
            tickets.extend(batch_tickets)
            for msg, ticket in zip(batch, batch_tickets):
                if ticket.get("status") != "ok":
                    logger.warning(f"Expo rejected push to {msg['to'][:24]}...: {ticket.get('message')}")
        logger.debug(f"Expo push: {len(messages)} messages, {len(tickets)} tickets")
        return tickets

    def close(self):
        self.http.close()
