from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

import requests

from servicebook.extensions import db
from servicebook.models.user import User

logger = logging.getLogger(__name__)


class PushProvider(ABC):
    """Delivers a single push message to one device token."""

    @abstractmethod
    def send(self, token: str, title: str, body: str, data: Optional[Dict] = None) -> Dict:
        raise NotImplementedError()


class LogPushProvider(PushProvider):
    """Provider that only logs messages (useful for dev/testing)."""

    def send(self, token: str, title: str, body: str, data: Optional[Dict] = None) -> Dict:
        logger.info("[LogPushProvider] push to token=%s title=%s", token[:12], title)
        logger.debug("Push body: %s data=%s", body, data)
        return {"status": "sent", "provider": "log"}


class FcmPushProvider(PushProvider):
    def __init__(self, server_key: str, endpoint: str, timeout: float = 5.0):
        self.server_key = server_key
        self.endpoint = endpoint
        self.timeout = timeout

    def send(self, token: str, title: str, body: str, data: Optional[Dict] = None) -> Dict:
        payload = {
            "to": token,
            "priority": "high",
            "notification": {"title": title, "body": body, "sound": "default"},
            # FCM data payload values must be strings
            "data": {k: str(v) for k, v in (data or {}).items()},
        }
        res = requests.post(
            self.endpoint,
            json=payload,
            headers={"Authorization": f"key={self.server_key}"},
            timeout=self.timeout,
        )
        res.raise_for_status()
        result = res.json()
        if result.get("failure"):
            raise RuntimeError(f"FCM rejected message: {result.get('results')}")
        return {"status": "sent", "provider": "fcm", "message_id": result.get("multicast_id")}


class PushClient:
    """Fire-and-forget push to a user; never raises on delivery problems."""

    def __init__(self, provider: Optional[PushProvider] = None):
        self.provider = provider or LogPushProvider()

    def send_to_user(self, user_id: str, title: str, body: str, data: Optional[Dict] = None) -> bool:
        user = db.session.get(User, user_id)
        if not user or not user.fcm_token:
            logger.info("No push token for user %s; skipping '%s'", user_id, title)
            return False
        try:
            self.provider.send(user.fcm_token, title, body, data)
        except Exception:
            logger.exception("Push delivery to user %s failed", user_id)
            return False
        return True


def build_push_client(config) -> PushClient:
    name = config.get("PUSH_PROVIDER", "log")
    if name == "fcm":
        if not config.get("FCM_SERVER_KEY"):
            logger.warning("PUSH_PROVIDER=fcm but FCM_SERVER_KEY is empty; falling back to log provider")
            return PushClient(LogPushProvider())
        return PushClient(FcmPushProvider(
            server_key=config["FCM_SERVER_KEY"],
            endpoint=config["FCM_ENDPOINT"],
            timeout=config.get("PUSH_TIMEOUT_SECONDS", 5.0),
        ))
    return PushClient(LogPushProvider())
