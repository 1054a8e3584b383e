"""Generic JSON webhook notification channel.

Posts the AlertMessage fields as a flat JSON object so that any HTTP
consumer can parse it without knowing about chat backends.
"""

from __future__ import annotations

from typing import Any

from kubenotify.models.alerts import AlertMessage
from kubenotify.notifications.manager import HTTPNotificationChannel


class WebhookNotificationChannel(HTTPNotificationChannel):
    """Delivers alerts by POSTing ``{"title", "text", "address"}`` to a URL.

    Returns True on 2xx response, False otherwise.
    """

    @property
    def channel_name(self) -> str:
        return "webhook"

    def build_payload(self, message: AlertMessage) -> dict[str, Any]:
        return {
            "title": message.title,
            "text": message.text,
            "address": message.address,
        }
