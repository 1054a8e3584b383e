"""Slack incoming-webhook notification channel (Block Kit)."""

from __future__ import annotations

from typing import Any

import httpx

from kubenotify.models.alerts import AlertMessage
from kubenotify.notifications.manager import HTTPNotificationChannel

# Slack rejects section text longer than 3000 characters
_MAX_SECTION_TEXT = 3000


class SlackNotificationChannel(HTTPNotificationChannel):
    """Posts a header, a markdown section and an optional link button."""

    def __init__(
        self,
        webhook_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(webhook_url, timeout=timeout, transport=transport)

    @property
    def channel_name(self) -> str:
        return "slack"

    def build_payload(self, message: AlertMessage) -> dict[str, Any]:
        blocks: list[dict[str, Any]] = [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*{message.title}*"},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": message.text[:_MAX_SECTION_TEXT]},
            },
        ]
        if message.address:
            blocks.append(
                {
                    "type": "actions",
                    "elements": [
                        {
                            "type": "button",
                            "text": {"type": "plain_text", "text": "View pod monitoring"},
                            "url": message.address,
                        }
                    ],
                }
            )
        return {"text": message.title, "blocks": blocks}
