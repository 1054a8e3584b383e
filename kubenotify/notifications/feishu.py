"""Feishu (Lark) custom-bot notification channel.

Sends an interactive card to ``{webhook_url}/{robot}``.  Feishu answers
HTTP 200 even for rejected messages; the JSON body carries the real
result in ``code`` (current API) or ``StatusCode`` (legacy bots), where
zero means accepted.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from kubenotify.models.alerts import AlertMessage
from kubenotify.notifications.manager import HTTPNotificationChannel

_log = structlog.get_logger(component="notifications.feishu")

_CARD_HEADER = "Pod Crash Notify"
_BUTTON_TEXT = "View pod monitoring"


class FeishuNotificationChannel(HTTPNotificationChannel):
    """Feishu custom bot channel.

    Args:
        webhook_url: Bot hook base URL, e.g. ``https://open.feishu.cn/open-apis/bot/v2/hook``.
        robot:       Bot token appended as the last path segment.
    """

    def __init__(
        self,
        webhook_url: str,
        robot: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not robot:
            raise ValueError("Feishu robot token must not be empty")
        super().__init__(f"{webhook_url.rstrip('/')}/{robot}", timeout=timeout, transport=transport)

    @property
    def channel_name(self) -> str:
        return "feishu"

    def build_payload(self, message: AlertMessage) -> dict[str, Any]:
        elements: list[dict[str, Any]] = [
            {"tag": "markdown", "content": message.title},
            {"tag": "hr"},
            {"tag": "markdown", "content": message.text},
        ]
        if message.address:
            elements.append(
                {
                    "tag": "button",
                    "text": {"tag": "plain_text", "content": _BUTTON_TEXT},
                    "type": "primary_text",
                    "behaviors": [{"type": "open_url", "default_url": message.address}],
                }
            )
        return {
            "msg_type": "interactive",
            "card": {
                "schema": "2.0",
                "config": {"update_multi": True},
                "header": {
                    "title": {"tag": "plain_text", "content": _CARD_HEADER},
                    "template": "red",
                },
                "body": {"direction": "vertical", "elements": elements},
            },
        }

    def is_accepted(self, response: httpx.Response) -> bool:
        if not response.is_success:
            return False
        try:
            body = response.json()
        except ValueError:
            _log.warning("feishu_unparsable_response", body=response.text[:200])
            return False
        code = body.get("code", body.get("StatusCode", 0)) if isinstance(body, dict) else -1
        if code != 0:
            _log.warning("feishu_message_rejected", code=code, msg=body.get("msg") if isinstance(body, dict) else None)
            return False
        return True
