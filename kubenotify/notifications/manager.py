"""Notification channel base classes.

NotificationChannel     -- ABC every channel must implement.
HTTPNotificationChannel -- Shared httpx POST plumbing for webhook-style
                           chat backends; subclasses build the payload and
                           judge the response.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
import structlog

from kubenotify.models.alerts import AlertMessage

_log = structlog.get_logger(component="notifications.manager")


class NotificationChannel(ABC):
    """Abstract base class for all notification channels.

    Every concrete channel must implement ``send``, which should not raise
    for delivery problems -- return ``False`` instead.
    """

    @property
    @abstractmethod
    def channel_name(self) -> str:
        """Human-readable channel identifier used in metrics and logs."""

    @abstractmethod
    async def send(self, message: AlertMessage) -> bool:
        """Deliver *message* via this channel.

        Returns:
            True  -- message accepted by the remote endpoint.
            False -- delivery failed (already logged inside implementation).
        """


class HTTPNotificationChannel(NotificationChannel):
    """POSTs a JSON payload per alert.

    Args:
        url:       Endpoint URL.
        timeout:   HTTP request timeout in seconds.
        headers:   Optional extra headers (e.g. Authorization).
        transport: Optional httpx transport (tests inject a MockTransport).
    """

    def __init__(
        self,
        url: str,
        timeout: float = 10.0,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            raise ValueError(f"{type(self).__name__} url must not be empty")
        self._url = url
        self._timeout = timeout
        self._headers = headers or {}
        self._transport = transport

    @property
    def url(self) -> str:
        return self._url

    @abstractmethod
    def build_payload(self, message: AlertMessage) -> dict[str, Any]:
        """Serialise *message* into the backend's JSON body."""

    def is_accepted(self, response: httpx.Response) -> bool:
        return response.is_success

    async def send(self, message: AlertMessage) -> bool:
        payload = self.build_payload(message)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers,
                transport=self._transport,
            ) as client:
                response = await client.post(self._url, json=payload)
        except httpx.TimeoutException:
            _log.warning("notification_request_timeout", channel=self.channel_name)
            return False
        except httpx.HTTPError as exc:
            _log.warning("notification_http_error", channel=self.channel_name, error=str(exc))
            return False

        if self.is_accepted(response):
            return True
        _log.warning(
            "notification_rejected",
            channel=self.channel_name,
            status_code=response.status_code,
            body=response.text[:200],
        )
        return False
