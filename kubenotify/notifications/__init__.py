"""Notification channels for kubenotify.

Exports:
    NotificationChannel        -- Abstract base for all channel implementations.
    HTTPNotificationChannel    -- Shared JSON-over-HTTP POST plumbing.
    FeishuNotificationChannel  -- Feishu custom-bot interactive card.
    SlackNotificationChannel   -- Slack Block Kit via incoming webhook.
    WebhookNotificationChannel -- Generic JSON POST webhook.
    AlertMessageBuilder        -- Builds the AlertMessage for a crash decision.
    build_notification_channel -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from kubenotify.notifications.feishu import FeishuNotificationChannel
from kubenotify.notifications.manager import HTTPNotificationChannel, NotificationChannel
from kubenotify.notifications.message import AlertMessageBuilder
from kubenotify.notifications.slack import SlackNotificationChannel
from kubenotify.notifications.webhook import WebhookNotificationChannel

if TYPE_CHECKING:
    from kubenotify.models.config import NotificationConfig

_log = structlog.get_logger(component="notifications")

__all__ = [
    "AlertMessageBuilder",
    "FeishuNotificationChannel",
    "HTTPNotificationChannel",
    "NotificationChannel",
    "SlackNotificationChannel",
    "WebhookNotificationChannel",
    "build_notification_channel",
]


def build_notification_channel(config: NotificationConfig) -> NotificationChannel:
    """Build the single channel selected by ``config.channel``.

    ``feishu`` is the default.  An unrecognised name falls back to Feishu
    with a warning.

    Raises:
        ValueError: the selected channel is missing its URL or token.
    """
    name = config.channel.lower()

    if name == "slack":
        channel: NotificationChannel = SlackNotificationChannel(webhook_url=config.slack_webhook_url)
    elif name == "webhook":
        channel = WebhookNotificationChannel(url=config.webhook_url)
    else:
        if name != "feishu":
            _log.warning("unknown_notify_channel", channel=name, fallback="feishu")
        channel = FeishuNotificationChannel(
            webhook_url=config.feishu_webhook_url,
            robot=config.feishu_robot,
        )

    _log.info("notification_channel_enabled", channel=channel.channel_name)
    return channel
