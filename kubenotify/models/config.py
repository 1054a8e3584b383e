"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class WatchConfig:
    """Pod watch stream configuration."""

    namespace: str = ""
    resync_seconds: int = 300


@dataclass
class MuteConfig:
    """Notification mute window configuration."""

    window_seconds: int = 600
    eviction_multiple: int = 2
    sweep_seconds: int = 60


@dataclass
class ReconcileConfig:
    """Reconciliation worker and crash classification configuration."""

    worker_count: int = 1
    crash_recency_seconds: int = 300
    crash_loop_reasons: frozenset[str] = frozenset({"CrashLoopBackOff"})
    retry_base_seconds: float = 1.0
    retry_max_seconds: float = 300.0
    max_retries: int = 5


@dataclass
class NotificationConfig:
    """Notification channel configuration."""

    channel: str = "feishu"
    feishu_webhook_url: str = "https://open.feishu.cn/open-apis/bot/v2/hook"
    feishu_robot: str = ""
    slack_webhook_url: str = ""
    webhook_url: str = ""
    dashboard_url: str = ""


@dataclass
class APIConfig:
    """REST API configuration."""

    port: int = 8080


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubeNotifyConfig:
    """Top-level kubenotify configuration."""

    cluster_name: str = "none"
    cluster_id: str = "none"
    watch: WatchConfig = field(default_factory=WatchConfig)
    mute: MuteConfig = field(default_factory=MuteConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
