"""Configuration loading from environment variables."""

from __future__ import annotations

import os
import re

from kubenotify.models.config import (
    APIConfig,
    KubeNotifyConfig,
    LogConfig,
    MuteConfig,
    NotificationConfig,
    ReconcileConfig,
    WatchConfig,
)

_CHANNELS = {"feishu", "slack", "webhook"}
_REASON_RE = re.compile(r"^[A-Za-z][A-Za-z0-9]*$")


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBENOTIFY_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in ("json", "console"):
        raise ValueError(f"Invalid log format: {value}. Must be 'json' or 'console'")
    return value.lower()


def _validate_channel(value: str) -> str:
    if value.lower() not in _CHANNELS:
        raise ValueError(f"Invalid notify channel: {value}. Must be one of {_CHANNELS}")
    return value.lower()


def _parse_reasons(value: str) -> frozenset[str]:
    reasons = {part.strip() for part in value.split(",") if part.strip()}
    if not reasons:
        raise ValueError("CRASH_LOOP_REASONS must name at least one waiting reason")
    for reason in reasons:
        if not _REASON_RE.match(reason):
            raise ValueError(f"Invalid waiting reason: {reason!r}")
    return frozenset(reasons)


def load_config() -> KubeNotifyConfig:
    """Load configuration from KUBENOTIFY_* environment variables."""
    return KubeNotifyConfig(
        cluster_name=_env("CLUSTER_NAME", "none"),
        cluster_id=_env("CLUSTER_ID", "none"),
        watch=WatchConfig(
            namespace=_env("WATCH_NAMESPACE", ""),
            resync_seconds=_env_int("RESYNC_SECONDS", 300, min_val=30),
        ),
        mute=MuteConfig(
            window_seconds=_env_int("MUTE_SECONDS", 600, min_val=0),
            eviction_multiple=_env_int("MUTE_EVICTION_MULTIPLE", 2, min_val=1, max_val=20),
            sweep_seconds=_env_int("MUTE_SWEEP_SECONDS", 60, min_val=1),
        ),
        reconcile=ReconcileConfig(
            worker_count=_env_int("WORKER_COUNT", 1, min_val=1, max_val=64),
            crash_recency_seconds=_env_int("CRASH_RECENCY_SECONDS", 300, min_val=0),
            crash_loop_reasons=_parse_reasons(_env("CRASH_LOOP_REASONS", "CrashLoopBackOff")),
            retry_base_seconds=_env_float("RETRY_BASE_SECONDS", 1.0, min_val=0.001),
            retry_max_seconds=_env_float("RETRY_MAX_SECONDS", 300.0, min_val=0.001),
            max_retries=_env_int("MAX_RETRIES", 5, min_val=0),
        ),
        notifications=NotificationConfig(
            channel=_validate_channel(_env("NOTIFY_CHANNEL", "feishu")),
            feishu_webhook_url=_env("FEISHU_WEBHOOK_URL", "https://open.feishu.cn/open-apis/bot/v2/hook"),
            feishu_robot=_env("FEISHU_ROBOT", ""),
            slack_webhook_url=_env("SLACK_WEBHOOK_URL", ""),
            webhook_url=_env("WEBHOOK_URL", ""),
            dashboard_url=_env("DASHBOARD_URL", ""),
        ),
        api=APIConfig(
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
