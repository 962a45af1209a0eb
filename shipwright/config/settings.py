"""Centralized environment-based settings for Shipwright.

Reads process-level settings from environment variables with sensible
defaults. Deployment targets (host, credentials, paths) are NOT read
here; they come from the deployment config file so that nothing about
a target is baked into the process environment.

Usage:
    from shipwright.config.settings import get_settings
    settings = get_settings()
"""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ShipwrightSettings:
    """Immutable application settings loaded from environment."""

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    # Remote execution
    default_timeout: float = 600.0
    connect_timeout: float = 15.0

    # Health probe
    health_poll_interval: float = 5.0
    health_timeout: float = 120.0

    # Notification
    mail_endpoint: str = ""
    mail_sender: str = "shipwright@localhost"
    log_excerpt_lines: int = 40

    def has_mail_relay(self) -> bool:
        return bool(self.mail_endpoint)


def get_settings() -> ShipwrightSettings:
    """Load settings from environment variables.

    Environment variables (all optional):
        SHIPWRIGHT_LOG_LEVEL: Logging level (default: INFO)
        SHIPWRIGHT_LOG_JSON: Render logs as JSON (default: true)
        SHIPWRIGHT_DEFAULT_TIMEOUT: Per-command timeout in seconds (default: 600)
        SHIPWRIGHT_CONNECT_TIMEOUT: SSH connect timeout in seconds (default: 15)
        SHIPWRIGHT_HEALTH_POLL_INTERVAL: Seconds between health probes (default: 5)
        SHIPWRIGHT_HEALTH_TIMEOUT: Overall health probe budget (default: 120)
        SHIPWRIGHT_MAIL_ENDPOINT: Mail relay URL (empty = log only)
        SHIPWRIGHT_MAIL_SENDER: From address for notifications
        SHIPWRIGHT_LOG_EXCERPT_LINES: Output lines copied into notifications (default: 40)
    """
    def _bool(key: str, default: bool = False) -> bool:
        val = os.environ.get(key, "").lower()
        if val in ("1", "true", "yes"):
            return True
        if val in ("0", "false", "no"):
            return False
        return default

    return ShipwrightSettings(
        log_level=os.environ.get("SHIPWRIGHT_LOG_LEVEL", "INFO").upper(),
        log_json=_bool("SHIPWRIGHT_LOG_JSON", True),
        default_timeout=float(os.environ.get("SHIPWRIGHT_DEFAULT_TIMEOUT", "600")),
        connect_timeout=float(os.environ.get("SHIPWRIGHT_CONNECT_TIMEOUT", "15")),
        health_poll_interval=float(os.environ.get("SHIPWRIGHT_HEALTH_POLL_INTERVAL", "5")),
        health_timeout=float(os.environ.get("SHIPWRIGHT_HEALTH_TIMEOUT", "120")),
        mail_endpoint=os.environ.get("SHIPWRIGHT_MAIL_ENDPOINT", ""),
        mail_sender=os.environ.get("SHIPWRIGHT_MAIL_SENDER", "shipwright@localhost"),
        log_excerpt_lines=int(os.environ.get("SHIPWRIGHT_LOG_EXCERPT_LINES", "40")),
    )
