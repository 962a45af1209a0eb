"""Notification rendering and delivery."""

from shipwright.reporting.reporter import NotificationPayload, Reporter, StageSummary

__all__ = [
    "NotificationPayload",
    "Reporter",
    "StageSummary",
]
