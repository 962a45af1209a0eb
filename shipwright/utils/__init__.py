"""Shipwright utilities — logging setup and output redaction."""

from shipwright.utils.logging import configure_logging, get_logger
from shipwright.utils.redaction import redact_text, redact_url

__all__ = [
    "configure_logging",
    "get_logger",
    "redact_text",
    "redact_url",
]
