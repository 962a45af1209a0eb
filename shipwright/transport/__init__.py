"""Remote command execution transports."""

from shipwright.transport.base import Transport
from shipwright.transport.ssh import SshTransport

__all__ = [
    "SshTransport",
    "Transport",
]
