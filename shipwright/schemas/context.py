"""RunContext — immutable per-run deployment configuration.

Built once per run and passed explicitly to every stage, the
transport, the health verifier, and the reporter. Nothing here is
read from process-wide state.
"""

import ipaddress
from pathlib import PurePosixPath
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SshIdentity(BaseModel):
    """Opaque handle to SSH credentials.

    Points at key material (a file or the running ssh-agent); never
    holds the key itself.
    """

    model_config = ConfigDict(frozen=True)

    key_path: Optional[str] = Field(
        default=None,
        description="Path to a private key file on the controller",
    )
    use_agent: bool = Field(
        default=True,
        description="Offer keys from the local ssh-agent",
    )
    known_hosts: Optional[str] = Field(
        default=None,
        description="known_hosts file; None uses the user's default",
    )


class RunContext(BaseModel):
    """Everything a deployment run needs to know about its target."""

    model_config = ConfigDict(frozen=True)

    target_host: str = Field(..., min_length=1)
    ssh_user: str = Field(..., min_length=1)
    ssh_port: int = Field(default=22, gt=0, lt=65536)
    ssh_identity: SshIdentity = Field(default_factory=SshIdentity)
    app_directory: PurePosixPath = Field(...)
    repo_url: str = Field(..., min_length=1)
    branch: str = Field(default="main")
    service_name: str = Field(default="app")
    app_port: int = Field(default=8000, gt=0, lt=65536)
    notify_targets: frozenset[str] = Field(default_factory=frozenset)
    job_name: str = Field(default="deploy")
    build_number: int = Field(default=0, ge=0)
    health_url: Optional[str] = Field(
        default=None,
        description="Probe URL; None means http://<target_host>/",
    )
    run_id: UUID = Field(
        default_factory=uuid4,
        description="Identifies this run in logs, the report, and host-side snapshots",
    )

    @field_validator("app_directory")
    @classmethod
    def _absolute_directory(cls, v: PurePosixPath) -> PurePosixPath:
        if not v.is_absolute():
            raise ValueError(f"app_directory must be absolute, got {v}")
        return v

    @property
    def deployment_url(self) -> str:
        if self.health_url:
            return self.health_url
        host = self.target_host
        try:
            address = ipaddress.ip_address(host)
        except ValueError:
            address = None  # hostname
        if isinstance(address, ipaddress.IPv6Address):
            host = f"[{host}]"
        return f"http://{host}/"

    @property
    def venv_directory(self) -> PurePosixPath:
        return self.app_directory / "venv"
