"""Deployment configuration loaded from YAML.

Describes one deployment target: where to connect, what to deploy,
whom to notify, how to probe health, and per-stage retry overrides.
Target values (host, user, paths, repository) have no defaults; a
config missing them is rejected.

Expected YAML structure:
    job_name: webapp
    target:
      host: 203.0.113.10
      user: ubuntu
      identity_file: ~/.ssh/deploy.pem
    app:
      directory: /home/ubuntu/app
      repo_url: https://github.com/example/app.git
      branch: main
      service_name: webapp
      port: 8000
    notify:
      recipients: [ops@example.com]
    health:
      poll_interval: 5
      timeout: 120
    stages:
      clone: {max_retries: 3, retry_backoff: 2}
      test: {timeout: 1200}
"""

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shipwright.exceptions import ConfigurationError
from shipwright.schemas.context import RunContext, SshIdentity


class TargetConfig(BaseModel):
    """SSH endpoint of the deployment host."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    host: str = Field(..., min_length=1)
    user: str = Field(..., min_length=1)
    port: int = Field(default=22, gt=0, lt=65536)
    identity_file: Optional[str] = Field(default=None)
    known_hosts: Optional[str] = Field(default=None)
    use_agent: bool = Field(default=True)


class AppConfig(BaseModel):
    """What is deployed and where it lives on the host."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    directory: str = Field(..., min_length=1)
    repo_url: str = Field(..., min_length=1)
    branch: str = Field(default="main")
    service_name: str = Field(default="app")
    port: int = Field(default=8000, gt=0, lt=65536)


class NotifyConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    recipients: list[str] = Field(default_factory=list)


class HealthConfig(BaseModel):
    """Post-deploy probe settings. Unset values fall back to env settings."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True)
    url: Optional[str] = Field(default=None)
    poll_interval: Optional[float] = Field(default=None, gt=0)
    timeout: Optional[float] = Field(default=None, gt=0)
    healthy_codes: Optional[list[int]] = Field(default=None)


class StagePolicy(BaseModel):
    """Per-stage overrides. Unset fields keep the pipeline's defaults."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    enabled: bool = Field(default=True)
    max_retries: Optional[int] = Field(default=None, ge=0)
    retry_backoff: Optional[float] = Field(default=None, ge=0.0)
    backoff_multiplier: Optional[float] = Field(default=None, ge=1.0)
    timeout: Optional[float] = Field(default=None, gt=0)

    def apply(self, defaults: dict[str, Any]) -> dict[str, Any]:
        """Return ``defaults`` with every explicitly set override applied."""
        merged = dict(defaults)
        overrides = self.model_dump(exclude_none=True, exclude={"enabled"})
        merged.update(overrides)
        return merged


class DeployConfig(BaseModel):
    """Complete deployment definition for one target."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    job_name: str = Field(default="deploy")
    target: TargetConfig
    app: AppConfig
    notify: NotifyConfig = Field(default_factory=NotifyConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    stages: dict[str, StagePolicy] = Field(default_factory=dict)

    def to_run_context(
        self,
        job_name: str | None = None,
        build_number: int = 0,
    ) -> RunContext:
        """Build the immutable RunContext for one run of this config.

        Raises:
            ConfigurationError: If the values do not form a valid context
                (e.g. a relative app directory).
        """
        try:
            return RunContext(
                target_host=self.target.host,
                ssh_user=self.target.user,
                ssh_port=self.target.port,
                ssh_identity=SshIdentity(
                    key_path=_expand(self.target.identity_file),
                    use_agent=self.target.use_agent,
                    known_hosts=_expand(self.target.known_hosts),
                ),
                app_directory=self.app.directory,
                repo_url=self.app.repo_url,
                branch=self.app.branch,
                service_name=self.app.service_name,
                app_port=self.app.port,
                notify_targets=frozenset(self.notify.recipients),
                job_name=job_name or self.job_name,
                build_number=build_number,
                health_url=self.health.url,
            )
        except ValidationError as e:
            raise ConfigurationError(f"Invalid run context: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DeployConfig":
        """Load a deployment config from a YAML file.

        Raises:
            ConfigurationError: If the file is missing, is not valid YAML,
                or does not describe a complete deployment.
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Deployment config not found: {path}")

        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "DeployConfig":
        """Create a config from a plain dictionary (useful for testing)."""
        if not isinstance(raw, dict):
            raise ConfigurationError("Deployment config must be a mapping")
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid deployment config: {e}") from e


def _expand(path: Optional[str]) -> Optional[str]:
    if path is None:
        return None
    return str(Path(path).expanduser())
