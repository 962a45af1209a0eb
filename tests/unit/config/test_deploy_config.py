"""Tests for DeployConfig — YAML loading and RunContext construction."""

import os
from pathlib import Path, PurePosixPath

import pytest

from shipwright.config.deploy_config import DeployConfig, StagePolicy
from shipwright.exceptions import ConfigurationError


class TestFromDict:
    def test_valid_config(self, sample_config_dict):
        config = DeployConfig.from_dict(sample_config_dict)

        assert config.job_name == "webapp-deploy"
        assert config.target.host == "203.0.113.10"
        assert config.target.port == 22
        assert config.app.branch == "main"
        assert config.health.enabled is True

    def test_missing_target_rejected(self, sample_config_dict):
        del sample_config_dict["target"]
        with pytest.raises(ConfigurationError, match="Invalid deployment config"):
            DeployConfig.from_dict(sample_config_dict)

    def test_unknown_key_rejected(self, sample_config_dict):
        sample_config_dict["target"]["hostname"] = "typo"
        with pytest.raises(ConfigurationError):
            DeployConfig.from_dict(sample_config_dict)

    def test_non_mapping_rejected(self):
        with pytest.raises(ConfigurationError, match="mapping"):
            DeployConfig.from_dict(["not", "a", "dict"])  # type: ignore[arg-type]

    def test_bad_port_rejected(self, sample_config_dict):
        sample_config_dict["target"]["port"] = 70000
        with pytest.raises(ConfigurationError):
            DeployConfig.from_dict(sample_config_dict)


class TestFromYaml:
    def test_loads_file(self, tmp_path: Path):
        path = tmp_path / "deploy.yaml"
        path.write_text(
            "job_name: api\n"
            "target:\n"
            "  host: 198.51.100.7\n"
            "  user: deploy\n"
            "app:\n"
            "  directory: /srv/api\n"
            "  repo_url: https://github.com/example/api.git\n"
            "stages:\n"
            "  test: {enabled: false}\n"
        )
        config = DeployConfig.from_yaml(path)

        assert config.job_name == "api"
        assert config.stages["test"].enabled is False
        assert "clone" not in config.stages

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="not found"):
            DeployConfig.from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "broken.yaml"
        path.write_text("target: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            DeployConfig.from_yaml(path)

    def test_empty_file_rejected(self, tmp_path: Path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigurationError):
            DeployConfig.from_yaml(path)


class TestToRunContext:
    def test_builds_context(self, sample_config_dict):
        context = DeployConfig.from_dict(sample_config_dict).to_run_context(build_number=7)

        assert context.target_host == "203.0.113.10"
        assert context.ssh_user == "ubuntu"
        assert context.app_directory == PurePosixPath("/home/ubuntu/app")
        assert context.notify_targets == frozenset({"ops@example.com", "dev@example.com"})
        assert context.job_name == "webapp-deploy"
        assert context.build_number == 7
        assert context.deployment_url == "http://203.0.113.10/"

    def test_job_name_override(self, sample_config_dict):
        context = DeployConfig.from_dict(sample_config_dict).to_run_context(job_name="hotfix")
        assert context.job_name == "hotfix"

    def test_identity_file_expanded(self, sample_config_dict):
        context = DeployConfig.from_dict(sample_config_dict).to_run_context()
        assert context.ssh_identity.key_path == os.path.expanduser("~/.ssh/deploy.pem")
        assert "~" not in context.ssh_identity.key_path

    def test_health_url_used_for_deployment_url(self, sample_config_dict):
        sample_config_dict["health"] = {"url": "https://app.example.com/healthz"}
        context = DeployConfig.from_dict(sample_config_dict).to_run_context()
        assert context.deployment_url == "https://app.example.com/healthz"

    def test_relative_directory_rejected(self, sample_config_dict):
        sample_config_dict["app"]["directory"] = "app"
        config = DeployConfig.from_dict(sample_config_dict)
        with pytest.raises(ConfigurationError, match="Invalid run context"):
            config.to_run_context()


class TestStagePolicy:
    def test_apply_overrides_only_set_fields(self):
        policy = StagePolicy(max_retries=5)
        merged = policy.apply({"max_retries": 1, "timeout": 300.0})
        assert merged == {"max_retries": 5, "timeout": 300.0}

    def test_enabled_not_merged(self):
        assert "enabled" not in StagePolicy(enabled=False).apply({})

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            StagePolicy(max_retries=-1)
