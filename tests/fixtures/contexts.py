"""Sample RunContexts and deployment configs."""

from pathlib import PurePosixPath

from shipwright.schemas.context import RunContext, SshIdentity

SAMPLE_HOST = "203.0.113.10"
SAMPLE_APP_DIR = "/home/ubuntu/app"
SAMPLE_REPO = "https://github.com/example/app.git"


def make_context(**overrides) -> RunContext:
    values = {
        "target_host": SAMPLE_HOST,
        "ssh_user": "ubuntu",
        "ssh_identity": SshIdentity(key_path="/keys/deploy.pem"),
        "app_directory": PurePosixPath(SAMPLE_APP_DIR),
        "repo_url": SAMPLE_REPO,
        "service_name": "webapp",
        "notify_targets": frozenset({"ops@example.com"}),
        "job_name": "webapp-deploy",
        "build_number": 42,
    }
    values.update(overrides)
    return RunContext(**values)


def sample_config() -> dict:
    """Raw deployment config as it would be loaded from YAML."""
    return {
        "job_name": "webapp-deploy",
        "target": {
            "host": SAMPLE_HOST,
            "user": "ubuntu",
            "identity_file": "~/.ssh/deploy.pem",
        },
        "app": {
            "directory": SAMPLE_APP_DIR,
            "repo_url": SAMPLE_REPO,
            "service_name": "webapp",
        },
        "notify": {"recipients": ["ops@example.com", "dev@example.com"]},
        "stages": {
            "clone": {"max_retries": 4, "retry_backoff": 0.5},
        },
    }
