"""Default pipeline for a Python web app behind nginx and systemd.

Five stages, each rendered from the RunContext at run time:

  install            apt packages (python3, pip, venv, git, nginx)
  clone              clone, or fetch and hard-reset an existing checkout
  test               build the virtualenv, install requirements, run pytest
  configure-proxy    write the nginx site, validate it, reload nginx
  configure-service  write the systemd unit, reload systemd, restart the app

Rollbacks restore what the stage replaced: the previous git HEAD, the
previous nginx site, the previous unit file (or remove the new ones).
Snapshots live in a per-run directory on the host and are taken once,
so a retried attempt never overwrites them with its own output.
"""

import shlex
from typing import Any, Mapping, Optional

from shipwright.config.deploy_config import StagePolicy
from shipwright.exceptions import ConfigurationError
from shipwright.orchestration.stage import DEFAULT_TIMEOUT_SECONDS, Stage, command_stage
from shipwright.schemas.context import RunContext

INSTALL = "install"
CLONE = "clone"
TEST = "test"
CONFIGURE_PROXY = "configure-proxy"
CONFIGURE_SERVICE = "configure-service"

STAGE_NAMES = [INSTALL, CLONE, TEST, CONFIGURE_PROXY, CONFIGURE_SERVICE]

APT_PACKAGES = ["python3", "python3-pip", "python3-venv", "git", "nginx"]
DEFAULT_WSGI_APP = "app:app"
STATE_ROOT = "/var/tmp/shipwright"
NGINX_SNAPSHOT = "nginx-site"
UNIT_SNAPSHOT = "systemd-unit"
TAKEN_SUFFIX = ".taken"

# Network-bound stages get retries; test never does (exit 1 is terminal anyway).
# Stages without a timeout here use the pipeline default.
DEFAULT_POLICIES: dict[str, dict[str, Any]] = {
    INSTALL: {"max_retries": 2, "retry_backoff": 5.0, "timeout": 900.0},
    CLONE: {"max_retries": 2, "retry_backoff": 3.0, "timeout": 300.0},
    TEST: {"max_retries": 0, "timeout": 1800.0},
    CONFIGURE_PROXY: {"max_retries": 1, "retry_backoff": 2.0},
    CONFIGURE_SERVICE: {"max_retries": 1, "retry_backoff": 2.0},
}

NGINX_SITE_TEMPLATE = """server {{
    listen 80;
    server_name {server_name};

    location / {{
        proxy_pass http://127.0.0.1:{port};
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
    }}
}}
"""

SYSTEMD_UNIT_TEMPLATE = """[Unit]
Description={service} (deployed by shipwright)
After=network.target

[Service]
User={user}
Group=www-data
WorkingDirectory={directory}
Environment="PATH={venv}/bin"
ExecStart={venv}/bin/gunicorn --workers 3 --bind 127.0.0.1:{port} {wsgi_app}
Restart=always

[Install]
WantedBy=multi-user.target
"""


def _q(value: Any) -> str:
    return shlex.quote(str(value))


def _write_file(path: str, content: str) -> str:
    """Command that writes ``content`` to a root-owned ``path``."""
    return f"printf '%s' {_q(content)} | sudo tee {_q(path)} > /dev/null"


def run_state_dir(context: RunContext) -> str:
    """Host directory holding this run's rollback snapshots."""
    return f"{STATE_ROOT}/{context.run_id.hex}"


def snapshot_path(context: RunContext, name: str) -> str:
    return f"{run_state_dir(context)}/{name}"


def _snapshot_file(context: RunContext, path: str, name: str) -> str:
    """Save ``path`` once per run; later attempts keep the first copy."""
    saved = _q(snapshot_path(context, name))
    taken = _q(snapshot_path(context, name + TAKEN_SUFFIX))
    return (
        f"mkdir -p {_q(run_state_dir(context))} && "
        f"if [ ! -f {taken} ]; then "
        f"if [ -f {_q(path)} ]; then sudo cp {_q(path)} {saved}; fi; "
        f"touch {taken}; fi"
    )


def _restore_file(context: RunContext, path: str, name: str, otherwise: str) -> str:
    saved = _q(snapshot_path(context, name))
    return f"if [ -f {saved} ]; then sudo cp {saved} {_q(path)}; else {otherwise}; fi"


def nginx_site_path(context: RunContext) -> str:
    return f"/etc/nginx/sites-available/{context.service_name}"


def systemd_unit_path(context: RunContext) -> str:
    return f"/etc/systemd/system/{context.service_name}.service"


def prev_head_marker(context: RunContext) -> str:
    return snapshot_path(context, "prev_head")


# ---------------------------------------------------------------------------
# Command renderers
# ---------------------------------------------------------------------------


def install_commands(context: RunContext) -> list[str]:
    apt = "sudo DEBIAN_FRONTEND=noninteractive apt-get"
    return [
        f"{apt} update -y",
        f"{apt} install -y {' '.join(APT_PACKAGES)}",
    ]


def clone_commands(context: RunContext) -> list[str]:
    directory = _q(context.app_directory)
    branch = _q(context.branch)
    remote_branch = _q(f"origin/{context.branch}")
    marker = _q(prev_head_marker(context))
    pending = _q(prev_head_marker(context) + ".tmp")
    # An empty marker means there was no checkout before this run
    return [
        f"mkdir -p {_q(run_state_dir(context))} && "
        f"if [ ! -f {marker} ]; then "
        f"if [ -d {directory}/.git ]; then "
        f"git -C {directory} rev-parse HEAD > {pending} && mv {pending} {marker}; "
        f"else : > {marker}; fi; fi",
        f"if [ -d {directory}/.git ]; then "
        f"cd {directory} && git fetch --prune origin "
        f"&& git checkout -B {branch} {remote_branch} "
        f"&& git reset --hard {remote_branch}; "
        f"else git clone --branch {branch} {_q(context.repo_url)} {directory}; fi",
        f"cd {directory} && git rev-parse --short HEAD",
    ]


def clone_rollback_commands(context: RunContext) -> list[str]:
    directory = _q(context.app_directory)
    marker = _q(prev_head_marker(context))
    return [
        f"if [ -s {marker} ]; then "
        f"cd {directory} && git reset --hard \"$(cat {marker})\"; "
        f"elif [ -f {marker} ]; then rm -rf {directory}; fi",
    ]


def test_commands(context: RunContext) -> list[str]:
    directory = _q(context.app_directory)
    venv = _q(context.venv_directory)
    return [
        f"python3 -m venv {venv}",
        f"{venv}/bin/pip install --upgrade pip",
        f"cd {directory} && {venv}/bin/pip install -r requirements.txt",
        f"{venv}/bin/pip install pytest gunicorn",
        f"cd {directory} && {venv}/bin/python -m pytest -q",
    ]


def proxy_commands(context: RunContext) -> list[str]:
    site = nginx_site_path(context)
    enabled = f"/etc/nginx/sites-enabled/{context.service_name}"
    content = NGINX_SITE_TEMPLATE.format(
        server_name=context.target_host, port=context.app_port,
    )
    return [
        _snapshot_file(context, site, NGINX_SNAPSHOT),
        _write_file(site, content),
        f"sudo ln -sf {_q(site)} {_q(enabled)}",
        "sudo rm -f /etc/nginx/sites-enabled/default",
        "sudo nginx -t",
        "sudo systemctl restart nginx",
    ]


def proxy_rollback_commands(context: RunContext) -> list[str]:
    site = nginx_site_path(context)
    enabled = f"/etc/nginx/sites-enabled/{context.service_name}"
    return [
        _restore_file(
            context, site, NGINX_SNAPSHOT,
            otherwise=f"sudo rm -f {_q(site)} {_q(enabled)}",
        ),
        "sudo nginx -t && sudo systemctl reload nginx",
    ]


def service_commands(context: RunContext, wsgi_app: str = DEFAULT_WSGI_APP) -> list[str]:
    unit = systemd_unit_path(context)
    content = SYSTEMD_UNIT_TEMPLATE.format(
        service=context.service_name,
        user=context.ssh_user,
        directory=context.app_directory,
        venv=context.venv_directory,
        port=context.app_port,
        wsgi_app=wsgi_app,
    )
    service = _q(context.service_name)
    return [
        _snapshot_file(context, unit, UNIT_SNAPSHOT),
        _write_file(unit, content),
        "sudo systemctl daemon-reload",
        f"sudo systemctl enable {service}",
        f"sudo systemctl restart {service}",
        f"sudo systemctl is-active {service}",
    ]


def service_rollback_commands(context: RunContext) -> list[str]:
    unit = systemd_unit_path(context)
    service = _q(context.service_name)
    return [
        _restore_file(
            context, unit, UNIT_SNAPSHOT,
            otherwise=f"sudo systemctl disable --now {service} ; sudo rm -f {_q(unit)}",
        )
        + f" && sudo systemctl daemon-reload && sudo systemctl try-restart {service}",
    ]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


def build_web_app_pipeline(
    policies: Optional[Mapping[str, StagePolicy]] = None,
    wsgi_app: str = DEFAULT_WSGI_APP,
    default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[Stage]:
    """Build the five-stage web app pipeline.

    Args:
        policies: Per-stage overrides keyed by stage name. A policy with
            ``enabled: false`` drops that stage.
        wsgi_app: Gunicorn application spec for the systemd unit.
        default_timeout: Timeout for stages that set none.

    Returns:
        Ordered list of Stages.

    Raises:
        ConfigurationError: If a policy names a stage this pipeline lacks.
    """
    policies = policies or {}
    unknown = sorted(set(policies) - set(STAGE_NAMES))
    if unknown:
        raise ConfigurationError(
            f"Unknown stage(s) in policies: {', '.join(unknown)}; "
            f"expected one of: {', '.join(STAGE_NAMES)}"
        )

    def policy(name: str) -> dict[str, Any]:
        defaults = {"timeout": default_timeout, **DEFAULT_POLICIES[name]}
        return policies.get(name, StagePolicy()).apply(defaults)

    candidates = [
        command_stage(
            INSTALL, install_commands,
            description="Install system packages",
            **policy(INSTALL),
        ),
        command_stage(
            CLONE, clone_commands, clone_rollback_commands,
            description="Clone or update the application checkout",
            **policy(CLONE),
        ),
        command_stage(
            TEST, test_commands,
            description="Install requirements and run the test suite",
            **policy(TEST),
        ),
        command_stage(
            CONFIGURE_PROXY, proxy_commands, proxy_rollback_commands,
            description="Configure nginx as reverse proxy",
            **policy(CONFIGURE_PROXY),
        ),
        command_stage(
            CONFIGURE_SERVICE,
            lambda ctx: service_commands(ctx, wsgi_app),
            service_rollback_commands,
            description="Install and restart the systemd service",
            **policy(CONFIGURE_SERVICE),
        ),
    ]
    return [s for s in candidates if policies.get(s.name, StagePolicy()).enabled]
