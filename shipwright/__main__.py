"""Shipwright CLI — entry point for running deployments.

Usage:
    python -m shipwright --config deploy.yaml deploy            Run the pipeline
    python -m shipwright --config deploy.yaml deploy --dry-run  Show what would run
    python -m shipwright --config deploy.yaml check-health      Probe the endpoint only
    python -m shipwright --config deploy.yaml list-stages       List stages and policies
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path

import structlog

from shipwright.config.deploy_config import DeployConfig
from shipwright.config.settings import ShipwrightSettings, get_settings
from shipwright.exceptions import ConfigurationError
from shipwright.infra.mail_client import HttpMailClient, LogMailClient, MailClient
from shipwright.orchestration.runner import DeploymentRunner
from shipwright.orchestration.stage import Stage, render_commands
from shipwright.pipelines import web_app
from shipwright.reporting.reporter import Reporter
from shipwright.schemas.enums import HealthStatus, RunStatus
from shipwright.services.health import DEFAULT_HEALTHY_CODES, HealthVerifier
from shipwright.transport.ssh import SshTransport
from shipwright.utils.logging import configure_logging

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path("deploy.yaml")

EXIT_CODES = {
    RunStatus.SUCCEEDED: 0,
    RunStatus.FAILED: 1,
    RunStatus.CANCELLED: 130,
}
EXIT_CONFIG_ERROR = 2


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="shipwright",
        description="Shipwright — multi-stage remote deployment orchestrator",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the deployment YAML file",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: SHIPWRIGHT_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Human-readable logs instead of JSON",
    )
    parser.add_argument(
        "--job-name",
        default=None,
        help="Job identifier used in logs and notifications",
    )
    parser.add_argument(
        "--build-number",
        type=int,
        default=0,
        help="Build/run number used in logs and notifications",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # deploy
    deploy = subparsers.add_parser("deploy", help="Run the deployment pipeline")
    deploy.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the rendered commands without connecting",
    )
    deploy.add_argument(
        "--no-rollback",
        action="store_true",
        help="Halt and report on failure without unwinding completed stages",
    )

    # check-health
    health = subparsers.add_parser("check-health", help="Probe the deployed endpoint")
    health.add_argument("--url", default=None, help="Override the probe URL")
    health.add_argument("--timeout", type=float, default=None, help="Overall timeout in seconds")
    health.add_argument("--interval", type=float, default=None, help="Seconds between probes")

    # list-stages
    subparsers.add_parser("list-stages", help="List pipeline stages and their policies")

    return parser.parse_args(argv)


def _build_health_verifier(config: DeployConfig, settings: ShipwrightSettings) -> HealthVerifier:
    health = config.health
    return HealthVerifier(
        poll_interval=health.poll_interval or settings.health_poll_interval,
        overall_timeout=health.timeout or settings.health_timeout,
        healthy_codes=health.healthy_codes or DEFAULT_HEALTHY_CODES,
    )


def _build_mail_client(settings: ShipwrightSettings) -> MailClient:
    if settings.has_mail_relay():
        return HttpMailClient(settings.mail_endpoint, sender=settings.mail_sender)
    return LogMailClient()


def _build_stages(config: DeployConfig, settings: ShipwrightSettings) -> list[Stage]:
    return web_app.build_web_app_pipeline(config.stages, default_timeout=settings.default_timeout)


def _build_runner(
    args: argparse.Namespace,
    config: DeployConfig,
    settings: ShipwrightSettings,
) -> DeploymentRunner:
    """Build the runner from config, settings, and CLI flags."""
    return DeploymentRunner(
        stages=_build_stages(config, settings),
        transport_factory=lambda ctx: SshTransport(
            ctx, connect_timeout=settings.connect_timeout,
        ),
        health_verifier=(
            _build_health_verifier(config, settings) if config.health.enabled else None
        ),
        reporter=Reporter(
            _build_mail_client(settings),
            excerpt_lines=settings.log_excerpt_lines,
        ),
        rollback_on_failure=not args.no_rollback,
    )


async def _cmd_deploy(args: argparse.Namespace, config: DeployConfig, settings: ShipwrightSettings) -> int:
    """Run the full pipeline once."""
    context = config.to_run_context(args.job_name, args.build_number)
    runner = _build_runner(args, config, settings)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, runner.request_cancel)

    report = await runner.run(context)

    logger.info(
        "Deployment finished",
        run_id=str(report.run_id),
        status=report.status.value,
        health=report.health.status.value,
        succeeded=report.succeeded_count,
        failed=report.failed_count,
        rolled_back=report.rolled_back_count,
        duration_ms=round(report.total_duration_ms, 1),
    )
    return EXIT_CODES[report.status]


def _cmd_dry_run(args: argparse.Namespace, config: DeployConfig, settings: ShipwrightSettings) -> int:
    """Print the commands each stage would run."""
    context = config.to_run_context(args.job_name, args.build_number)
    renderers = {
        web_app.INSTALL: web_app.install_commands,
        web_app.CLONE: web_app.clone_commands,
        web_app.TEST: web_app.test_commands,
        web_app.CONFIGURE_PROXY: web_app.proxy_commands,
        web_app.CONFIGURE_SERVICE: web_app.service_commands,
    }

    print(f"\nDry run: {context.job_name} #{context.build_number} → "
          f"{context.ssh_user}@{context.target_host}:{context.ssh_port}\n")
    for stage in _build_stages(config, settings):
        print(f"[{stage.name}] {stage.description}")
        for command in render_commands(renderers[stage.name], context):
            print(f"    $ {command}")
        print()
    return 0


async def _cmd_check_health(args: argparse.Namespace, config: DeployConfig, settings: ShipwrightSettings) -> int:
    """Probe the endpoint without deploying."""
    context = config.to_run_context(args.job_name, args.build_number)
    verifier = _build_health_verifier(config, settings)
    result = await verifier.verify(
        args.url or context.deployment_url,
        poll_interval=args.interval,
        overall_timeout=args.timeout,
    )
    print(
        f"{result.url}: {result.status.value} "
        f"(attempts={result.attempts}, last_status={result.last_status_code}, "
        f"elapsed={result.elapsed_ms / 1000.0:.1f}s)"
    )
    return 0 if result.status == HealthStatus.HEALTHY else 1


def _cmd_list_stages(config: DeployConfig, settings: ShipwrightSettings) -> int:
    """List the configured stages and their retry policies."""
    stages = _build_stages(config, settings)
    print(f"\n{'Stage':<20} {'Retries':<8} {'Backoff':<10} {'Timeout':<9} {'Rollback'}")
    print("-" * 60)
    for stage in stages:
        backoff = f"{stage.retry_backoff:g}s x{stage.backoff_multiplier:g}"
        print(
            f"{stage.name:<20} {stage.max_retries:<8} {backoff:<10} "
            f"{stage.timeout:<9g} {'yes' if stage.has_rollback else 'no'}"
        )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    configure_logging(
        json_output=settings.log_json and not args.console_logs,
        level=args.log_level or settings.log_level,
    )

    try:
        config = DeployConfig.from_yaml(args.config)
        if args.command == "list-stages":
            return _cmd_list_stages(config, settings)
        elif args.command == "check-health":
            return asyncio.run(_cmd_check_health(args, config, settings))
        elif args.command == "deploy":
            if args.dry_run:
                return _cmd_dry_run(args, config, settings)
            return asyncio.run(_cmd_deploy(args, config, settings))
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return 1
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
