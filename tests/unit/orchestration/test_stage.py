"""Tests for Stage descriptors and command-backed stages.

Tests cover:
  - Stage policy validation
  - Attempt and backoff arithmetic
  - Command spec rendering (string, list, callable)
  - Sequential command execution and exit-code classification
  - command_stage action/rollback wiring
"""

import pytest

from shipwright.exceptions import ApplicationError, PipelineDefinitionError, TransportConnectionError
from shipwright.orchestration.stage import Stage, command_stage, render_commands, run_commands
from shipwright.schemas.report import CommandResult
from tests.fixtures.transport import FakeTransport


async def _noop(context, transport) -> CommandResult:
    return CommandResult()


# ===========================================================================
# Validation
# ===========================================================================

class TestStageValidation:
    def test_defaults(self):
        stage = Stage(name="install", action=_noop)
        assert stage.max_retries == 0
        assert stage.max_attempts == 1
        assert stage.rollback is None
        assert stage.has_rollback is False

    def test_empty_name_rejected(self):
        with pytest.raises(PipelineDefinitionError):
            Stage(name="", action=_noop)

    def test_negative_retries_rejected(self):
        with pytest.raises(PipelineDefinitionError, match="max_retries"):
            Stage(name="clone", action=_noop, max_retries=-1)

    def test_negative_backoff_rejected(self):
        with pytest.raises(PipelineDefinitionError, match="retry_backoff"):
            Stage(name="clone", action=_noop, retry_backoff=-0.5)

    def test_shrinking_multiplier_rejected(self):
        with pytest.raises(PipelineDefinitionError, match="backoff_multiplier"):
            Stage(name="clone", action=_noop, backoff_multiplier=0.5)

    def test_zero_timeout_rejected(self):
        with pytest.raises(PipelineDefinitionError, match="timeout"):
            Stage(name="clone", action=_noop, timeout=0)

    def test_error_carries_stage_name(self):
        with pytest.raises(PipelineDefinitionError) as exc_info:
            Stage(name="clone", action=_noop, max_retries=-3)
        assert exc_info.value.stage == "clone"


class TestBackoff:
    def test_max_attempts_counts_first_try(self):
        assert Stage(name="s", action=_noop, max_retries=3).max_attempts == 4

    def test_exponential_growth(self):
        stage = Stage(name="s", action=_noop, retry_backoff=2.0, backoff_multiplier=3.0)
        assert stage.backoff_for(1) == 2.0
        assert stage.backoff_for(2) == 6.0
        assert stage.backoff_for(3) == 18.0

    def test_fixed_delay(self):
        stage = Stage(name="s", action=_noop, retry_backoff=1.5, backoff_multiplier=1.0)
        assert [stage.backoff_for(n) for n in (1, 2, 3)] == [1.5, 1.5, 1.5]


# ===========================================================================
# Command rendering and execution
# ===========================================================================

class TestRenderCommands:
    def test_string(self, run_context):
        assert render_commands("uptime", run_context) == ["uptime"]

    def test_list(self, run_context):
        assert render_commands(["a", "b"], run_context) == ["a", "b"]

    def test_callable(self, run_context):
        rendered = render_commands(lambda ctx: f"ls {ctx.app_directory}", run_context)
        assert rendered == ["ls /home/ubuntu/app"]

    def test_callable_returning_list(self, run_context):
        rendered = render_commands(lambda ctx: [ctx.target_host, ctx.ssh_user], run_context)
        assert rendered == ["203.0.113.10", "ubuntu"]


class TestRunCommands:
    @pytest.mark.asyncio
    async def test_runs_in_order_and_concatenates_output(self):
        transport = FakeTransport()
        result = await run_commands(["one", "two"], transport, timeout=5.0, stage_name="s")

        assert transport.calls == ["one", "two"]
        assert result.stdout == "ran: one\nran: two\n"
        assert result.exit_code == 0
        assert result.command == "one && two"

    @pytest.mark.asyncio
    async def test_passes_timeout_to_transport(self):
        transport = FakeTransport()
        await run_commands(["one"], transport, timeout=42.0, stage_name="s")
        assert transport.timeouts == [42.0]

    @pytest.mark.asyncio
    async def test_nonzero_exit_raises_and_stops(self):
        transport = FakeTransport({"pytest": [1]})
        with pytest.raises(ApplicationError) as exc_info:
            await run_commands(
                ["pip install -r requirements.txt", "python -m pytest", "echo done"],
                transport,
                timeout=5.0,
                stage_name="test",
            )

        err = exc_info.value
        assert err.exit_code == 1
        assert err.stage == "test"
        assert err.command == "python -m pytest"
        assert "failed with 1" in err.stderr
        assert "ran: pip install" in err.stdout
        assert transport.calls_matching("echo done") == []

    @pytest.mark.asyncio
    async def test_custom_success_codes(self):
        transport = FakeTransport({"grep": [1]})
        result = await run_commands(
            ["grep -q x file"], transport, timeout=5.0, stage_name="s",
            success_codes=frozenset({0, 1}),
        )
        assert result.exit_code == 1

    @pytest.mark.asyncio
    async def test_transport_errors_propagate(self):
        transport = FakeTransport({"apt-get": [TransportConnectionError("reset")]})
        with pytest.raises(TransportConnectionError):
            await run_commands(["apt-get update"], transport, timeout=5.0, stage_name="install")


# ===========================================================================
# command_stage
# ===========================================================================

class TestCommandStage:
    @pytest.mark.asyncio
    async def test_action_renders_from_context(self, run_context):
        transport = FakeTransport()
        stage = command_stage("probe", lambda ctx: f"ping -c1 {ctx.target_host}", timeout=30.0)

        result = await stage.action(run_context, transport)

        assert transport.calls == ["ping -c1 203.0.113.10"]
        assert transport.timeouts == [30.0]
        assert result.ok

    def test_no_rollback_command_means_no_rollback(self):
        stage = command_stage("install", "apt-get update")
        assert stage.rollback is None

    @pytest.mark.asyncio
    async def test_rollback_runs_rollback_commands(self, run_context):
        transport = FakeTransport()
        stage = command_stage(
            "clone",
            "git clone repo app",
            rollback_command=lambda ctx: f"rm -rf {ctx.app_directory}",
        )

        assert stage.has_rollback
        await stage.rollback(run_context, transport)
        assert transport.calls == ["rm -rf /home/ubuntu/app"]

    @pytest.mark.asyncio
    async def test_rollback_failure_raises(self, run_context):
        transport = FakeTransport({"rm -rf": [2]})
        stage = command_stage("clone", "git clone", rollback_command="rm -rf /x")
        with pytest.raises(ApplicationError):
            await stage.rollback(run_context, transport)

    def test_policy_fields_forwarded(self):
        stage = command_stage(
            "clone", "git pull",
            max_retries=3, retry_backoff=0.5, backoff_multiplier=1.5, timeout=60.0,
            description="Update checkout",
        )
        assert stage.max_retries == 3
        assert stage.retry_backoff == 0.5
        assert stage.backoff_multiplier == 1.5
        assert stage.timeout == 60.0
        assert stage.description == "Update checkout"
