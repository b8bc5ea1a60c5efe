"""Unit tests for the infrastructure CLI runner.

Tests argument construction, environment hand-off, output streaming, exit
code handling, timeout enforcement and OS error handling.
"""

import asyncio
import io
import sys
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from prometheus_client import CollectorRegistry

from src.lifecycle.errors import InfrastructureToolError
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.runner.cdk import InfrastructureRunner
from src.lifecycle.runner.environment import DeploymentEnvironment
from src.lifecycle.webhook.models import BranchIdentity


def run_async(coro):
    return asyncio.run(coro)


@pytest.fixture
def environment():
    return DeploymentEnvironment(
        variables={"BRANCH_NAME": "feature-login", "PATH": "/usr/bin"},
        branch=BranchIdentity(raw="feature/login"),
    )


@pytest.fixture
def streams():
    return io.StringIO(), io.StringIO()


@pytest.fixture
def runner(streams):
    out, err = streams
    return InfrastructureRunner(["npx", "cdk"], stdout=out, stderr=err)


def _make_mock_process(
    returncode: int = 0,
    stdout_lines: Optional[List[bytes]] = None,
    stderr_lines: Optional[List[bytes]] = None,
):
    """Build a mock subprocess with readable stdout/stderr streams."""
    process = AsyncMock()
    process.returncode = returncode
    process.kill = MagicMock()

    stdout_reader = AsyncMock()
    stdout_reader.read = AsyncMock(side_effect=list(stdout_lines or []) + [b""])
    stderr_reader = AsyncMock()
    stderr_reader.read = AsyncMock(side_effect=list(stderr_lines or []) + [b""])

    process.stdout = stdout_reader
    process.stderr = stderr_reader
    process.wait = AsyncMock()
    return process


class TestArguments:
    def test_deploy_selects_all_stacks(self, runner):
        assert runner.build_args("deploy", "*") == [
            "npx", "cdk", "deploy", "*",
            "--require-approval", "never", "--output", "cdk.out",
        ]

    def test_deploy_invocation(self, runner, environment):
        process = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=process) as create:
            run_async(runner.deploy(environment))

        args = create.call_args.args
        assert args[:4] == ("npx", "cdk", "deploy", "*")
        assert create.call_args.kwargs["env"] == {
            "BRANCH_NAME": "feature-login",
            "PATH": "/usr/bin",
        }
        assert create.call_args.kwargs["stdout"] == asyncio.subprocess.PIPE

    def test_destroy_is_scoped_to_branch_stacks(self, runner, environment):
        process = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=process) as create:
            run_async(runner.destroy(environment))

        args = list(create.call_args.args)
        assert args[2:4] == ["destroy", "feature-login-*"]
        assert "--exclusively" in args
        assert "--force" in args
        assert args[-4:] == ["--require-approval", "never", "--output", "cdk.out"]

    def test_custom_output_dir(self, environment):
        runner = InfrastructureRunner(["cdk"], output_dir="/tmp/out")

        assert runner.build_args("deploy", "*")[-2:] == ["--output", "/tmp/out"]


class TestSuccessfulExecution:
    def test_zero_exit_returns_result(self, runner, environment):
        process = _make_mock_process(
            stdout_lines=[b"Synthesizing...\n", b"Deployed.\n"],
        )
        with patch("asyncio.create_subprocess_exec", return_value=process):
            result = run_async(runner.deploy(environment))

        assert result.exit_code == 0
        assert result.command == "deploy"
        assert "Deployed." in result.stdout
        assert result.duration_seconds >= 0

    def test_output_is_streamed_to_caller(self, runner, environment, streams):
        out, err = streams
        process = _make_mock_process(
            stdout_lines=[b"stack ok\n"],
            stderr_lines=[b"warning: deprecated\n"],
        )
        with patch("asyncio.create_subprocess_exec", return_value=process):
            run_async(runner.deploy(environment))

        assert out.getvalue() == "stack ok\n"
        assert err.getvalue() == "warning: deprecated\n"

    def test_undecodable_output_is_replaced(self, runner, environment):
        process = _make_mock_process(stdout_lines=[b"bad \xff byte\n"])
        with patch("asyncio.create_subprocess_exec", return_value=process):
            result = run_async(runner.deploy(environment))

        assert "bad" in result.stdout

    def test_duration_recorded(self, environment):
        metrics = LifecycleMetrics(registry=CollectorRegistry())
        runner = InfrastructureRunner(
            ["cdk"], stdout=io.StringIO(), stderr=io.StringIO(), metrics=metrics
        )
        process = _make_mock_process()
        with patch("asyncio.create_subprocess_exec", return_value=process):
            run_async(runner.deploy(environment))

        count = metrics.registry.get_sample_value(
            "lifecycle_infrastructure_tool_duration_seconds_count",
            {"command": "deploy"},
        )
        assert count == 1.0


class TestFailedExecution:
    def test_nonzero_exit_raises_with_stderr(self, runner, environment):
        process = _make_mock_process(
            returncode=1,
            stderr_lines=[b"Stack feature-login-PipelineStack failed\n"],
        )
        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(InfrastructureToolError) as exc_info:
                run_async(runner.deploy(environment))

        assert exc_info.value.exit_code == 1
        assert exc_info.value.command == "deploy"
        assert "PipelineStack failed" in exc_info.value.stderr

    def test_destroy_failure_reports_destroy(self, runner, environment):
        process = _make_mock_process(returncode=2)
        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(InfrastructureToolError) as exc_info:
                run_async(runner.destroy(environment))

        assert exc_info.value.command == "destroy"
        assert exc_info.value.exit_code == 2


class TestLongOutput:
    def test_line_split_across_chunks_is_reassembled(self, runner, environment):
        process = _make_mock_process(
            stdout_lines=[b"first li", b"ne\nsecond ", b"line\ntrailing"],
        )
        with patch("asyncio.create_subprocess_exec", return_value=process):
            result = run_async(runner.deploy(environment))

        assert result.stdout.split("\n") == ["first line", "second line", "trailing"]

    def test_line_longer_than_stream_limit_from_real_child(self, environment):
        out = io.StringIO()
        script = "import sys; sys.stdout.write('x' * 100000); sys.stdout.flush()"
        runner = InfrastructureRunner(
            [sys.executable, "-c", script], stdout=out, stderr=io.StringIO()
        )

        result = run_async(runner.deploy(environment))

        assert result.exit_code == 0
        assert result.stdout == "x" * 100000
        assert out.getvalue() == "x" * 100000 + "\n"


class TestTimeoutEnforcement:
    @staticmethod
    def _hanging_process(stderr_before_hang=None):
        process = AsyncMock()
        process.returncode = None
        process.kill = MagicMock()
        process.wait = AsyncMock(return_value=-9)

        async def hang_forever(*args):
            await asyncio.sleep(100)
            return b""

        stderr_chunks = list(stderr_before_hang or [])

        async def stderr_then_hang(*args):
            if stderr_chunks:
                return stderr_chunks.pop(0)
            return await hang_forever()

        stdout_reader = AsyncMock()
        stdout_reader.read = hang_forever
        stderr_reader = AsyncMock()
        stderr_reader.read = stderr_then_hang
        process.stdout = stdout_reader
        process.stderr = stderr_reader
        return process

    def test_timeout_kills_and_reaps_process(self, environment):
        runner = InfrastructureRunner(
            ["cdk"], timeout_seconds=0.05, stdout=io.StringIO(), stderr=io.StringIO()
        )
        process = self._hanging_process()

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(InfrastructureToolError) as exc_info:
                run_async(runner.deploy(environment))

        process.kill.assert_called_once()
        process.wait.assert_awaited()
        assert exc_info.value.exit_code == -1
        assert "timed out" in exc_info.value.stderr

    def test_timeout_error_carries_partial_stderr(self, environment):
        runner = InfrastructureRunner(
            ["cdk"], timeout_seconds=0.05, stdout=io.StringIO(), stderr=io.StringIO()
        )
        process = self._hanging_process(
            stderr_before_hang=[b"Waiting for feature-login-PipelineStack\n"]
        )

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(InfrastructureToolError) as exc_info:
                run_async(runner.deploy(environment))

        assert "timed out" in exc_info.value.stderr
        assert "Waiting for feature-login-PipelineStack" in exc_info.value.stderr

    def test_real_child_is_reaped_after_timeout(self, environment):
        runner = InfrastructureRunner(
            [sys.executable, "-c", "import time; time.sleep(30)"],
            timeout_seconds=0.5,
            stdout=io.StringIO(),
            stderr=io.StringIO(),
        )
        started = []
        original = asyncio.create_subprocess_exec

        async def spawn(*args, **kwargs):
            process = await original(*args, **kwargs)
            started.append(process)
            return process

        with patch("asyncio.create_subprocess_exec", side_effect=spawn):
            with pytest.raises(InfrastructureToolError):
                run_async(runner.deploy(environment))

        assert started[0].returncode is not None


class TestUnexpectedStreamFailure:
    def test_process_is_killed_when_reading_fails(self, runner, environment):
        process = _make_mock_process()
        process.returncode = None
        process.stdout.read = AsyncMock(side_effect=RuntimeError("stream closed"))

        with patch("asyncio.create_subprocess_exec", return_value=process):
            with pytest.raises(RuntimeError):
                run_async(runner.deploy(environment))

        process.kill.assert_called_once()
        process.wait.assert_awaited()


class TestOSErrorHandling:
    def test_missing_executable_raises(self, runner, environment):
        with patch(
            "asyncio.create_subprocess_exec",
            side_effect=OSError("No such file or directory"),
        ):
            with pytest.raises(InfrastructureToolError) as exc_info:
                run_async(runner.deploy(environment))

        assert exc_info.value.exit_code == -1
        assert "Failed to start npx" in exc_info.value.stderr
        assert isinstance(exc_info.value.__cause__, OSError)
