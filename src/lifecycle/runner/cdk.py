"""Infrastructure CLI subprocess supervision.

Executes the CDK CLI as an async subprocess with an explicit environment,
streaming its output to the caller's stdout/stderr and to logging, and
turning a non-zero exit into an InfrastructureToolError that carries the
accumulated standard error.

Command line:
    <cdk command> <deploy|destroy> <selector> [extra args]
        --require-approval never --output <dir>
"""

import asyncio
import logging
import sys
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence, TextIO

from src.lifecycle.errors import InfrastructureToolError
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.runner.environment import DeploymentEnvironment

logger = logging.getLogger(__name__)


DEPLOY = "deploy"
DESTROY = "destroy"
ALL_STACKS = "*"

# Output is read in chunks; CDK can print single lines beyond the 64 KiB
# StreamReader limit (e.g. synthesized template diffs)
READ_CHUNK_SIZE = 64 * 1024


@dataclass
class InfrastructureResult:
    """Result of a successful infrastructure CLI execution.

    Attributes:
        command: The CLI subcommand that ran.
        exit_code: Process exit code (always 0 for returned results).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_seconds: Wall-clock execution time.
    """

    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float


class InfrastructureRunner:
    """Runs the infrastructure CLI as a supervised child process.

    One call runs one process and blocks until it exits. Concurrent calls
    are independent; calls for the same branch are not deduplicated.

    Attributes:
        command: Executable and leading arguments (e.g. ``["npx", "cdk"]``).
        output_dir: Directory passed to ``--output``.
        timeout_seconds: Kill the process after this many seconds; None
                         waits indefinitely.
        stdout: Stream receiving the child's stdout (default sys.stdout).
        stderr: Stream receiving the child's stderr (default sys.stderr).
        metrics: Optional metrics sink for run durations.
    """

    def __init__(
        self,
        command: Sequence[str],
        output_dir: str = "cdk.out",
        timeout_seconds: Optional[int] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        metrics: Optional[LifecycleMetrics] = None,
    ):
        self.command = list(command)
        self.output_dir = output_dir
        self.timeout_seconds = timeout_seconds
        self.stdout = stdout
        self.stderr = stderr
        self.metrics = metrics

    async def deploy(self, environment: DeploymentEnvironment) -> InfrastructureResult:
        """Deploy every stack of the CDK app for the environment's branch."""
        return await self.run(DEPLOY, environment, ALL_STACKS)

    async def destroy(self, environment: DeploymentEnvironment) -> InfrastructureResult:
        """Destroy only the stacks belonging to the environment's branch.

        The selector is restricted to ``<sanitizedBranch>-*`` and marked
        exclusive so shared stacks (the repository artifact bucket) survive.
        """
        selector = f"{environment.branch.sanitized}-*"
        return await self.run(
            DESTROY, environment, selector, ["--exclusively", "--force"]
        )

    def build_args(
        self,
        subcommand: str,
        selector: str,
        extra_args: Sequence[str] = (),
    ) -> List[str]:
        """Build the full argument vector for a CLI invocation."""
        return [
            *self.command,
            subcommand,
            selector,
            *extra_args,
            "--require-approval",
            "never",
            "--output",
            self.output_dir,
        ]

    async def run(
        self,
        subcommand: str,
        environment: DeploymentEnvironment,
        selector: str = ALL_STACKS,
        extra_args: Sequence[str] = (),
    ) -> InfrastructureResult:
        """Execute the CLI and wait for it to exit.

        Args:
            subcommand: "deploy" or "destroy".
            environment: Complete environment for the child process.
            selector: Stack selector.
            extra_args: Additional arguments placed after the selector.

        Returns:
            InfrastructureResult when the process exits with status 0.

        Raises:
            InfrastructureToolError: On non-zero exit, timeout, or when the
                executable cannot be started.
        """
        args = self.build_args(subcommand, selector, extra_args)
        start_time = time.monotonic()
        process = None
        exited = False
        stdout_lines: List[str] = []
        stderr_lines: List[str] = []

        try:
            process = await self._start_process(args, environment)
            await self._collect_output_with_timeout(process, stdout_lines, stderr_lines)
            exit_code = process.returncode or 0
            exited = True
        except asyncio.TimeoutError:
            self._handle_timeout(subcommand, stderr_lines, start_time)
        except OSError as exc:
            self._handle_os_error(subcommand, exc, start_time)
        finally:
            if process is not None and not exited:
                await self._terminate(process)

        duration = time.monotonic() - start_time
        return self._build_result(
            subcommand,
            exit_code,
            "\n".join(stdout_lines),
            "\n".join(stderr_lines),
            duration,
        )

    async def _start_process(
        self, args: List[str], environment: DeploymentEnvironment
    ) -> asyncio.subprocess.Process:
        """Launch the CLI subprocess.

        stdin is inherited so interactive prompts reach the supervisor.

        Raises:
            OSError: If the executable cannot be found or started.
        """
        logger.info(
            "Starting infrastructure tool",
            extra={
                "argv": args,
                "branch": environment.branch.raw,
                "timeout": self.timeout_seconds,
            },
        )

        return await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=environment.as_dict(),
        )

    async def _collect_output_with_timeout(
        self,
        process: asyncio.subprocess.Process,
        stdout_lines: List[str],
        stderr_lines: List[str],
    ) -> None:
        """Stream process output into the given lists within the timeout.

        Lines collected before a timeout stay in the lists.

        Raises:
            asyncio.TimeoutError: If the process exceeds the timeout.
        """

        async def stream_stdout():
            async for line in self._read_stream(process.stdout):
                stdout_lines.append(line)
                self._emit_line("stdout", line, self.stdout or sys.stdout)

        async def stream_stderr():
            async for line in self._read_stream(process.stderr):
                stderr_lines.append(line)
                self._emit_line("stderr", line, self.stderr or sys.stderr)

        await asyncio.wait_for(
            self._gather_streams(stream_stdout(), stream_stderr(), process),
            timeout=self.timeout_seconds,
        )

    async def _gather_streams(self, stdout_reader, stderr_reader, process) -> None:
        await asyncio.gather(stdout_reader, stderr_reader)
        await process.wait()

    async def _read_stream(self, stream: Optional[asyncio.StreamReader]):
        """Yield decoded lines from an async stream.

        Reads fixed-size chunks and splits lines itself, so a single line
        longer than the StreamReader limit is still delivered whole.
        """
        if stream is None:
            return

        pending = b""
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            pending += chunk
            *complete, pending = pending.split(b"\n")
            for raw_line in complete:
                yield self._decode(raw_line)

        if pending:
            yield self._decode(pending)

    @staticmethod
    def _decode(raw_line: bytes) -> str:
        return raw_line.decode("utf-8", errors="replace").rstrip("\r")

    def _emit_line(self, stream_name: str, line: str, target: TextIO) -> None:
        """Forward one output line to the caller's stream and the logger."""
        target.write(line + "\n")
        target.flush()
        logger.debug("cdk %s: %s", stream_name, line)

    def _handle_timeout(
        self,
        subcommand: str,
        stderr_lines: List[str],
        start_time: float,
    ) -> None:
        """Raise a timeout failure carrying the stderr seen so far."""
        self._observe(subcommand, start_time)
        logger.error(
            "cdk %s timed out after %ss", subcommand, self.timeout_seconds
        )
        message = f"Process timed out after {self.timeout_seconds}s"
        if stderr_lines:
            message = message + "\n" + "\n".join(stderr_lines)
        raise InfrastructureToolError(subcommand, -1, message)

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Kill a process that did not exit on its own and reap it."""
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
        await process.wait()

    def _handle_os_error(
        self, subcommand: str, exc: OSError, start_time: float
    ) -> None:
        """Raise a failure for OS-level errors (e.g., missing executable)."""
        self._observe(subcommand, start_time)
        logger.error("Failed to start infrastructure tool: %s", exc)
        raise InfrastructureToolError(
            subcommand, -1, f"Failed to start {self.command[0]}: {exc}"
        ) from exc

    def _observe(self, subcommand: str, start_time: float) -> float:
        duration = time.monotonic() - start_time
        if self.metrics is not None:
            self.metrics.record_tool_duration(subcommand, duration)
        return duration

    def _build_result(
        self,
        subcommand: str,
        exit_code: int,
        stdout: str,
        stderr: str,
        duration: float,
    ) -> InfrastructureResult:
        """Return the result for exit code 0, raise otherwise."""
        if self.metrics is not None:
            self.metrics.record_tool_duration(subcommand, duration)

        if exit_code != 0:
            logger.error(
                "cdk %s failed with exit code %d in %.1fs",
                subcommand,
                exit_code,
                duration,
            )
            raise InfrastructureToolError(subcommand, exit_code, stderr)

        logger.info("cdk %s completed successfully in %.1fs", subcommand, duration)
        return InfrastructureResult(
            command=subcommand,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_seconds=duration,
        )
