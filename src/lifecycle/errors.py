"""Error taxonomy for the branch lifecycle orchestrator.

Every failure raised by the orchestrator derives from LifecycleError so
entry points can tell orchestrator failures apart from programming errors.

- AuthenticationFailure: missing or invalid webhook signature
- ValidationFailure: payload missing a field or not describing a branch
- NotFoundFailure: no matching pipeline, no artifacts
- ExternalServiceFailure: wrapped CodePipeline/S3/CodeBuild/Lambda error
- ChildProcessFailure: non-zero exit from the infrastructure CLI
"""

from typing import List, Optional


class LifecycleError(Exception):
    """Base exception for lifecycle orchestration failures."""


class AuthenticationFailure(LifecycleError):
    """Raised when a webhook request cannot be authenticated."""


class ValidationFailure(LifecycleError):
    """Raised when an event payload is missing data or is malformed."""


class NotFoundFailure(LifecycleError):
    """Raised when a resource required by an action does not exist."""


class PipelineNotFoundError(NotFoundFailure):
    """Raised when no deployment pipeline matches a branch.

    Attributes:
        branch: The raw branch name that was looked up.
    """

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"No pipeline found for branch '{branch}'")


class NoArtifactsError(NotFoundFailure):
    """Raised when no usable build artifact exists for a branch.

    Attributes:
        bucket: Artifact bucket that was searched.
        prefix: Key prefix that was searched.
    """

    def __init__(self, bucket: str, prefix: str, reason: str = "no artifacts"):
        self.bucket = bucket
        self.prefix = prefix
        super().__init__(f"{reason} in s3://{bucket}/{prefix}")


class ExternalServiceFailure(LifecycleError):
    """Raised when an AWS service call fails.

    Attributes:
        service: Service name (e.g. "codepipeline").
        operation: API operation that failed (e.g. "ListPipelines").
        error_code: AWS error code when the service returned one.
        message: Human-readable error description.
    """

    def __init__(
        self,
        service: str,
        operation: str,
        message: str,
        error_code: Optional[str] = None,
    ):
        self.service = service
        self.operation = operation
        self.error_code = error_code
        self.message = message
        detail = f"{error_code} - {message}" if error_code else message
        super().__init__(f"{service}:{operation} failed: {detail}")


class ChildProcessFailure(LifecycleError):
    """Raised when a supervised child process fails."""


class InfrastructureToolError(ChildProcessFailure):
    """Raised when the infrastructure CLI exits with a non-zero status.

    Attributes:
        command: The CLI subcommand (deploy or destroy).
        exit_code: Process exit code (-1 for OS errors and timeouts).
        stderr: Accumulated standard error text.
    """

    def __init__(self, command: str, exit_code: int, stderr: str):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"Infrastructure tool '{command}' failed with exit code "
            f"{exit_code}: {stderr}"
        )


class StopExecutionsError(LifecycleError):
    """Raised after teardown when one or more execution stops failed.

    Attributes:
        pipeline_name: Pipeline whose executions were being stopped.
        failures: Every failure raised by the individual stop calls.
    """

    def __init__(self, pipeline_name: str, failures: List[Exception]):
        self.pipeline_name = pipeline_name
        self.failures = failures
        super().__init__(
            f"{len(failures)} execution stop(s) failed for pipeline "
            f"'{pipeline_name}': {failures[0]}"
        )
