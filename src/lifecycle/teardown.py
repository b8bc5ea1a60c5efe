"""Teardown of a deleted branch's deployment.

Steps, each depending on the previous one:

1. List the branch's pipeline artifacts; no artifacts is fatal.
2. Pick the newest artifact; an artifact without a key is fatal.
3. Start the destroy build against that artifact and, concurrently,
   resolve the branch pipeline.
4. If a pipeline exists: stop every in-progress execution (all stops are
   awaited even when some fail), then destroy the branch stacks.
5. Await the destroy build start from step 3.

A branch that was provisioned but never finished its first deploy has no
pipeline; teardown then skips step 4 and still succeeds.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from src.lifecycle.aws.artifacts import (
    ArtifactReference,
    ArtifactStore,
    artifact_bucket,
    artifact_prefix,
    select_latest_artifact,
)
from src.lifecycle.aws.builds import BuildService
from src.lifecycle.aws.pipelines import PipelineService
from src.lifecycle.errors import NoArtifactsError, StopExecutionsError
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.resolver import PipelineResolver
from src.lifecycle.runner.cdk import InfrastructureResult, InfrastructureRunner
from src.lifecycle.runner.environment import DeploymentEnvironment
from src.lifecycle.webhook.models import BranchIdentity

logger = logging.getLogger(__name__)


STOP_REASON = "Branch deleted; tearing down deployment"


# Builds the CLI environment for (branch, repo_owner, repo_name)
EnvironmentFactory = Callable[
    [BranchIdentity, str, str], Awaitable[DeploymentEnvironment]
]


@dataclass
class TeardownResult:
    """Outcome of a completed teardown.

    Attributes:
        branch: Branch that was torn down.
        artifact: Artifact the destroy build ran against.
        build_id: CodeBuild id of the destroy build.
        pipeline_name: Pipeline that was found, None if none existed.
        stopped_executions: Execution ids that were stopped.
        destroy_result: CLI result of the stack destroy, None if skipped.
    """

    branch: BranchIdentity
    artifact: ArtifactReference
    build_id: str
    pipeline_name: Optional[str] = None
    stopped_executions: List[str] = field(default_factory=list)
    destroy_result: Optional[InfrastructureResult] = None


class TeardownCoordinator:
    """Coordinates artifact lookup, execution stops and destruction.

    Attributes:
        artifacts: S3 artifact listing.
        builds: CodeBuild access for the destroy build.
        pipelines: CodePipeline access for stage states and stops.
        resolver: Branch to pipeline name resolution.
        runner: Infrastructure CLI runner.
        environment_factory: Builds the CLI environment for a branch.
        destroy_project_name: CodeBuild project running the destroy script.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        artifacts: ArtifactStore,
        builds: BuildService,
        pipelines: PipelineService,
        resolver: PipelineResolver,
        runner: InfrastructureRunner,
        environment_factory: EnvironmentFactory,
        destroy_project_name: str,
        metrics: Optional[LifecycleMetrics] = None,
    ):
        self.artifacts = artifacts
        self.builds = builds
        self.pipelines = pipelines
        self.resolver = resolver
        self.runner = runner
        self.environment_factory = environment_factory
        self.destroy_project_name = destroy_project_name
        self.metrics = metrics

    async def teardown(
        self, branch_raw: str, repo_owner: str, repo_name: str
    ) -> TeardownResult:
        """Tear down everything deployed for a branch.

        Args:
            branch_raw: Deleted branch name (may contain ``/``).
            repo_owner: Repository owner login.
            repo_name: Repository name.

        Returns:
            TeardownResult describing what was done.

        Raises:
            NoArtifactsError: If no usable artifact exists (nothing is touched).
            ExternalServiceFailure: If the build start, pipeline lookup or
                stage query fails.
            InfrastructureToolError: If the stack destroy fails.
            StopExecutionsError: If any execution stop failed; raised after
                the destroy has been attempted.
        """
        branch = BranchIdentity(raw=branch_raw)
        logger.info(
            "Starting teardown",
            extra={"branch": branch.raw, "repository": f"{repo_owner}/{repo_name}"},
        )

        artifact = await self._find_latest_artifact(branch, repo_name)

        build_task = asyncio.create_task(self._start_destroy_build(branch, artifact))
        try:
            pipeline_name = await self.resolver.find_pipeline_by_branch(branch.raw)
            result = TeardownResult(
                branch=branch,
                artifact=artifact,
                build_id="",
                pipeline_name=pipeline_name,
            )

            stop_failures: List[Exception] = []
            if pipeline_name is None:
                logger.info(
                    "No pipeline for branch %s; skipping stops and stack destroy",
                    branch.raw,
                )
            else:
                result.stopped_executions, stop_failures = await self._stop_in_progress(
                    pipeline_name
                )
                environment = await self.environment_factory(
                    branch, repo_owner, repo_name
                )
                result.destroy_result = await self.runner.destroy(environment)
        except Exception:
            await self._settle_build(build_task)
            raise

        result.build_id = await build_task

        if stop_failures:
            raise StopExecutionsError(pipeline_name, stop_failures)

        logger.info(
            "Teardown complete",
            extra={
                "branch": branch.raw,
                "build_id": result.build_id,
                "pipeline": pipeline_name,
            },
        )
        return result

    async def _find_latest_artifact(
        self, branch: BranchIdentity, repo_name: str
    ) -> ArtifactReference:
        bucket = artifact_bucket(repo_name)
        prefix = artifact_prefix(branch.sanitized)

        candidates = await self.artifacts.list_artifacts(bucket, prefix)
        if not candidates:
            raise NoArtifactsError(bucket, prefix)

        latest = select_latest_artifact(candidates)
        if latest is None or not latest.key:
            raise NoArtifactsError(bucket, prefix, reason="latest artifact has no key")

        logger.info(
            "Selected artifact %s (last modified %s)",
            latest.location,
            latest.last_modified,
        )
        return latest

    async def _start_destroy_build(
        self, branch: BranchIdentity, artifact: ArtifactReference
    ) -> str:
        return await self.builds.start_build(
            self.destroy_project_name,
            artifact.location,
            {"BRANCH_NAME": branch.sanitized},
        )

    async def _settle_build(self, build_task: asyncio.Task) -> None:
        """Wait for the build start while another failure propagates."""
        (outcome,) = await asyncio.gather(build_task, return_exceptions=True)
        if isinstance(outcome, BaseException):
            logger.error("Destroy build failed to start: %s", outcome)

    async def _stop_in_progress(self, pipeline_name: str):
        """Stop every in-progress execution of a pipeline.

        Every stop is awaited. Failures are collected rather than raised.

        Returns:
            Tuple of (stopped execution ids, failures).
        """
        states = await self.pipelines.get_stage_states(pipeline_name)

        execution_ids: List[str] = []
        for state in states:
            if state.in_progress and state.execution_id not in execution_ids:
                execution_ids.append(state.execution_id)

        if not execution_ids:
            return [], []

        outcomes = await asyncio.gather(
            *(
                self.pipelines.stop_execution(pipeline_name, execution_id, STOP_REASON)
                for execution_id in execution_ids
            ),
            return_exceptions=True,
        )

        stopped: List[str] = []
        failures: List[Exception] = []
        for execution_id, outcome in zip(execution_ids, outcomes):
            success = not isinstance(outcome, BaseException)
            if self.metrics is not None:
                self.metrics.record_stopped_execution(success)
            if success:
                stopped.append(execution_id)
            else:
                logger.error(
                    "Failed to stop execution %s of %s: %s",
                    execution_id,
                    pipeline_name,
                    outcome,
                )
                failures.append(outcome)

        return stopped, failures
