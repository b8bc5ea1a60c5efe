"""Unit tests for branch teardown coordination."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from prometheus_client import CollectorRegistry

from src.lifecycle.aws.artifacts import ArtifactReference
from src.lifecycle.aws.pipelines import StageState
from src.lifecycle.errors import (
    ExternalServiceFailure,
    InfrastructureToolError,
    NoArtifactsError,
    StopExecutionsError,
)
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.teardown import STOP_REASON, TeardownCoordinator


def run_async(coro):
    return asyncio.run(coro)


ARTIFACT = ArtifactReference(
    bucket="artifacts-widgets",
    key="feature-login/Artifact_S/abc123",
    last_modified=datetime(2025, 3, 1, tzinfo=timezone.utc),
)


def _build_coordinator(
    artifacts=None,
    pipeline_name="feature-login",
    stage_states=None,
    metrics=None,
):
    artifact_store = AsyncMock()
    artifact_store.list_artifacts = AsyncMock(
        return_value=[ARTIFACT] if artifacts is None else artifacts
    )

    builds = AsyncMock()
    builds.start_build = AsyncMock(return_value="branch-teardown:42")

    pipelines = AsyncMock()
    pipelines.get_stage_states = AsyncMock(return_value=stage_states or [])
    pipelines.stop_execution = AsyncMock(return_value=None)

    resolver = AsyncMock()
    resolver.find_pipeline_by_branch = AsyncMock(return_value=pipeline_name)

    runner = AsyncMock()
    runner.destroy = AsyncMock(return_value=MagicMock(exit_code=0))

    environment_factory = AsyncMock(return_value=MagicMock(name="environment"))

    coordinator = TeardownCoordinator(
        artifacts=artifact_store,
        builds=builds,
        pipelines=pipelines,
        resolver=resolver,
        runner=runner,
        environment_factory=environment_factory,
        destroy_project_name="branch-teardown",
        metrics=metrics,
    )
    return coordinator


class TestArtifactSelection:
    def test_no_artifacts_is_fatal_and_touches_nothing(self):
        coordinator = _build_coordinator(artifacts=[])

        with pytest.raises(NoArtifactsError) as exc_info:
            run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert exc_info.value.bucket == "artifacts-widgets"
        assert exc_info.value.prefix == "feature-login/Artifact_S/"
        coordinator.builds.start_build.assert_not_called()
        coordinator.resolver.find_pipeline_by_branch.assert_not_called()
        coordinator.runner.destroy.assert_not_called()

    def test_artifact_without_key_is_fatal(self):
        coordinator = _build_coordinator(
            artifacts=[ArtifactReference("artifacts-widgets", "", None)]
        )

        with pytest.raises(NoArtifactsError):
            run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        coordinator.builds.start_build.assert_not_called()

    def test_newest_artifact_drives_destroy_build(self):
        older = ArtifactReference(
            "artifacts-widgets",
            "feature-login/Artifact_S/old",
            datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        coordinator = _build_coordinator(artifacts=[older, ARTIFACT])

        result = run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert result.artifact == ARTIFACT
        coordinator.builds.start_build.assert_awaited_once_with(
            "branch-teardown",
            "artifacts-widgets/feature-login/Artifact_S/abc123",
            {"BRANCH_NAME": "feature-login"},
        )


class TestWithoutPipeline:
    def test_build_started_and_awaited_without_destroy(self):
        coordinator = _build_coordinator(pipeline_name=None)

        result = run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert result.build_id == "branch-teardown:42"
        assert result.pipeline_name is None
        assert result.destroy_result is None
        assert result.stopped_executions == []
        coordinator.pipelines.get_stage_states.assert_not_called()
        coordinator.runner.destroy.assert_not_called()


class TestWithPipeline:
    def test_stops_in_progress_executions_before_destroy(self):
        order = []
        states = [
            StageState("Source", "Succeeded", "e0"),
            StageState("Build", "InProgress", "e1"),
            StageState("Deploy", "InProgress", "e2"),
        ]
        coordinator = _build_coordinator(stage_states=states)

        async def record_stop(name, execution_id, reason):
            order.append(("stop", execution_id))

        async def record_destroy(environment):
            order.append(("destroy", None))
            return MagicMock(exit_code=0)

        coordinator.pipelines.stop_execution.side_effect = record_stop
        coordinator.runner.destroy.side_effect = record_destroy

        result = run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert order == [("stop", "e1"), ("stop", "e2"), ("destroy", None)]
        assert result.stopped_executions == ["e1", "e2"]
        coordinator.pipelines.stop_execution.assert_any_await(
            "feature-login", "e1", STOP_REASON
        )
        coordinator.environment_factory.assert_awaited_once()
        branch, owner, repo = coordinator.environment_factory.call_args.args
        assert branch.raw == "feature/login"
        assert (owner, repo) == ("acme", "Widgets")

    def test_shared_execution_id_is_stopped_once(self):
        states = [
            StageState("Build", "InProgress", "e1"),
            StageState("Test", "InProgress", "e1"),
        ]
        coordinator = _build_coordinator(stage_states=states)

        result = run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert coordinator.pipelines.stop_execution.await_count == 1
        assert result.stopped_executions == ["e1"]

    def test_no_in_progress_stages_goes_straight_to_destroy(self):
        coordinator = _build_coordinator(
            stage_states=[StageState("Source", "Succeeded", "e0")]
        )

        result = run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        coordinator.pipelines.stop_execution.assert_not_called()
        coordinator.runner.destroy.assert_awaited_once()
        assert result.build_id == "branch-teardown:42"

    def test_stop_failure_still_destroys_then_raises(self):
        metrics = LifecycleMetrics(registry=CollectorRegistry())
        states = [
            StageState("Build", "InProgress", "e1"),
            StageState("Deploy", "InProgress", "e2"),
        ]
        coordinator = _build_coordinator(stage_states=states, metrics=metrics)
        failure = ExternalServiceFailure(
            "codepipeline", "StopPipelineExecution", "already stopped"
        )

        async def stop(name, execution_id, reason):
            if execution_id == "e1":
                raise failure

        coordinator.pipelines.stop_execution.side_effect = stop

        with pytest.raises(StopExecutionsError) as exc_info:
            run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert exc_info.value.failures == [failure]
        assert exc_info.value.pipeline_name == "feature-login"
        assert coordinator.pipelines.stop_execution.await_count == 2
        coordinator.runner.destroy.assert_awaited_once()
        coordinator.builds.start_build.assert_awaited_once()
        assert metrics.registry.get_sample_value(
            "lifecycle_stopped_executions_total", {"result": "failure"}
        ) == 1.0
        assert metrics.registry.get_sample_value(
            "lifecycle_stopped_executions_total", {"result": "success"}
        ) == 1.0

    def test_destroy_failure_propagates_after_build_settles(self):
        coordinator = _build_coordinator()
        coordinator.runner.destroy.side_effect = InfrastructureToolError(
            "destroy", 1, "stack in use"
        )

        with pytest.raises(InfrastructureToolError):
            run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        coordinator.builds.start_build.assert_awaited_once()

    def test_build_start_failure_propagates(self):
        coordinator = _build_coordinator(pipeline_name=None)
        coordinator.builds.start_build.side_effect = ExternalServiceFailure(
            "codebuild", "StartBuild", "project not found"
        )

        with pytest.raises(ExternalServiceFailure) as exc_info:
            run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert exc_info.value.operation == "StartBuild"


class TestConcurrency:
    def test_destroy_build_starts_while_pipeline_is_resolving(self):
        coordinator = _build_coordinator(pipeline_name=None)
        build_started = asyncio.Event()

        async def start_build(project, location, env):
            build_started.set()
            return "branch-teardown:42"

        async def resolve(branch_raw):
            # Only returns if the build start ran while this lookup was pending
            await asyncio.wait_for(build_started.wait(), timeout=1)
            return None

        coordinator.builds.start_build.side_effect = start_build
        coordinator.resolver.find_pipeline_by_branch.side_effect = resolve

        result = run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        assert result.build_id == "branch-teardown:42"
        coordinator.builds.start_build.assert_awaited_once()

    def test_resolution_failure_still_settles_build(self):
        coordinator = _build_coordinator()
        coordinator.resolver.find_pipeline_by_branch.side_effect = ExternalServiceFailure(
            "codepipeline", "ListPipelines", "throttled"
        )

        with pytest.raises(ExternalServiceFailure):
            run_async(coordinator.teardown("feature/login", "acme", "Widgets"))

        coordinator.builds.start_build.assert_awaited_once()
        coordinator.runner.destroy.assert_not_called()
