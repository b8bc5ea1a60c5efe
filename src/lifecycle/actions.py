"""Lifecycle actions run for dispatched webhook events.

Each action receives the original webhook body, validates it in full and
derives the branch identity before touching any AWS resource:

- setup: deploy the branch stacks (artifact bucket, pipeline, notifications)
- execute: start the branch pipeline
- teardown: stop executions and destroy the branch deployment
"""

import asyncio
import logging
from typing import Any, Callable, Mapping, Optional, Union

from src.lifecycle.aws.clients import AwsCredentials
from src.lifecycle.aws.pipelines import PipelineService
from src.lifecycle.config import LifecycleSettings
from src.lifecycle.dispatch.models import LifecycleMessage
from src.lifecycle.errors import PipelineNotFoundError
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.resolver import PipelineResolver
from src.lifecycle.runner.cdk import InfrastructureResult, InfrastructureRunner
from src.lifecycle.runner.environment import (
    DeploymentEnvironment,
    build_deployment_environment,
)
from src.lifecycle.teardown import TeardownCoordinator, TeardownResult
from src.lifecycle.webhook.classifier import LifecycleAction
from src.lifecycle.webhook.models import (
    BranchIdentity,
    GithubPayload,
    parse_github_payload,
)

logger = logging.getLogger(__name__)


RawPayload = Union[bytes, str, Mapping[str, Any]]

# Returns credentials to forward, or None in local mode
CredentialsProvider = Callable[[], Optional[AwsCredentials]]


class LifecycleActions:
    """Runs setup, execute and teardown for a webhook payload.

    Attributes:
        settings: Orchestrator settings.
        runner: Infrastructure CLI runner.
        resolver: Branch to pipeline resolution.
        pipelines: CodePipeline access for starting executions.
        teardown_coordinator: Runs branch teardown.
        credentials_provider: Supplies credentials forwarded to the CLI.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        settings: LifecycleSettings,
        runner: InfrastructureRunner,
        resolver: PipelineResolver,
        pipelines: PipelineService,
        teardown_coordinator: TeardownCoordinator,
        credentials_provider: CredentialsProvider,
        metrics: Optional[LifecycleMetrics] = None,
    ):
        self.settings = settings
        self.runner = runner
        self.resolver = resolver
        self.pipelines = pipelines
        self.teardown_coordinator = teardown_coordinator
        self.credentials_provider = credentials_provider
        self.metrics = metrics

    async def environment_for(
        self, branch: BranchIdentity, repo_owner: str, repo_name: str
    ) -> DeploymentEnvironment:
        """Build a fresh CLI environment for one invocation.

        Credential resolution may hit the credential provider chain, so it
        runs in a worker thread.
        """
        credentials = None
        if not self.settings.is_local:
            credentials = await asyncio.to_thread(self.credentials_provider)
        return build_deployment_environment(
            self.settings,
            branch,
            repo_owner,
            repo_name,
            credentials=credentials,
        )

    async def setup(self, raw: RawPayload) -> InfrastructureResult:
        """Deploy the stacks for a newly created branch."""
        payload, branch = self._parse(raw)
        logger.info(
            "Setting up branch deployment",
            extra={"branch": branch.raw, "repository": payload.repo_name},
        )
        environment = await self.environment_for(
            branch, payload.owner_login, payload.repo_name
        )
        return await self.runner.deploy(environment)

    async def execute(self, raw: RawPayload) -> str:
        """Start the pipeline for a pushed branch.

        Returns:
            The started pipeline execution id.

        Raises:
            PipelineNotFoundError: If the branch has no pipeline.
        """
        _, branch = self._parse(raw)
        pipeline_name = await self.resolver.find_pipeline_by_branch(branch.raw)
        if pipeline_name is None:
            raise PipelineNotFoundError(branch.raw)
        return await self.pipelines.start_execution(pipeline_name)

    async def teardown(self, raw: RawPayload) -> TeardownResult:
        """Tear down the deployment of a deleted branch."""
        payload, branch = self._parse(raw)
        return await self.teardown_coordinator.teardown(
            branch.raw, payload.owner_login, payload.repo_name
        )

    async def run(self, action: LifecycleAction, raw: RawPayload) -> Any:
        """Run an action by kind, recording its outcome."""
        handlers = {
            LifecycleAction.SETUP: self.setup,
            LifecycleAction.TRIGGER_EXECUTION: self.execute,
            LifecycleAction.TEARDOWN: self.teardown,
        }
        handler = handlers.get(action)
        if handler is None:
            raise ValueError(f"Action '{action.value}' cannot be run")

        try:
            result = await handler(raw)
        except Exception:
            self._record(action, success=False)
            raise
        self._record(action, success=True)
        return result

    async def handle_message(self, message: LifecycleMessage) -> Any:
        return await self.run(message.action, message.payload)

    def _parse(self, raw: RawPayload):
        payload: GithubPayload = parse_github_payload(raw)
        return payload, payload.branch_identity()

    def _record(self, action: LifecycleAction, success: bool) -> None:
        if self.metrics is not None:
            self.metrics.record_action(action.value, success)
