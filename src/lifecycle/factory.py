"""Dependency wiring for the orchestrator entry points.

Both the FastAPI server and the Lambda handlers build the same object
graph from LifecycleSettings; only the dispatcher differs.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from src.lifecycle.actions import LifecycleActions
from src.lifecycle.aws.artifacts import ArtifactStore
from src.lifecycle.aws.builds import BuildService
from src.lifecycle.aws.clients import create_client, create_session, resolve_credentials
from src.lifecycle.aws.functions import FunctionInvoker
from src.lifecycle.aws.pipelines import PipelineService
from src.lifecycle.config import LifecycleSettings
from src.lifecycle.dispatch.dispatcher import (
    Dispatcher,
    InProcessDispatcher,
    LambdaDispatcher,
)
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.resolver import PipelineResolver
from src.lifecycle.runner.cdk import InfrastructureRunner
from src.lifecycle.teardown import TeardownCoordinator
from src.lifecycle.webhook.handler import WebhookGateway, create_webhook_gateway

logger = logging.getLogger(__name__)


@dataclass
class Orchestrator:
    """The wired gateway and actions."""

    gateway: WebhookGateway
    actions: LifecycleActions
    dispatcher: Dispatcher


def _redact_secret(value: str, visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def log_configuration(settings: LifecycleSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Lifecycle configuration:")
    logger.info("  Product/Tier: %s/%s", settings.product, settings.tier)
    logger.info("  GitHub Auth Secret ARN: %s", settings.github_auth_secret_arn)
    logger.info(
        "  GitHub Webhook Secret: %s", _redact_secret(settings.github_webhook_secret)
    )
    logger.info("  Deployment IAM ARN: %s", settings.deployment_iam_arn)
    logger.info("  Teardown Project: %s", settings.teardown_project_name)
    logger.info("  Default Deployment Envs: %s", sorted(settings.default_envs))
    logger.info("  Local Mode: %s (profile %s)", settings.is_local, settings.local_profile)
    logger.info("  Lambda Endpoint: %s", settings.lambda_endpoint_url or "default")
    logger.info("  CDK Command: %s", " ".join(settings.cdk_command))
    logger.info("  CDK Timeout Seconds: %s", settings.cdk_timeout_seconds)


def build_actions(
    settings: LifecycleSettings,
    metrics: Optional[LifecycleMetrics] = None,
    session=None,
) -> LifecycleActions:
    """Wire the lifecycle actions and their AWS dependencies."""
    session = session or create_session(settings)

    pipelines = PipelineService(create_client(session, "codepipeline"))
    resolver = PipelineResolver(pipelines)
    runner = InfrastructureRunner(
        command=settings.cdk_command,
        output_dir=settings.cdk_output_dir,
        timeout_seconds=settings.cdk_timeout_seconds,
        metrics=metrics,
    )

    actions: LifecycleActions

    async def environment_factory(branch, repo_owner, repo_name):
        return await actions.environment_for(branch, repo_owner, repo_name)

    teardown = TeardownCoordinator(
        artifacts=ArtifactStore(create_client(session, "s3")),
        builds=BuildService(create_client(session, "codebuild")),
        pipelines=pipelines,
        resolver=resolver,
        runner=runner,
        environment_factory=environment_factory,
        destroy_project_name=settings.teardown_project_name,
        metrics=metrics,
    )

    actions = LifecycleActions(
        settings=settings,
        runner=runner,
        resolver=resolver,
        pipelines=pipelines,
        teardown_coordinator=teardown,
        credentials_provider=lambda: resolve_credentials(session),
        metrics=metrics,
    )
    return actions


def build_orchestrator(
    settings: LifecycleSettings,
    metrics: Optional[LifecycleMetrics] = None,
    in_process: Optional[bool] = None,
    session=None,
) -> Orchestrator:
    """Wire the gateway, dispatcher and actions.

    Args:
        settings: Validated settings.
        metrics: Optional metrics sink.
        in_process: Run actions as local asyncio tasks instead of Lambda
                    invocations. Defaults to ``settings.is_local``.
        session: boto3 session; created from settings when omitted.
    """
    session = session or create_session(settings)
    actions = build_actions(settings, metrics=metrics, session=session)

    if in_process is None:
        in_process = settings.is_local

    if in_process:
        dispatcher: Dispatcher = InProcessDispatcher(actions.handle_message)
    else:
        invoker = FunctionInvoker(
            create_client(session, "lambda", endpoint_url=settings.lambda_endpoint_url)
        )
        dispatcher = LambdaDispatcher(invoker, settings)

    gateway = create_webhook_gateway(
        settings.github_webhook_secret, dispatcher, metrics=metrics
    )
    return Orchestrator(gateway=gateway, actions=actions, dispatcher=dispatcher)
