"""AWS service access for the orchestrator.

Thin async wrappers over the boto3 clients the orchestrator reads from and
acts on: CodePipeline, S3, CodeBuild and Lambda.
"""

from src.lifecycle.aws.artifacts import (
    ArtifactReference,
    ArtifactStore,
    artifact_bucket,
    artifact_prefix,
    select_latest_artifact,
)
from src.lifecycle.aws.builds import BuildService
from src.lifecycle.aws.clients import (
    AwsCredentials,
    call_service,
    create_client,
    create_session,
    resolve_credentials,
)
from src.lifecycle.aws.functions import FunctionInvoker
from src.lifecycle.aws.pipelines import (
    PipelinePage,
    PipelineService,
    PipelineSummary,
    StageState,
)

__all__ = [
    "ArtifactReference",
    "ArtifactStore",
    "AwsCredentials",
    "BuildService",
    "FunctionInvoker",
    "PipelinePage",
    "PipelineService",
    "PipelineSummary",
    "StageState",
    "artifact_bucket",
    "artifact_prefix",
    "call_service",
    "create_client",
    "create_session",
    "resolve_credentials",
    "select_latest_artifact",
]
