"""CodePipeline access for pipeline lookup, state and execution control."""

import logging
from dataclasses import dataclass
from typing import List, Optional

from src.lifecycle.aws.clients import call_service

logger = logging.getLogger(__name__)


SERVICE = "codepipeline"
IN_PROGRESS = "InProgress"


@dataclass(frozen=True)
class PipelineSummary:
    """Name and version of a deployment pipeline."""

    name: str
    version: Optional[int] = None


@dataclass(frozen=True)
class PipelinePage:
    """One page of ListPipelines results."""

    pipelines: List[PipelineSummary]
    next_token: Optional[str] = None


@dataclass(frozen=True)
class StageState:
    """Latest execution of a single pipeline stage.

    Attributes:
        stage_name: Name of the stage (e.g. "Source", "Build").
        status: Latest execution status, None if never executed.
        execution_id: Pipeline execution id of the latest execution.
    """

    stage_name: str
    status: Optional[str] = None
    execution_id: Optional[str] = None

    @property
    def in_progress(self) -> bool:
        return self.status == IN_PROGRESS and self.execution_id is not None


class PipelineService:
    """Async wrapper around the CodePipeline client.

    Attributes:
        client: boto3 CodePipeline client (injectable for testing).
    """

    def __init__(self, client):
        self.client = client

    async def list_pipelines(self, next_token: Optional[str] = None) -> PipelinePage:
        """Fetch one page of the pipeline listing."""
        kwargs = {"nextToken": next_token} if next_token else {}
        response = await call_service(
            SERVICE, "ListPipelines", self.client.list_pipelines, **kwargs
        )
        pipelines = [
            PipelineSummary(name=item["name"], version=item.get("version"))
            for item in response.get("pipelines") or []
            if item.get("name")
        ]
        return PipelinePage(pipelines=pipelines, next_token=response.get("nextToken"))

    async def get_stage_states(self, pipeline_name: str) -> List[StageState]:
        """Fetch the latest execution state of every stage."""
        response = await call_service(
            SERVICE, "GetPipelineState", self.client.get_pipeline_state,
            name=pipeline_name,
        )
        states = []
        for stage in response.get("stageStates") or []:
            latest = stage.get("latestExecution") or {}
            states.append(
                StageState(
                    stage_name=stage.get("stageName", ""),
                    status=latest.get("status"),
                    execution_id=latest.get("pipelineExecutionId"),
                )
            )
        return states

    async def stop_execution(
        self,
        pipeline_name: str,
        execution_id: str,
        reason: str,
    ) -> None:
        """Stop an in-flight execution without waiting for running actions."""
        logger.info(
            "Stopping pipeline execution",
            extra={"pipeline": pipeline_name, "execution_id": execution_id},
        )
        await call_service(
            SERVICE, "StopPipelineExecution", self.client.stop_pipeline_execution,
            pipelineName=pipeline_name,
            pipelineExecutionId=execution_id,
            abandon=True,
            reason=reason,
        )

    async def start_execution(self, pipeline_name: str) -> str:
        """Start a pipeline execution and return its execution id."""
        response = await call_service(
            SERVICE, "StartPipelineExecution", self.client.start_pipeline_execution,
            name=pipeline_name,
        )
        execution_id = response.get("pipelineExecutionId", "")
        logger.info(
            "Started pipeline execution",
            extra={"pipeline": pipeline_name, "execution_id": execution_id},
        )
        return execution_id
