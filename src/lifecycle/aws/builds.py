"""CodeBuild access for the artifact-based destroy job."""

import logging
from typing import Dict

from src.lifecycle.aws.clients import call_service

logger = logging.getLogger(__name__)


SERVICE = "codebuild"


class BuildService:
    """Async wrapper around the CodeBuild client."""

    def __init__(self, client):
        self.client = client

    async def start_build(
        self,
        project_name: str,
        source_location: str,
        environment: Dict[str, str],
    ) -> str:
        """Start a build from an S3 source with environment overrides.

        Args:
            project_name: CodeBuild project to start.
            source_location: ``<bucket>/<key>`` of the source archive.
            environment: Plain-text environment variable overrides.

        Returns:
            The CodeBuild build id.
        """
        response = await call_service(
            SERVICE, "StartBuild", self.client.start_build,
            projectName=project_name,
            sourceTypeOverride="S3",
            sourceLocationOverride=source_location,
            environmentVariablesOverride=[
                {"name": name, "value": value, "type": "PLAINTEXT"}
                for name, value in environment.items()
            ],
        )
        build_id = response.get("build", {}).get("id", "")
        logger.info(
            "Started build",
            extra={"project": project_name, "build_id": build_id, "source": source_location},
        )
        return build_id
