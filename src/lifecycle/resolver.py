"""Branch to pipeline name resolution.

Each branch pipeline is named after the sanitized branch name, but the
casing GitHub reports may differ from the casing the stack was created
with, so names are compared lowercased. The pipeline listing is paginated;
every page is read before a branch is declared to have no pipeline.
"""

import logging
from typing import Optional

from src.lifecycle.aws.pipelines import PipelineService
from src.lifecycle.webhook.models import BranchIdentity

logger = logging.getLogger(__name__)


class PipelineResolver:
    """Finds the deployment pipeline belonging to a branch.

    Attributes:
        pipelines: CodePipeline service wrapper.
    """

    def __init__(self, pipelines: PipelineService):
        self.pipelines = pipelines

    async def find_pipeline_by_branch(self, branch_raw: str) -> Optional[str]:
        """Resolve a raw branch name to its pipeline name.

        Args:
            branch_raw: Branch name as it appears in git (may contain ``/``).

        Returns:
            The pipeline name as stored by CodePipeline, or None if no
            pipeline matches once pagination is exhausted.

        Raises:
            ExternalServiceFailure: If any listing page fails.
        """
        key = BranchIdentity(raw=branch_raw).pipeline_key
        next_token: Optional[str] = None
        pages = 0

        while True:
            page = await self.pipelines.list_pipelines(next_token)
            pages += 1

            for pipeline in page.pipelines:
                if pipeline.name.lower() == key:
                    logger.info(
                        "Resolved pipeline for branch",
                        extra={"branch": branch_raw, "pipeline": pipeline.name},
                    )
                    return pipeline.name

            next_token = page.next_token
            if not next_token:
                break

        logger.info(
            "No pipeline found for branch %s after %d page(s)", branch_raw, pages
        )
        return None
