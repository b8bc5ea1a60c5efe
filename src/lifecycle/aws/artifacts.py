"""S3 artifact lookup for branch build outputs.

Pipeline artifacts live in one bucket per repository,
``artifacts-<repo lowercased>``, under ``<sanitizedBranch>/Artifact_S/``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from src.lifecycle.aws.clients import call_service

logger = logging.getLogger(__name__)


SERVICE = "s3"


def artifact_bucket(repo_name: str) -> str:
    return f"artifacts-{repo_name.lower()}"


def artifact_prefix(sanitized_branch: str) -> str:
    return f"{sanitized_branch}/Artifact_S/"


@dataclass(frozen=True)
class ArtifactReference:
    """A stored build output object.

    Attributes:
        bucket: Bucket holding the object.
        key: Object key, None if the listing entry had none.
        last_modified: Upload timestamp, None if the listing entry had none.
    """

    bucket: str
    key: Optional[str]
    last_modified: Optional[datetime] = None

    @property
    def location(self) -> str:
        """``<bucket>/<key>`` as expected by CodeBuild S3 source overrides."""
        return f"{self.bucket}/{self.key}"


def select_latest_artifact(
    candidates: Sequence[ArtifactReference],
) -> Optional[ArtifactReference]:
    """Pick the most recently modified artifact.

    Candidates without a timestamp sort as older than any candidate with
    one. Among candidates with equal timestamps the first listed wins.

    Returns:
        The newest candidate, or None for an empty sequence.
    """
    latest: Optional[ArtifactReference] = None
    for candidate in candidates:
        if latest is None:
            latest = candidate
            continue
        if candidate.last_modified is None:
            continue
        if latest.last_modified is None or candidate.last_modified > latest.last_modified:
            latest = candidate
    return latest


class ArtifactStore:
    """Async wrapper around the S3 client for artifact listing."""

    def __init__(self, client):
        self.client = client

    async def list_artifacts(self, bucket: str, prefix: str) -> List[ArtifactReference]:
        """List every object under a prefix, following continuation tokens."""
        artifacts: List[ArtifactReference] = []
        token: Optional[str] = None

        while True:
            kwargs = {"Bucket": bucket, "Prefix": prefix}
            if token:
                kwargs["ContinuationToken"] = token

            response = await call_service(
                SERVICE, "ListObjectsV2", self.client.list_objects_v2, **kwargs
            )
            for item in response.get("Contents") or []:
                artifacts.append(
                    ArtifactReference(
                        bucket=bucket,
                        key=item.get("Key"),
                        last_modified=item.get("LastModified"),
                    )
                )

            token = response.get("NextContinuationToken")
            if not response.get("IsTruncated") or not token:
                break

        logger.debug(
            "Listed %d artifact(s) in s3://%s/%s", len(artifacts), bucket, prefix
        )
        return artifacts
