"""GitHub webhook event models for the branch lifecycle orchestrator.

This module defines the data models for the three GitHub events that
drive a per-branch deployment:

- create: a branch (or tag) was created
- push: commits were pushed to a branch
- delete: a branch (or tag) was deleted

Push events carry the full ref (``refs/heads/<branch>``) while create and
delete events carry the bare ref name together with ``ref_type``. Both
shapes resolve to the same BranchIdentity.

The models use Pydantic for validation so that a payload is checked in
full before any field is read downstream.
"""

from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.lifecycle.errors import ValidationFailure


BRANCH_REF_PREFIX = "refs/heads/"


class GitHubEventType(str, Enum):
    """GitHub event types that take part in the branch lifecycle.

    Attributes:
        CREATE: A branch or tag was created.
        PUSH: Commits were pushed (also echoed around create/delete).
        DELETE: A branch or tag was deleted.
    """

    CREATE = "create"
    PUSH = "push"
    DELETE = "delete"


def sanitize_branch(branch: str) -> str:
    """Replace path separators so a branch name can name AWS resources.

    ``sanitize_branch("feature/x-1") == "feature-x-1"``. The function is
    idempotent.
    """
    return branch.replace("/", "-")


class RepositoryOwner(BaseModel):
    """Owner block of ``repository`` in a webhook payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    login: str = Field(..., min_length=1)
    id: Optional[int] = None


class Repository(BaseModel):
    """Repository block of a webhook payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(..., min_length=1)
    owner: RepositoryOwner


class BranchIdentity(BaseModel):
    """Raw and derived representations of a branch name.

    Attributes:
        raw: Branch name as it appears in git (may contain ``/``).
    """

    model_config = ConfigDict(frozen=True)

    raw: str = Field(..., min_length=1)

    @property
    def sanitized(self) -> str:
        """Branch name with ``/`` replaced by ``-`` (used for stack names)."""
        return sanitize_branch(self.raw)

    @property
    def pipeline_key(self) -> str:
        """Lowercased sanitized name compared against pipeline names."""
        return self.sanitized.lower()


class GithubPayload(BaseModel):
    """Parsed body of a create, push or delete webhook event.

    Attributes:
        ref: Full ref (push) or bare ref name (create/delete).
        ref_type: "branch" or "tag" on create/delete events.
        repository: Repository the event belongs to.
        created: Push events only; True when the push created the ref.
        deleted: Push events only; True when the push deleted the ref.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    ref: str = Field(..., min_length=1)
    ref_type: Optional[str] = None
    repository: Repository
    created: bool = False
    deleted: bool = False

    @property
    def repo_name(self) -> str:
        return self.repository.name

    @property
    def owner_login(self) -> str:
        return self.repository.owner.login

    @property
    def is_branch_ref(self) -> bool:
        """True when the ref names a branch rather than a tag."""
        return self.branch_name() is not None

    def branch_name(self) -> Optional[str]:
        """Extract the raw branch name, or None for non-branch refs."""
        if self.ref.startswith(BRANCH_REF_PREFIX):
            branch = self.ref[len(BRANCH_REF_PREFIX):]
            return branch or None

        if self.ref_type == "branch" and not self.ref.startswith("refs/"):
            return self.ref

        return None

    def branch_identity(self) -> BranchIdentity:
        """Build the BranchIdentity for this payload.

        Raises:
            ValidationFailure: If the ref does not name a branch.
        """
        branch = self.branch_name()
        if branch is None:
            raise ValidationFailure(
                f"ref '{self.ref}' (ref_type={self.ref_type}) is not a branch ref"
            )
        return BranchIdentity(raw=branch)


def parse_github_payload(raw: Union[bytes, str, Mapping[str, Any]]) -> GithubPayload:
    """Validate a raw webhook body into a GithubPayload.

    Args:
        raw: JSON body as bytes/str, or an already decoded mapping (the
             event of a directly invoked Lambda function).

    Returns:
        The validated payload.

    Raises:
        ValidationFailure: If the body is not JSON or misses required fields.
    """
    try:
        if isinstance(raw, (bytes, str)):
            return GithubPayload.model_validate_json(raw)
        return GithubPayload.model_validate(raw)
    except ValidationError as e:
        raise ValidationFailure(f"Invalid webhook payload: {e}") from e
