"""Classification of GitHub events into lifecycle actions.

GitHub emits a push event right around branch creation and deletion. Those
pushes carry ``created: true`` or ``deleted: true`` and are echoes of the
create/delete event, not real commits; starting a pipeline execution for a
branch that is not provisioned yet (or already removed) must not happen, so
they are ignored here.

| event type | payload condition  | action           |
|------------|--------------------|------------------|
| create     | branch ref         | SETUP            |
| push       | created == true    | IGNORE           |
| push       | deleted == true    | IGNORE           |
| push       | otherwise          | TRIGGER_EXECUTION|
| delete     | branch ref         | TEARDOWN         |
| other      |                    | IGNORE           |
"""

import logging
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from src.lifecycle.webhook.models import (
    BranchIdentity,
    GitHubEventType,
    GithubPayload,
)

logger = logging.getLogger(__name__)


class LifecycleAction(str, Enum):
    """Action the orchestrator takes in response to an event.

    Attributes:
        SETUP: Provision the branch infrastructure (cdk deploy).
        TRIGGER_EXECUTION: Start the branch pipeline.
        TEARDOWN: Stop executions and destroy the branch infrastructure.
        IGNORE: Do nothing; see the classification reason.
    """

    SETUP = "setup"
    TRIGGER_EXECUTION = "execute"
    TEARDOWN = "teardown"
    IGNORE = "ignore"


class Classification(BaseModel):
    """Outcome of classifying one event.

    Attributes:
        action: Lifecycle action to take.
        reason: Diagnostic for IGNORE, empty otherwise.
        branch: Branch the action applies to, None for IGNORE.
    """

    action: LifecycleAction
    reason: str = ""
    branch: Optional[BranchIdentity] = None

    @property
    def is_ignored(self) -> bool:
        return self.action == LifecycleAction.IGNORE


def _ignore(reason: str) -> Classification:
    logger.info("Ignoring event: %s", reason)
    return Classification(action=LifecycleAction.IGNORE, reason=reason)


def classify_event(
    event_type: Optional[str], payload: Optional[GithubPayload]
) -> Classification:
    """Decide which lifecycle action an event requires.

    Never raises: unknown event types and payloads that do not describe a
    branch are classified as IGNORE with a diagnostic reason.

    Args:
        event_type: Value of the ``X-GitHub-Event`` header.
        payload: Parsed payload, or None if it was not parsed.

    Returns:
        The Classification for the event.
    """
    try:
        kind = GitHubEventType(event_type)
    except ValueError:
        return _ignore(f"unexpected event type: {event_type}")

    if payload is None:
        return _ignore(f"{kind.value} event without payload")

    branch = payload.branch_name()
    if branch is None:
        return _ignore(f"{kind.value} event for non-branch ref '{payload.ref}'")

    identity = BranchIdentity(raw=branch)

    if kind == GitHubEventType.CREATE:
        return Classification(action=LifecycleAction.SETUP, branch=identity)

    if kind == GitHubEventType.DELETE:
        return Classification(action=LifecycleAction.TEARDOWN, branch=identity)

    if payload.created:
        return _ignore(f"push echo of branch creation for '{branch}'")

    if payload.deleted:
        return _ignore(f"push echo of branch deletion for '{branch}'")

    return Classification(
        action=LifecycleAction.TRIGGER_EXECUTION, branch=identity
    )
