"""Typed messages passed from the webhook gateway to lifecycle actions."""

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.lifecycle.webhook.classifier import LifecycleAction


class LifecycleMessage(BaseModel):
    """A lifecycle action to run against the original webhook body.

    Attributes:
        action: Action to run; IGNORE is never dispatched.
        payload: Webhook body bytes exactly as received.
    """

    model_config = ConfigDict(frozen=True)

    action: LifecycleAction
    payload: bytes = Field(..., min_length=1)

    @field_validator("action")
    @classmethod
    def validate_action(cls, v: LifecycleAction) -> LifecycleAction:
        """Validate that ignored events are never dispatched."""
        if v == LifecycleAction.IGNORE:
            raise ValueError("IGNORE actions are not dispatched")
        return v
