"""GitHub webhook gateway for the branch lifecycle orchestrator.

The gateway authenticates a delivery, classifies it and hands the resulting
lifecycle action to a dispatcher without waiting for it. Once the signature
checks out GitHub always receives ``200 accepted``: downstream failures are
logged, never reported back, so GitHub does not redeliver into a system
whose failures are rarely transient.

Responses:
- 500 "Request body empty": no body
- 500 "Signatures didn't match!": missing or invalid signature
- 500 <validation message>: lifecycle event whose payload is malformed
- 200 "accepted": everything else, including ignored events
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from src.lifecycle.dispatch.dispatcher import Dispatcher
from src.lifecycle.dispatch.models import LifecycleMessage
from src.lifecycle.errors import AuthenticationFailure, ValidationFailure
from src.lifecycle.metrics import LifecycleMetrics
from src.lifecycle.webhook.classifier import Classification, classify_event
from src.lifecycle.webhook.models import GitHubEventType, parse_github_payload
from src.lifecycle.webhook.signature import verify_signature

logger = logging.getLogger(__name__)


SIGNATURE_HEADERS = ("x-hub-signature-256", "x-hub-signature")
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"

LIFECYCLE_EVENT_TYPES = {event.value for event in GitHubEventType}


@dataclass(frozen=True)
class GatewayResponse:
    """HTTP response returned to the webhook sender."""

    status_code: int
    body: str


class WebhookGateway:
    """Authenticates, classifies and dispatches GitHub webhook deliveries.

    Attributes:
        secret: Shared webhook secret.
        dispatcher: Receives lifecycle messages for non-ignored events.
        metrics: Optional metrics sink.
    """

    def __init__(
        self,
        secret: str,
        dispatcher: Dispatcher,
        metrics: Optional[LifecycleMetrics] = None,
    ) -> None:
        self.secret = secret
        self.dispatcher = dispatcher
        self.metrics = metrics

    async def handle(
        self, body: Optional[bytes], headers: Mapping[str, str]
    ) -> GatewayResponse:
        """Process one webhook delivery.

        Args:
            body: Raw request body.
            headers: Request headers (matched case-insensitively).

        Returns:
            The response to send back to GitHub.
        """
        normalized = {key.lower(): value for key, value in headers.items()}

        try:
            classification = self.authenticate_and_classify(body, normalized)
        except AuthenticationFailure as e:
            return GatewayResponse(status_code=500, body=str(e))
        except ValidationFailure as e:
            logger.warning("Rejected webhook payload: %s", e)
            return GatewayResponse(status_code=500, body=str(e))

        if not classification.is_ignored:
            await self._dispatch(classification, body, normalized)

        return GatewayResponse(status_code=200, body="accepted")

    def authenticate_and_classify(
        self, body: Optional[bytes], headers: Mapping[str, str]
    ) -> Classification:
        """Verify the signature, parse the payload and classify the event.

        Args:
            body: Raw request body.
            headers: Lowercased request headers.

        Raises:
            AuthenticationFailure: If the body or signature is missing or
                the signature does not match.
            ValidationFailure: If a lifecycle event payload is malformed.
        """
        if not body:
            raise AuthenticationFailure("Request body empty")

        signature = next(
            (headers[name] for name in SIGNATURE_HEADERS if headers.get(name)),
            None,
        )
        if not verify_signature(body, signature, self.secret):
            raise AuthenticationFailure("Signatures didn't match!")

        event_type = headers.get(EVENT_HEADER)
        payload = None
        if event_type in LIFECYCLE_EVENT_TYPES:
            payload = parse_github_payload(body)

        classification = classify_event(event_type, payload)
        logger.info(
            "Classified webhook delivery",
            extra={
                "event_type": event_type,
                "delivery": headers.get(DELIVERY_HEADER),
                "lifecycle_action": classification.action.value,
            },
        )
        if self.metrics is not None:
            self.metrics.record_webhook_event(event_type, classification.action.value)
        return classification

    async def _dispatch(
        self,
        classification: Classification,
        body: bytes,
        headers: Mapping[str, str],
    ) -> None:
        try:
            await self.dispatcher.dispatch(
                LifecycleMessage(action=classification.action, payload=body)
            )
        except Exception:
            logger.exception(
                "Failed to dispatch lifecycle action",
                extra={
                    "lifecycle_action": classification.action.value,
                    "delivery": headers.get(DELIVERY_HEADER),
                },
            )


def create_webhook_gateway(
    secret: str,
    dispatcher: Dispatcher,
    metrics: Optional[LifecycleMetrics] = None,
) -> WebhookGateway:
    """Factory function to create a WebhookGateway instance."""
    return WebhookGateway(secret=secret, dispatcher=dispatcher, metrics=metrics)
