"""Lambda invocation for fire-and-forget downstream actions."""

import logging

from src.lifecycle.aws.clients import call_service

logger = logging.getLogger(__name__)


SERVICE = "lambda"


class FunctionInvoker:
    """Async wrapper around the Lambda client."""

    def __init__(self, client):
        self.client = client

    async def invoke_event(self, function_arn: str, payload: bytes) -> None:
        """Queue an asynchronous invocation; the result is never observed."""
        await call_service(
            SERVICE, "Invoke", self.client.invoke,
            FunctionName=function_arn,
            InvocationType="Event",
            Payload=payload,
        )
        logger.debug("Queued invocation of %s", function_arn)
