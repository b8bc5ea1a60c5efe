"""AWS Lambda entry points.

- pipeline_handler: API Gateway proxy integration receiving the webhook
- pipeline_setup_handler: deploys a new branch (invoked asynchronously)
- pipeline_execute_handler: starts a branch pipeline (invoked asynchronously)
- environment_teardown_handler: tears a branch down (invoked asynchronously)

The downstream handlers receive the webhook body as their event. Malformed
payloads are logged and answered with a 500 body; every other failure is
logged and re-raised so the platform records the invocation as failed.
"""

import asyncio
import base64
import logging
from typing import Any, Dict, Optional

from src.lifecycle.config import get_settings
from src.lifecycle.errors import ValidationFailure
from src.lifecycle.factory import Orchestrator, build_orchestrator, log_configuration
from src.lifecycle.metrics import get_metrics
from src.lifecycle.webhook.classifier import LifecycleAction

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


_orchestrator: Optional[Orchestrator] = None


def _get_orchestrator() -> Orchestrator:
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        log_configuration(settings)
        _orchestrator = build_orchestrator(settings, metrics=get_metrics(), in_process=False)
    return _orchestrator


def _request_body(event: Dict[str, Any]) -> Optional[bytes]:
    body = event.get("body")
    if not body:
        return None
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    return body.encode("utf-8")


def pipeline_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """API Gateway handler for GitHub webhook deliveries."""
    gateway = _get_orchestrator().gateway
    response = asyncio.run(
        gateway.handle(_request_body(event), event.get("headers") or {})
    )
    return {"statusCode": response.status_code, "body": response.body}


def _run_action(action: LifecycleAction, event: Dict[str, Any]) -> Dict[str, Any]:
    actions = _get_orchestrator().actions
    try:
        asyncio.run(actions.run(action, event))
    except ValidationFailure as e:
        logger.error("Invalid payload for %s: %s", action.value, e)
        return {"statusCode": 500, "body": str(e)}
    except Exception:
        logger.exception("Lifecycle action %s failed", action.value)
        raise
    return {"statusCode": 200, "body": "success"}


def pipeline_setup_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Deploy the stacks for a created branch."""
    logger.info("Setup invoked for ref %s", event.get("ref"))
    return _run_action(LifecycleAction.SETUP, event)


def pipeline_execute_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Start the pipeline of a pushed branch."""
    logger.info("Execute invoked for ref %s", event.get("ref"))
    return _run_action(LifecycleAction.TRIGGER_EXECUTION, event)


def environment_teardown_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Tear down the deployment of a deleted branch."""
    logger.info("Teardown invoked for ref %s", event.get("ref"))
    return _run_action(LifecycleAction.TEARDOWN, event)
