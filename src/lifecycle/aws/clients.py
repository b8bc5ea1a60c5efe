"""boto3 session and client construction.

All AWS calls in the orchestrator go through clients created here so the
local-emulator mode (named profile, custom Lambda endpoint) is decided in
one place. Service errors are translated into ExternalServiceFailure by
``call_service`` so callers never see raw botocore exceptions.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from src.lifecycle.config import LifecycleSettings
from src.lifecycle.errors import ExternalServiceFailure

logger = logging.getLogger(__name__)


CLIENT_CONFIG = Config(retries={"max_attempts": 3, "mode": "standard"})


@dataclass(frozen=True)
class AwsCredentials:
    """Explicit credentials forwarded to the infrastructure CLI.

    Attributes:
        region: AWS region name.
        access_key: Access key id.
        secret_key: Secret access key.
        session_token: Session token for temporary credentials, if any.
    """

    region: str
    access_key: str
    secret_key: str
    session_token: Optional[str] = None


def create_session(settings: LifecycleSettings) -> boto3.session.Session:
    """Create a boto3 session honouring local mode.

    In local mode the configured profile is used; otherwise the ambient
    credential chain (Lambda role, environment, instance metadata) applies.
    """
    if settings.is_local:
        return boto3.session.Session(
            profile_name=settings.local_profile,
            region_name=settings.aws_region,
        )
    return boto3.session.Session(region_name=settings.aws_region)


def create_client(
    session: boto3.session.Session,
    service: str,
    endpoint_url: Optional[str] = None,
):
    """Create a boto3 client with standard retries."""
    return session.client(service, endpoint_url=endpoint_url, config=CLIENT_CONFIG)


def resolve_credentials(session: boto3.session.Session) -> AwsCredentials:
    """Freeze the session's current credentials for explicit forwarding.

    Raises:
        ExternalServiceFailure: If no credentials or region can be resolved.
    """
    credentials = session.get_credentials()
    if credentials is None:
        raise ExternalServiceFailure("sts", "ResolveCredentials", "no AWS credentials available")
    if not session.region_name:
        raise ExternalServiceFailure("sts", "ResolveCredentials", "no AWS region configured")

    frozen = credentials.get_frozen_credentials()
    return AwsCredentials(
        region=session.region_name,
        access_key=frozen.access_key,
        secret_key=frozen.secret_key,
        session_token=frozen.token,
    )


async def call_service(
    service: str,
    operation: str,
    method: Callable[..., Any],
    **kwargs: Any,
) -> Any:
    """Run a blocking boto3 call in a worker thread.

    Args:
        service: Service name used in error reporting.
        operation: API operation name used in error reporting.
        method: Bound boto3 client method.
        **kwargs: Request parameters.

    Returns:
        The boto3 response.

    Raises:
        ExternalServiceFailure: For any ClientError or BotoCoreError.
    """
    try:
        return await asyncio.to_thread(method, **kwargs)
    except ClientError as e:
        error = e.response.get("Error", {})
        raise ExternalServiceFailure(
            service,
            operation,
            error.get("Message", str(e)),
            error_code=error.get("Code"),
        ) from e
    except BotoCoreError as e:
        raise ExternalServiceFailure(service, operation, str(e)) from e
