"""Per-invocation environment for the infrastructure CLI.

The CLI child process never inherits the orchestrator's environment. Every
variable it sees is assembled here from settings, the branch identity and
explicitly forwarded credentials, so concurrent invocations for different
branches cannot leak state into each other.

Variables passed to the CDK app:

- PRODUCT, TIER: stack tags
- GITHUB_AUTH_SECRET_ARN: Secrets Manager ARN of the GitHub token
- BRANCH_NAME: sanitized branch (stack and pipeline names)
- ORIGINAL_BRANCH_NAME: raw branch (pipeline source action)
- GITHUB_OWNER_NAME, GITHUB_REPO_NAME: repository coordinates
- DEFAULT_DEPLOYMENT_ENVS: JSON build environment for the pipeline
- DEPLOYMENT_IAM_ARN: role assumed by the pipeline
- PIPELINE_CHATBOT_ADDRESS: notification target
- AWS_PROFILE (local mode) or AWS_REGION/AWS_DEFAULT_REGION,
  AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_SESSION_TOKEN
"""

import json
import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from src.lifecycle.aws.clients import AwsCredentials
from src.lifecycle.config import LifecycleSettings
from src.lifecycle.webhook.models import BranchIdentity


@dataclass(frozen=True)
class DeploymentEnvironment:
    """Immutable environment mapping handed to one CLI invocation.

    Attributes:
        variables: Read-only variable mapping.
        branch: Branch the environment was built for.
    """

    variables: Mapping[str, str]
    branch: BranchIdentity = field(compare=False)

    def as_dict(self) -> Dict[str, str]:
        """Return a mutable copy suitable for subprocess ``env=``."""
        return dict(self.variables)


def default_deployment_envs(
    defaults: Mapping[str, str], branch: BranchIdentity
) -> str:
    """Serialize the default build environment with the branch override."""
    overlay = dict(defaults)
    overlay["BRANCH_NAME"] = branch.sanitized
    return json.dumps(overlay, sort_keys=True)


def build_deployment_environment(
    settings: LifecycleSettings,
    branch: BranchIdentity,
    repo_owner: str,
    repo_name: str,
    credentials: Optional[AwsCredentials] = None,
    search_path: Optional[str] = None,
) -> DeploymentEnvironment:
    """Assemble the CLI environment for one branch action.

    Args:
        settings: Orchestrator settings.
        branch: Branch the action applies to.
        repo_owner: Repository owner login.
        repo_name: Repository name.
        credentials: Explicit credentials; required unless in local mode.
        search_path: PATH used to locate the CLI. Defaults to the
                     orchestrator's own PATH.

    Returns:
        The DeploymentEnvironment.

    Raises:
        ValueError: If credentials are missing outside local mode.
    """
    variables = {
        "PRODUCT": settings.product,
        "TIER": settings.tier,
        "GITHUB_AUTH_SECRET_ARN": settings.github_auth_secret_arn,
        "BRANCH_NAME": branch.sanitized,
        "ORIGINAL_BRANCH_NAME": branch.raw,
        "GITHUB_OWNER_NAME": repo_owner,
        "GITHUB_REPO_NAME": repo_name,
        "DEFAULT_DEPLOYMENT_ENVS": default_deployment_envs(settings.default_envs, branch),
        "DEPLOYMENT_IAM_ARN": settings.deployment_iam_arn,
        "PIPELINE_CHATBOT_ADDRESS": settings.pipeline_chatbot_address,
        "PATH": search_path if search_path is not None else os.environ.get("PATH", ""),
    }

    if settings.is_local:
        variables["AWS_PROFILE"] = settings.local_profile
    else:
        if credentials is None:
            raise ValueError("AWS credentials are required outside local mode")
        variables.update(
            {
                "AWS_REGION": credentials.region,
                "AWS_DEFAULT_REGION": credentials.region,
                "AWS_ACCESS_KEY_ID": credentials.access_key,
                "AWS_SECRET_ACCESS_KEY": credentials.secret_key,
            }
        )
        if credentials.session_token:
            variables["AWS_SESSION_TOKEN"] = credentials.session_token

    return DeploymentEnvironment(variables=MappingProxyType(variables), branch=branch)
