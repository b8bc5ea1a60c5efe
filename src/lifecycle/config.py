"""Orchestrator configuration using pydantic-settings.

This module defines the LifecycleSettings class that reads configuration
from environment variables. The variable names are shared with the CDK app
and the deployment templates, so no prefix is applied.

Default deployment variables are every ``D_``-prefixed environment
variable with the prefix removed (``D_STAGE=dev`` becomes ``STAGE=dev``).
They are handed to each branch pipeline as its build environment.
"""

import os
from typing import Dict, List, Mapping, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ENV_PREFIX = "D_"


def collect_default_envs(environ: Mapping[str, str]) -> Dict[str, str]:
    """Collect ``D_``-prefixed variables with the prefix stripped."""
    return {
        key[len(DEFAULT_ENV_PREFIX):]: value
        for key, value in environ.items()
        if key.startswith(DEFAULT_ENV_PREFIX) and len(key) > len(DEFAULT_ENV_PREFIX)
    }


class LifecycleSettings(BaseSettings):
    """Branch lifecycle orchestrator configuration from environment variables.

    Required fields (must be set via environment variables):
    - product, tier: tags applied to every provisioned stack
    - github_auth_secret_arn: Secrets Manager ARN of the GitHub token
    - deployment_iam_arn: role assumed by the branch pipelines
    - github_webhook_secret: secret for validating webhook signatures
    - pipeline_setup_function_arn, pipeline_execute_function_arn,
      teardown_function_arn: downstream Lambda functions
    - pipeline_chatbot_address: notification target for pipelines
    - teardown_project_name: CodeBuild project running the destroy script
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    # -------------------------------------------------------------------------
    # Tagging
    # -------------------------------------------------------------------------
    product: str
    tier: str

    # -------------------------------------------------------------------------
    # GitHub
    # -------------------------------------------------------------------------
    github_auth_secret_arn: str
    github_webhook_secret: str

    # -------------------------------------------------------------------------
    # Deployment
    # -------------------------------------------------------------------------
    deployment_iam_arn: str
    pipeline_chatbot_address: str
    teardown_project_name: str

    # Collected from D_ variables by get_settings()
    default_envs: Dict[str, str] = Field(default_factory=dict)

    # -------------------------------------------------------------------------
    # Downstream functions
    # -------------------------------------------------------------------------
    pipeline_setup_function_arn: str
    pipeline_execute_function_arn: str
    teardown_function_arn: str

    # Endpoint of a local Lambda emulator, e.g. http://localhost:3002
    lambda_endpoint_url: Optional[str] = None

    # -------------------------------------------------------------------------
    # AWS
    # -------------------------------------------------------------------------
    # Local mode hands the CLI a named profile instead of explicit credentials
    is_local: bool = False
    local_profile: str = "default"
    aws_region: Optional[str] = None

    # -------------------------------------------------------------------------
    # Infrastructure CLI
    # -------------------------------------------------------------------------
    cdk_command: List[str] = Field(default_factory=lambda: ["npx", "cdk"])
    cdk_output_dir: str = "cdk.out"

    # None waits for the CLI indefinitely
    cdk_timeout_seconds: Optional[int] = None

    # -------------------------------------------------------------------------
    # Server Configuration
    # -------------------------------------------------------------------------
    host: str = "0.0.0.0"
    port: int = 8080

    # -------------------------------------------------------------------------
    # Validators
    # -------------------------------------------------------------------------
    @field_validator(
        "product",
        "tier",
        "github_auth_secret_arn",
        "github_webhook_secret",
        "deployment_iam_arn",
        "pipeline_chatbot_address",
        "teardown_project_name",
        "pipeline_setup_function_arn",
        "pipeline_execute_function_arn",
        "teardown_function_arn",
    )
    @classmethod
    def validate_not_empty(cls, v: str, info) -> str:
        """Validate that required strings are not blank."""
        if not v or not v.strip():
            raise ValueError(f"{info.field_name} cannot be empty")
        return v

    @field_validator("lambda_endpoint_url")
    @classmethod
    def validate_endpoint_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate that the Lambda endpoint is an http(s) URL."""
        if v is None or not v.strip():
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("lambda_endpoint_url must start with http:// or https://")
        return v

    @field_validator("cdk_command")
    @classmethod
    def validate_cdk_command(cls, v: List[str]) -> List[str]:
        """Validate that the CLI command names an executable."""
        if not v or not v[0].strip():
            raise ValueError("cdk_command cannot be empty")
        return v

    @field_validator("cdk_timeout_seconds")
    @classmethod
    def validate_cdk_timeout(cls, v: Optional[int]) -> Optional[int]:
        """Validate that the CLI timeout is positive when set."""
        if v is not None and v < 1:
            raise ValueError("cdk_timeout_seconds must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate that port is in valid range."""
        if not 1 <= v <= 65535:
            raise ValueError("port must be between 1 and 65535")
        return v

    def function_arn_for(self, action: str) -> str:
        """Return the downstream function ARN for a lifecycle action value."""
        arns = {
            "setup": self.pipeline_setup_function_arn,
            "execute": self.pipeline_execute_function_arn,
            "teardown": self.teardown_function_arn,
        }
        try:
            return arns[action]
        except KeyError:
            raise ValueError(f"No downstream function for action '{action}'")


def get_settings(environ: Optional[Mapping[str, str]] = None) -> LifecycleSettings:
    """Create and return a LifecycleSettings instance.

    Args:
        environ: Source of the ``D_`` default variables. Defaults to
                 ``os.environ``.

    Returns:
        LifecycleSettings: Configured settings instance.

    Raises:
        pydantic.ValidationError: If required fields are missing or invalid.
    """
    source = os.environ if environ is None else environ
    return LifecycleSettings(default_envs=collect_default_envs(source))
