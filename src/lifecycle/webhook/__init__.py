"""GitHub webhook handling for the branch lifecycle orchestrator.

This module authenticates, parses and classifies GitHub events:
- create - Branch created, provision its deployment
- push - Commits pushed, start the branch pipeline
- delete - Branch deleted, tear its deployment down

Signatures are verified here against the shared webhook secret.
"""

from .classifier import Classification, LifecycleAction, classify_event
from .handler import GatewayResponse, WebhookGateway, create_webhook_gateway
from .models import (
    BranchIdentity,
    GitHubEventType,
    GithubPayload,
    parse_github_payload,
    sanitize_branch,
)
from .signature import compute_signature, verify_signature

__all__ = [
    "BranchIdentity",
    "Classification",
    "GatewayResponse",
    "GitHubEventType",
    "GithubPayload",
    "LifecycleAction",
    "WebhookGateway",
    "classify_event",
    "compute_signature",
    "create_webhook_gateway",
    "parse_github_payload",
    "sanitize_branch",
    "verify_signature",
]
