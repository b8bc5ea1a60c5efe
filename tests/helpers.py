"""Shared settings and payload builders for lifecycle tests."""

import json
from typing import Optional

from src.lifecycle.webhook.signature import compute_signature


WEBHOOK_SECRET = "s3cr3t-webhook"


BASE_SETTINGS = {
    "product": "widgets",
    "tier": "dev",
    "github_auth_secret_arn": "arn:aws:secretsmanager:eu-west-1:123456789012:secret:github",
    "github_webhook_secret": WEBHOOK_SECRET,
    "deployment_iam_arn": "arn:aws:iam::123456789012:role/deployer",
    "pipeline_chatbot_address": "arn:aws:chatbot::123456789012:chat-configuration/slack-channel/builds",
    "teardown_project_name": "branch-teardown",
    "pipeline_setup_function_arn": "arn:aws:lambda:eu-west-1:123456789012:function:setup",
    "pipeline_execute_function_arn": "arn:aws:lambda:eu-west-1:123456789012:function:execute",
    "teardown_function_arn": "arn:aws:lambda:eu-west-1:123456789012:function:teardown",
}


def make_payload(
    ref: str = "refs/heads/feature/login",
    repo: str = "Widgets",
    owner: str = "acme",
    ref_type: Optional[str] = None,
    created: bool = False,
    deleted: bool = False,
) -> dict:
    payload = {
        "ref": ref,
        "created": created,
        "deleted": deleted,
        "repository": {"name": repo, "owner": {"login": owner, "id": 4242}},
    }
    if ref_type is not None:
        payload["ref_type"] = ref_type
    return payload


def make_body(**kwargs) -> bytes:
    return json.dumps(make_payload(**kwargs)).encode("utf-8")


def signed_headers(body: bytes, event_type: str, secret: str = WEBHOOK_SECRET) -> dict:
    return {
        "X-Hub-Signature": compute_signature(body, secret, "sha1"),
        "X-GitHub-Event": event_type,
    }
