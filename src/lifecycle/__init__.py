"""Branch lifecycle orchestration for per-branch deployments.

This package reacts to GitHub branch events, providing:
- Webhook signature verification and event classification
- Fire-and-forget dispatch of lifecycle actions
- Branch stack deployment through the CDK CLI
- Pipeline resolution and execution triggering
- Teardown of deleted branches (execution stops, stack destroy, destroy build)
"""
