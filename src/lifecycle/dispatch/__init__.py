"""Dispatch of classified events to lifecycle actions.

This module hands lifecycle messages off without waiting for them:
- LambdaDispatcher: asynchronous Lambda invocation
- InProcessDispatcher: asyncio task in the running server
"""

from src.lifecycle.dispatch.dispatcher import (
    Dispatcher,
    InProcessDispatcher,
    LambdaDispatcher,
)
from src.lifecycle.dispatch.models import LifecycleMessage

__all__ = [
    "Dispatcher",
    "InProcessDispatcher",
    "LambdaDispatcher",
    "LifecycleMessage",
]
