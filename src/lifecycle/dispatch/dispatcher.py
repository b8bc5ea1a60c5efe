"""Fire-and-forget dispatch of lifecycle actions.

The webhook gateway must answer GitHub quickly while setup and teardown
can take most of an hour, so actions are handed off and never awaited:

- LambdaDispatcher: queues an asynchronous invocation of the setup,
  execute or teardown function (InvocationType=Event)
- InProcessDispatcher: schedules the action as an asyncio task in the
  running server, used for local development

The dispatcher does not observe completion; actions log their own failures.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Set

from src.lifecycle.aws.functions import FunctionInvoker
from src.lifecycle.config import LifecycleSettings
from src.lifecycle.dispatch.models import LifecycleMessage

logger = logging.getLogger(__name__)


class Dispatcher(ABC):
    """Abstract base class for lifecycle message dispatchers.

    Implementations must return as soon as the message is handed off.
    """

    @abstractmethod
    async def dispatch(self, message: LifecycleMessage) -> None:
        """Hand a message off for asynchronous processing.

        Args:
            message: The lifecycle message to run.
        """


class LambdaDispatcher(Dispatcher):
    """Dispatches messages as asynchronous Lambda invocations.

    Attributes:
        invoker: Lambda client wrapper.
        settings: Source of the downstream function ARNs.
    """

    def __init__(self, invoker: FunctionInvoker, settings: LifecycleSettings):
        self.invoker = invoker
        self.settings = settings

    async def dispatch(self, message: LifecycleMessage) -> None:
        function_arn = self.settings.function_arn_for(message.action.value)
        await self.invoker.invoke_event(function_arn, message.payload)
        logger.info(
            "Dispatched lifecycle action",
            extra={"action": message.action.value, "function": function_arn},
        )


# Runs one lifecycle message to completion
MessageHandler = Callable[[LifecycleMessage], Awaitable[object]]


class InProcessDispatcher(Dispatcher):
    """Dispatches messages as tasks on the running event loop.

    References to pending tasks are held until they finish so they are not
    garbage collected mid-flight.

    Attributes:
        handler: Coroutine function running a message.
    """

    def __init__(self, handler: MessageHandler):
        self.handler = handler
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        """Number of dispatched messages still running."""
        return len(self._tasks)

    async def dispatch(self, message: LifecycleMessage) -> None:
        task = asyncio.create_task(self._run(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(
            "Scheduled lifecycle action in process",
            extra={"action": message.action.value},
        )

    async def _run(self, message: LifecycleMessage) -> None:
        try:
            await self.handler(message)
        except Exception:
            logger.exception(
                "Lifecycle action failed",
                extra={"action": message.action.value},
            )

    async def drain(self) -> None:
        """Wait for every dispatched message to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
