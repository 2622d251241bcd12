"""
Bounded wait for CloudFormation stack deletion.

The stack-status wait races a fixed timer; whichever finishes first decides
the outcome and the loser is cancelled. While the race runs, a slower watch
reports each stack resource the first time it is seen DELETE_COMPLETE.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from .config import DEFAULT_RESOURCE_POLL_INTERVAL, DEFAULT_STACK_DELETE_TIMEOUT
from .errors import StackDeletionTimeout
from .events import CleanupEvents, EventChannel
from .gateway import ResourceGateway

logger = logging.getLogger(__name__)


class BoundedPoller:
    """Waits for a stack delete to finish within a fixed ceiling."""

    def __init__(self, gateway: ResourceGateway, channel: EventChannel,
                 timeout: float = DEFAULT_STACK_DELETE_TIMEOUT,
                 interval: float = DEFAULT_RESOURCE_POLL_INTERVAL,
                 status_interval: Optional[float] = None):
        self.gateway = gateway
        self.channel = channel
        self.timeout = timeout
        self.interval = interval
        self.status_interval = status_interval
        self.reported: Set[str] = set()

    async def wait(self, stack_name: str, stack_id: str) -> Optional[Dict[str, Any]]:
        """
        Wait until the stack is deleted.

        Args:
            stack_name: Stack name, used when no id is known
            stack_id: Stack id polled for status and event history

        Returns:
            Final stack description, if CloudFormation still returns one

        Raises:
            StackDeletionTimeout: If the timer fires first
            StackDeletionError: If the stack lands in a failed state
        """
        self.reported = set()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        waiter = asyncio.create_task(self.gateway.wait_for_stack_delete(stack_id, self.status_interval))
        timer = asyncio.create_task(asyncio.sleep(self.timeout))
        watch = asyncio.create_task(self._watch(stack_name, stack_id))

        try:
            done, _ = await asyncio.wait({waiter, timer}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await _cancel(timer, watch, waiter)

        if waiter in done:
            # one last sweep so resources deleted since the previous tick are not lost
            if waiter.exception() is None:
                await self._final_check(stack_name, stack_id, deadline - loop.time())
            return waiter.result()

        logger.error(f"Stack {stack_id} was not deleted within {self.timeout}s")
        raise StackDeletionTimeout(stack_id=stack_id, timeout=self.timeout)

    async def _final_check(self, stack_name: str, stack_id: str, remaining: float) -> None:
        if remaining <= 0:
            return
        try:
            await asyncio.wait_for(self.check(stack_name, stack_id), timeout=remaining)
        except asyncio.TimeoutError:
            logger.debug(f"Skipped last resource check for {stack_id}: no time left")

    async def _watch(self, stack_name: str, stack_id: str) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.check(stack_name, stack_id)

    async def check(self, stack_name: str, stack_id: Optional[str] = None) -> int:
        """
        Report resources newly seen as DELETE_COMPLETE.

        Returns:
            Number of resourceDeleted events emitted
        """
        try:
            # a deleted stack can only be looked up by id
            events = await self.gateway.describe_stack_events(stack_id or stack_name)
        except Exception as e:
            logger.warning(f"Resource deletion check for {stack_name} failed: {e}")
            self.channel.emit(CleanupEvents.ERROR, e)
            return 0

        emitted = 0
        for event in reversed(events):
            if event.get("ResourceStatus") != "DELETE_COMPLETE":
                continue
            if event.get("ResourceType") == "AWS::CloudFormation::Stack" and \
                    event.get("PhysicalResourceId") in (stack_id, stack_name):
                continue
            logical_id = event.get("LogicalResourceId")
            if not logical_id or logical_id in self.reported:
                continue
            self.reported.add(logical_id)
            self.channel.emit(CleanupEvents.RESOURCE_DELETED, event)
            emitted += 1
        return emitted


async def _cancel(*tasks: "asyncio.Task[Any]") -> None:
    pending = [t for t in tasks if not t.done()]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
