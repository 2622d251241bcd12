"""
Cluster cleanup pipeline.

Tears down an ECS cluster in a fixed order: services are scaled to zero,
tasks stopped, container instances deregistered, services deleted, the
EC2ContainerService-<cluster> stack deleted, and finally the cluster itself.
Progress is reported on an EventChannel returned before any AWS call is made.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Set

from .config import CleanupConfig, make_clients, stack_name_for
from .errors import ClusterDeletionError, ClusterNotFoundError, StackDeletionError
from .events import CleanupEvents, EventChannel
from .gateway import ResourceGateway
from .poller import BoundedPoller

logger = logging.getLogger(__name__)


class ClusterCleanup:
    """Deletes an ECS cluster and every resource that depends on it."""

    def __init__(self, config: Optional[CleanupConfig] = None, ecs_client: Any = None, cfn_client: Any = None):
        self.config = config or CleanupConfig()
        if ecs_client is None or cfn_client is None:
            default_ecs, default_cfn = make_clients(self.config)
            ecs_client = ecs_client or default_ecs
            cfn_client = cfn_client or default_cfn
        self.ecs = ecs_client
        self.cloudformation = cfn_client
        self._tasks: Set["asyncio.Task[None]"] = set()

    def start(self, cluster: str, verbose: bool = False) -> EventChannel:
        """
        Schedule a cleanup run on the running event loop.

        The run is a task on the caller's loop, so subscriptions on the
        returned channel are served by that same loop. There is no loop to
        schedule on outside async code, so a bare synchronous call raises
        instead of returning a channel nobody drives; synchronous callers use
        delete_cluster_and_resources, which blocks until the run finishes.

        Args:
            cluster: Cluster name
            verbose: Log every event and the total run time

        Returns:
            EventChannel carrying the run's lifecycle events

        Raises:
            RuntimeError: If called without a running event loop
        """
        loop = asyncio.get_running_loop()
        channel = EventChannel(verbose=verbose)
        task = loop.create_task(self.run(cluster, channel, verbose=verbose))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return channel

    def delete_cluster_and_resources(self, cluster: str, verbose: bool = False) -> EventChannel:
        """Run the whole pipeline synchronously; the returned channel is already closed."""
        channel = EventChannel(verbose=verbose)
        asyncio.run(self.run(cluster, channel, verbose=verbose))
        return channel

    async def run(self, cluster: str, channel: EventChannel, verbose: bool = False) -> None:
        started = time.monotonic()
        try:
            await self._pipeline(cluster, channel)
        except Exception as e:
            logger.exception(f"Cleanup of {cluster} failed unexpectedly")
            if not channel.closed:
                channel.emit(CleanupEvents.DONE_WITH_ERROR, e)
        finally:
            if verbose:
                logger.info(f"Deleting cluster {cluster} took {time.monotonic() - started:.3f}s.")

    async def _pipeline(self, cluster: str, channel: EventChannel) -> None:
        gateway = ResourceGateway(self.ecs, self.cloudformation, channel, self.config)

        channel.emit(CleanupEvents.START, cluster)

        if not await gateway.cluster_exists(cluster):
            channel.emit(CleanupEvents.DONE_WITH_ERROR, ClusterNotFoundError(cluster))
            return

        stack = await gateway.describe_stack(cluster)
        if stack:
            channel.emit(CleanupEvents.STACK_FOUND, stack)

        logger.debug(f"Scaling down services in {cluster}")
        found_services = await gateway.list_services(cluster)
        services: List[Dict[str, Any]] = []
        if found_services:
            channel.emit(CleanupEvents.SERVICES_FOUND, found_services)
            services = await gateway.scale_services_to_zero(cluster, found_services)
            channel.emit(CleanupEvents.SERVICES_SCALED_DOWN, services)

        logger.debug(f"Stopping tasks in {cluster}")
        found_tasks = await gateway.list_tasks(cluster)
        if found_tasks:
            channel.emit(CleanupEvents.TASKS_FOUND, found_tasks)
            tasks = await gateway.stop_tasks(cluster, found_tasks, self.config.stop_task_reason)
            channel.emit(CleanupEvents.TASKS_STOPPED, tasks)

        logger.debug(f"Deregistering container instances in {cluster}")
        found_instances = await gateway.list_container_instances(cluster)
        if found_instances:
            channel.emit(CleanupEvents.INSTANCES_FOUND, found_instances)
            instances = await gateway.deregister_container_instances(cluster, found_instances)
            channel.emit(CleanupEvents.INSTANCES_DEREGISTERED, instances)

        if found_services:
            names = [s.get("serviceArn") or s.get("serviceName") for s in services]
            deleted = await gateway.delete_services(cluster, [n for n in names if n])
            channel.emit(CleanupEvents.SERVICES_DELETED, deleted)

        if stack:
            stack_id = stack.get("StackId") or stack_name_for(cluster)
            if not await gateway.delete_stack(cluster):
                # without a delete request the wait could only run out the clock
                channel.emit(CleanupEvents.DONE_WITH_ERROR, StackDeletionError(
                    f"DeleteStack {stack_name_for(cluster)} was rejected", stack_id=stack_id,
                ))
                return
            channel.emit(CleanupEvents.STACK_DELETION_STARTED, stack_id)

            poller = BoundedPoller(
                gateway, channel,
                timeout=self.config.stack_delete_timeout,
                interval=self.config.resource_poll_interval,
                status_interval=self.config.stack_status_poll_interval,
            )
            try:
                await poller.wait(stack_name_for(cluster), stack_id)
            except StackDeletionError as e:
                channel.emit(CleanupEvents.DONE_WITH_ERROR, e)
                return
            channel.emit(CleanupEvents.STACK_DELETION_DONE, stack_id)

        try:
            deleted_cluster = await gateway.delete_cluster(cluster)
        except ClusterDeletionError as e:
            channel.emit(CleanupEvents.DONE_WITH_ERROR, e)
            return

        channel.emit(CleanupEvents.CLUSTER_DELETED, deleted_cluster)
        channel.emit(CleanupEvents.DONE, cluster)
