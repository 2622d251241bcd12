"""
Thin async wrappers around the ECS and CloudFormation control planes.

Every call is independently fallible: a failed call emits a non-terminal
error event and yields an empty result. The stack-delete wait and the final
cluster deletion are the exceptions and propagate to the caller.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from .config import CleanupConfig, stack_name_for
from .errors import CleanupError, ClusterDeletionError, StackDeletionError
from .events import CleanupEvents, EventChannel

logger = logging.getLogger(__name__)

AWS_ERRORS = (ClientError, BotoCoreError)


class ResourceGateway:
    """Per-step remote operations used by the cleanup pipeline."""

    def __init__(self, ecs_client: Any, cfn_client: Any, channel: EventChannel,
                 config: Optional[CleanupConfig] = None):
        self.ecs = ecs_client
        self.cloudformation = cfn_client
        self.channel = channel
        self.config = config or CleanupConfig()

    def _report(self, error: Exception, action: str) -> None:
        logger.warning(f"{action} failed: {error}")
        self.channel.emit(CleanupEvents.ERROR, error)

    async def _call(self, action: str, fn: Callable[..., Any], default: Any = None, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except AWS_ERRORS as e:
            self._report(e, action)
            return default

    async def _list_arns(self, action: str, client: Any, operation: str, result_key: str,
                         **kwargs: Any) -> Optional[List[str]]:
        def collect() -> List[str]:
            arns: List[str] = []
            for page in client.get_paginator(operation).paginate(**kwargs):
                arns.extend(page.get(result_key, []))
            return arns

        try:
            return await asyncio.to_thread(collect)
        except AWS_ERRORS as e:
            self._report(e, action)
            return None

    async def _fan_out(self, coros: List[Any]) -> List[Any]:
        results = await asyncio.gather(*coros)
        return [r for r in results if r is not None]

    # Cluster

    async def describe_cluster(self, cluster: str) -> List[Dict[str, Any]]:
        response = await self._call(
            f"DescribeClusters {cluster}", self.ecs.describe_clusters, clusters=[cluster]
        )
        if not response:
            return []

        for failure in response.get("failures", []):
            if failure.get("reason") != "MISSING":
                self._report(
                    CleanupError(f"{failure.get('arn')}: {failure.get('reason')} {failure.get('detail', '')}".strip()),
                    f"DescribeClusters {cluster}",
                )
        return response.get("clusters", [])

    async def cluster_exists(self, cluster: str) -> bool:
        clusters = await self.describe_cluster(cluster)
        return any(
            c.get("clusterName") == cluster and c.get("status") != "INACTIVE"
            for c in clusters
        )

    async def delete_cluster(self, cluster: str) -> Dict[str, Any]:
        """
        Delete the cluster itself.

        Raises:
            ClusterDeletionError: If DeleteCluster fails
        """
        try:
            response = await asyncio.to_thread(self.ecs.delete_cluster, cluster=cluster)
        except AWS_ERRORS as e:
            logger.error(f"DeleteCluster {cluster} failed: {e}")
            raise ClusterDeletionError(cluster, str(e)) from e
        return response.get("cluster", {})

    # Services

    async def list_services(self, cluster: str) -> List[str]:
        arns: List[str] = []
        for launch_type in self.config.launch_types:
            found = await self._list_arns(
                f"ListServices {cluster} ({launch_type})", self.ecs, "list_services", "serviceArns",
                cluster=cluster, launchType=launch_type,
            )
            arns.extend(found or [])
        return arns

    async def scale_service_to_zero(self, cluster: str, service: str) -> Optional[Dict[str, Any]]:
        response = await self._call(
            f"UpdateService {service}", self.ecs.update_service,
            cluster=cluster, service=service, desiredCount=0,
        )
        return response.get("service") if response else None

    async def scale_services_to_zero(self, cluster: str, services: List[str]) -> List[Dict[str, Any]]:
        return await self._fan_out([self.scale_service_to_zero(cluster, s) for s in services])

    async def delete_service(self, cluster: str, service: str) -> Optional[Dict[str, Any]]:
        response = await self._call(
            f"DeleteService {service}", self.ecs.delete_service, cluster=cluster, service=service
        )
        return response.get("service") if response else None

    async def delete_services(self, cluster: str, services: List[str]) -> List[Dict[str, Any]]:
        return await self._fan_out([self.delete_service(cluster, s) for s in services])

    # Tasks

    async def list_tasks(self, cluster: str) -> List[str]:
        arns: List[str] = []
        for launch_type in self.config.launch_types:
            found = await self._list_arns(
                f"ListTasks {cluster} ({launch_type})", self.ecs, "list_tasks", "taskArns",
                cluster=cluster, launchType=launch_type,
            )
            for arn in found or []:
                if arn not in arns:
                    arns.append(arn)
        return arns

    async def stop_task(self, cluster: str, task: str, reason: str) -> Optional[Dict[str, Any]]:
        response = await self._call(
            f"StopTask {task}", self.ecs.stop_task, cluster=cluster, task=task, reason=reason
        )
        return response.get("task") if response else None

    async def stop_tasks(self, cluster: str, tasks: List[str], reason: Optional[str] = None) -> List[Dict[str, Any]]:
        reason = reason or self.config.stop_task_reason
        return await self._fan_out([self.stop_task(cluster, t, reason) for t in tasks])

    # Container instances

    async def list_container_instances(self, cluster: str) -> List[str]:
        found = await self._list_arns(
            f"ListContainerInstances {cluster}", self.ecs, "list_container_instances",
            "containerInstanceArns", cluster=cluster,
        )
        return found or []

    async def deregister_container_instance(self, cluster: str, instance: str) -> Optional[Dict[str, Any]]:
        response = await self._call(
            f"DeregisterContainerInstance {instance}", self.ecs.deregister_container_instance,
            cluster=cluster, containerInstance=instance, force=True,
        )
        return response.get("containerInstance") if response else None

    async def deregister_container_instances(self, cluster: str, instances: List[str]) -> List[Dict[str, Any]]:
        return await self._fan_out([self.deregister_container_instance(cluster, i) for i in instances])

    # CloudFormation

    async def describe_stack(self, cluster: str) -> Optional[Dict[str, Any]]:
        stack_name = stack_name_for(cluster)
        try:
            response = await asyncio.to_thread(self.cloudformation.describe_stacks, StackName=stack_name)
        except ClientError as e:
            # clusters created outside the console have no stack
            if "does not exist" in str(e):
                logger.debug(f"No stack {stack_name} for cluster {cluster}")
                return None
            self._report(e, f"DescribeStacks {stack_name}")
            return None
        except BotoCoreError as e:
            self._report(e, f"DescribeStacks {stack_name}")
            return None
        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    async def delete_stack(self, cluster: str) -> bool:
        stack_name = stack_name_for(cluster)
        response = await self._call(
            f"DeleteStack {stack_name}", self.cloudformation.delete_stack, StackName=stack_name
        )
        return response is not None

    async def describe_stack_events(self, stack: str) -> List[Dict[str, Any]]:
        def collect() -> List[Dict[str, Any]]:
            events: List[Dict[str, Any]] = []
            paginator = self.cloudformation.get_paginator("describe_stack_events")
            for page in paginator.paginate(StackName=stack):
                events.extend(page.get("StackEvents", []))
            return events

        try:
            return await asyncio.to_thread(collect)
        except AWS_ERRORS as e:
            self._report(e, f"DescribeStackEvents {stack}")
            return []

    async def describe_stack_resources(self, stack: str, logical_id: Optional[str] = None) -> List[Dict[str, Any]]:
        kwargs = {"StackName": stack}
        if logical_id:
            kwargs["LogicalResourceId"] = logical_id
        response = await self._call(
            f"DescribeStackResources {stack}", self.cloudformation.describe_stack_resources, **kwargs
        )
        return (response or {}).get("StackResources", [])

    def _delete_acceptors(self) -> List[Any]:
        """Success/failure rules of botocore's stack_delete_complete waiter."""
        return self.cloudformation.get_waiter("stack_delete_complete").config.acceptors

    async def wait_for_stack_delete(self, stack_id: str, poll_interval: Optional[float] = None) -> Optional[Dict[str, Any]]:
        """
        Poll a stack until botocore's stack_delete_complete waiter would succeed.

        States the waiter neither accepts nor rejects (a stale CREATE_COMPLETE
        right after DeleteStack, DELETE_IN_PROGRESS) keep the poll going; the
        caller's timeout is the only ceiling.

        Args:
            stack_id: Stack id or name
            poll_interval: Seconds between DescribeStacks calls

        Returns:
            The final stack description, or None if the stack is gone

        Raises:
            StackDeletionError: If a failure acceptor matches or an unexpected error occurs
        """
        if poll_interval is None:
            poll_interval = self.config.stack_status_poll_interval
        acceptors = self._delete_acceptors()

        while True:
            try:
                response = await asyncio.to_thread(self.cloudformation.describe_stacks, StackName=stack_id)
            except ClientError as e:
                response = e.response
                error = e
            except BotoCoreError as e:
                raise StackDeletionError(f"Waiting for {stack_id} failed: {e}", stack_id=stack_id) from e
            else:
                error = None

            stacks = response.get("Stacks") or []
            status = stacks[0].get("StackStatus") if stacks else None
            matched = next((a for a in acceptors if a.matcher_func(response)), None)

            if matched is not None and matched.state == "success":
                return stacks[0] if stacks else None
            if matched is not None and matched.state == "failure":
                reason = stacks[0].get("StackStatusReason", "") if stacks else str(error or "")
                raise StackDeletionError(
                    f"Stack {stack_id} entered {status} {reason}".strip(), stack_id=stack_id, status=status
                )
            if error is not None:
                raise StackDeletionError(f"Waiting for {stack_id} failed: {error}", stack_id=stack_id) from error
            if not stacks:
                return None

            logger.debug(f"Stack {stack_id} is {status}, checking again in {poll_interval}s")
            await asyncio.sleep(poll_interval)
