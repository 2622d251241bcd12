"""
Shared fakes for the ECS and CloudFormation clients.
"""

from typing import Dict, List, Optional
from unittest.mock import Mock

import boto3
import pytest
from botocore.exceptions import ClientError

from ecs_cleanup.config import CleanupConfig

CLUSTER = "demo"
STACK_ID = "arn:aws:cloudformation:us-west-2:123456789012:stack/EC2ContainerService-demo/abc"

_waiter_client = None


def real_waiter(name):
    """Waiter from a real, never-called CloudFormation client."""
    global _waiter_client
    if _waiter_client is None:
        _waiter_client = boto3.client(
            "cloudformation", region_name="us-east-1",
            aws_access_key_id="testing", aws_secret_access_key="testing",
        )
    return _waiter_client.get_waiter(name)


def client_error(code: str = "ServerException", message: str = "boom", operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


def service_arn(name: str) -> str:
    return f"arn:aws:ecs:us-west-2:123456789012:service/{CLUSTER}/{name}"


def task_arn(task_id: str) -> str:
    return f"arn:aws:ecs:us-west-2:123456789012:task/{CLUSTER}/{task_id}"


def instance_arn(instance_id: str) -> str:
    return f"arn:aws:ecs:us-west-2:123456789012:container-instance/{CLUSTER}/{instance_id}"


def paginator_for(pages_by_operation: Dict[str, object]):
    """get_paginator side effect; values are page lists or callables taking paginate kwargs."""
    def get_paginator(operation):
        source = pages_by_operation.get(operation, [])
        paginator = Mock()
        if callable(source):
            paginator.paginate.side_effect = source
        else:
            paginator.paginate.return_value = source
        return paginator
    return get_paginator


def make_ecs(services: Optional[Dict[str, List[str]]] = None, tasks: Optional[List[str]] = None,
             instances: Optional[List[str]] = None, status: str = "ACTIVE", exists: bool = True) -> Mock:
    """Fake ECS client. ``services`` maps launch type to service ARNs."""
    services = services or {}
    tasks = tasks or []
    instances = instances or []
    ecs = Mock()

    if exists:
        ecs.describe_clusters.return_value = {
            "clusters": [{"clusterName": CLUSTER, "status": status}],
            "failures": [],
        }
    else:
        ecs.describe_clusters.return_value = {
            "clusters": [],
            "failures": [{"arn": CLUSTER, "reason": "MISSING"}],
        }

    ecs.get_paginator.side_effect = paginator_for({
        "list_services": lambda **kw: [{"serviceArns": services.get(kw.get("launchType"), [])}],
        "list_tasks": lambda **kw: [{"taskArns": tasks if kw.get("launchType") == "EC2" else []}],
        "list_container_instances": [{"containerInstanceArns": instances}],
    })

    ecs.update_service.side_effect = lambda cluster, service, desiredCount: {
        "service": {"serviceArn": service, "serviceName": service.rsplit("/", 1)[-1], "desiredCount": desiredCount}
    }
    ecs.stop_task.side_effect = lambda cluster, task, reason: {
        "task": {"taskArn": task, "lastStatus": "STOPPED", "stoppedReason": reason}
    }
    ecs.deregister_container_instance.side_effect = lambda cluster, containerInstance, force: {
        "containerInstance": {"containerInstanceArn": containerInstance, "status": "INACTIVE"}
    }
    ecs.delete_service.side_effect = lambda cluster, service: {
        "service": {"serviceArn": service, "status": "DRAINING"}
    }
    ecs.delete_cluster.return_value = {"cluster": {"clusterName": CLUSTER, "status": "INACTIVE"}}
    return ecs


class FakeStack:
    """CloudFormation client whose stack finishes deleting after a few status checks."""

    def __init__(self, exists: bool = True, polls_until_deleted: int = 2, final_status: str = "DELETE_COMPLETE",
                 stack_events: Optional[List[dict]] = None, delete_statuses: Optional[List[str]] = None):
        self.exists = exists
        self.polls_until_deleted = polls_until_deleted
        self.final_status = final_status
        self.delete_statuses = delete_statuses
        self.stack_events = stack_events if stack_events is not None else [
            {"LogicalResourceId": "Vpc", "ResourceStatus": "DELETE_COMPLETE", "ResourceType": "AWS::EC2::VPC"},
            {"LogicalResourceId": "Vpc", "ResourceStatus": "DELETE_IN_PROGRESS", "ResourceType": "AWS::EC2::VPC"},
            {"LogicalResourceId": "EcsInstanceAsg", "ResourceStatus": "DELETE_COMPLETE",
             "ResourceType": "AWS::AutoScaling::AutoScalingGroup"},
            {"LogicalResourceId": "Vpc", "ResourceStatus": "DELETE_COMPLETE", "ResourceType": "AWS::EC2::VPC"},
        ]
        self.delete_requested = False
        self.status_checks = 0

        self.client = Mock()
        self.client.describe_stacks.side_effect = self._describe_stacks
        self.client.delete_stack.side_effect = self._delete_stack
        self.client.get_waiter.side_effect = real_waiter
        self.client.get_paginator.side_effect = paginator_for({
            "describe_stack_events": lambda **kw: [{"StackEvents": list(self.stack_events)}],
        })
        self.client.describe_stack_resources.return_value = {"StackResources": []}

    def _describe_stacks(self, StackName):
        if not self.exists:
            raise client_error("ValidationError", f"Stack with id {StackName} does not exist", "DescribeStacks")
        if not self.delete_requested:
            status = "CREATE_COMPLETE"
        else:
            self.status_checks += 1
            if self.delete_statuses:
                status = self.delete_statuses[min(self.status_checks, len(self.delete_statuses)) - 1]
            elif self.status_checks >= self.polls_until_deleted:
                status = self.final_status
            else:
                status = "DELETE_IN_PROGRESS"
        return {"Stacks": [{"StackId": STACK_ID, "StackName": f"EC2ContainerService-{CLUSTER}", "StackStatus": status}]}

    def _delete_stack(self, StackName):
        self.delete_requested = True
        return {}


@pytest.fixture
def fast_config():
    return CleanupConfig(
        region="us-west-2",
        stack_delete_timeout=2.0,
        resource_poll_interval=0.01,
        stack_status_poll_interval=0.01,
    )
