"""
Configuration for cluster cleanup runs.
"""

import os
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

import boto3

STACK_NAME_PREFIX = "EC2ContainerService-"

DEFAULT_STACK_DELETE_TIMEOUT = 600.0
DEFAULT_RESOURCE_POLL_INTERVAL = 10.0
DEFAULT_STACK_STATUS_POLL_INTERVAL = 15.0
DEFAULT_STOP_TASK_REASON = "Cluster being deleted"

_TRUTHY = {"1", "true", "yes", "on"}


def stack_name_for(cluster: str) -> str:
    """Name of the CloudFormation stack the ECS console creates for a cluster."""
    return f"{STACK_NAME_PREFIX}{cluster}"


@dataclass
class CleanupConfig:
    """Connection settings and tunables for a cleanup run."""
    region: Optional[str] = None
    profile: Optional[str] = None
    endpoint_url: Optional[str] = None
    enable_fargate: bool = False
    stack_delete_timeout: float = DEFAULT_STACK_DELETE_TIMEOUT
    resource_poll_interval: float = DEFAULT_RESOURCE_POLL_INTERVAL
    stack_status_poll_interval: float = DEFAULT_STACK_STATUS_POLL_INTERVAL
    stop_task_reason: str = DEFAULT_STOP_TASK_REASON
    extra_client_kwargs: dict = field(default_factory=dict)

    @property
    def launch_types(self) -> List[str]:
        launch_types = ["EC2"]
        if self.enable_fargate:
            launch_types.append("FARGATE")
        return launch_types

    @classmethod
    def from_env(cls, **overrides: Any) -> "CleanupConfig":
        """
        Build a config from environment variables.

        Args:
            **overrides: Explicit values; ``None`` means "use the environment"

        Returns:
            CleanupConfig

        Raises:
            ValueError: If a numeric environment variable cannot be parsed
        """
        values = {
            "region": os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION"),
            "profile": os.environ.get("AWS_PROFILE"),
            "endpoint_url": os.environ.get("ECS_CLEANUP_ENDPOINT_URL"),
            "enable_fargate": os.environ.get("ECS_CLEANUP_ENABLE_FARGATE", "").lower() in _TRUTHY,
        }

        timeout = os.environ.get("ECS_CLEANUP_STACK_TIMEOUT")
        if timeout:
            values["stack_delete_timeout"] = _parse_seconds("ECS_CLEANUP_STACK_TIMEOUT", timeout)

        interval = os.environ.get("ECS_CLEANUP_POLL_INTERVAL")
        if interval:
            values["resource_poll_interval"] = _parse_seconds("ECS_CLEANUP_POLL_INTERVAL", interval)

        for key, value in overrides.items():
            if value is not None:
                values[key] = value

        for key in ("stack_delete_timeout", "resource_poll_interval", "stack_status_poll_interval"):
            if key in values and values[key] <= 0:
                raise ValueError(f"{key} must be positive, got {values[key]!r}")

        return cls(**values)


def _parse_seconds(name: str, raw: str) -> float:
    try:
        seconds = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}")
    if seconds <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return seconds


def make_clients(config: CleanupConfig) -> Tuple[Any, Any]:
    """
    Create the ECS and CloudFormation clients for a config.

    Returns:
        Tuple of (ecs_client, cloudformation_client)
    """
    session = boto3.session.Session(profile_name=config.profile, region_name=config.region)

    client_kwargs = dict(config.extra_client_kwargs)
    if config.endpoint_url:
        client_kwargs["endpoint_url"] = config.endpoint_url

    ecs = session.client("ecs", **client_kwargs)
    cloudformation = session.client("cloudformation", **client_kwargs)
    return ecs, cloudformation
