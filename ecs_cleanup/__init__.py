"""
ecs-cleanup - tear down an ECS cluster and everything that depends on it.
"""

from .config import CleanupConfig, make_clients, stack_name_for
from .errors import (
    CleanupError,
    ClusterDeletionError,
    ClusterNotFoundError,
    StackDeletionError,
    StackDeletionTimeout,
)
from .events import CleanupEvents, EventChannel, LifecycleEvent, Subscription
from .gateway import ResourceGateway
from .orchestrator import ClusterCleanup
from .poller import BoundedPoller

__version__ = "0.1.0"

__all__ = [
    "BoundedPoller",
    "CleanupConfig",
    "CleanupError",
    "CleanupEvents",
    "ClusterCleanup",
    "ClusterDeletionError",
    "ClusterNotFoundError",
    "EventChannel",
    "LifecycleEvent",
    "ResourceGateway",
    "StackDeletionError",
    "StackDeletionTimeout",
    "Subscription",
    "make_clients",
    "stack_name_for",
]
