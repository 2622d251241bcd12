"""
Exceptions raised by the cluster cleanup pipeline.
"""

from typing import Optional


class CleanupError(Exception):
    """Base class for cleanup failures."""


class ClusterNotFoundError(CleanupError):
    """The cluster is absent or INACTIVE."""

    def __init__(self, cluster: str):
        super().__init__(f"Cluster {cluster} does not exist in the region specified")
        self.cluster = cluster


class StackDeletionError(CleanupError):
    """The CloudFormation stack did not reach DELETE_COMPLETE."""

    def __init__(self, message: str, stack_id: Optional[str] = None, status: Optional[str] = None):
        super().__init__(message)
        self.stack_id = stack_id
        self.status = status


class StackDeletionTimeout(StackDeletionError):
    """The stack delete wait ran past its ceiling."""

    def __init__(self, stack_id: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__("CloudFormation stack deletion timed out!", stack_id=stack_id)
        self.timeout = timeout


class ClusterDeletionError(CleanupError):
    """DeleteCluster failed after every dependent resource was handled."""

    def __init__(self, cluster: str, reason: str):
        super().__init__(f"Failed to delete cluster {cluster}: {reason}")
        self.cluster = cluster
