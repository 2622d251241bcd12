"""
Tests for configuration and client construction.
"""

import pytest
from unittest.mock import patch

from ecs_cleanup.config import CleanupConfig, make_clients, stack_name_for


def test_stack_name_convention():
    """Test stack name derivation."""
    assert stack_name_for("demo") == "EC2ContainerService-demo"
    assert stack_name_for("my-cluster_2") == "EC2ContainerService-my-cluster_2"


def test_defaults():
    """Test default tunables."""
    config = CleanupConfig()

    assert config.launch_types == ["EC2"]
    assert config.stack_delete_timeout == 600.0
    assert config.resource_poll_interval == 10.0
    assert config.stop_task_reason == "Cluster being deleted"


def test_fargate_adds_launch_type():
    """Test launch types with FARGATE enabled."""
    assert CleanupConfig(enable_fargate=True).launch_types == ["EC2", "FARGATE"]


def test_from_env(monkeypatch):
    """Test reading settings from the environment."""
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.setenv("AWS_PROFILE", "ops")
    monkeypatch.setenv("ECS_CLEANUP_ENABLE_FARGATE", "true")
    monkeypatch.setenv("ECS_CLEANUP_STACK_TIMEOUT", "120")
    monkeypatch.setenv("ECS_CLEANUP_POLL_INTERVAL", "2.5")

    config = CleanupConfig.from_env()

    assert config.region == "eu-west-1"
    assert config.profile == "ops"
    assert config.enable_fargate is True
    assert config.stack_delete_timeout == 120.0
    assert config.resource_poll_interval == 2.5


def test_from_env_overrides_win(monkeypatch):
    """Test explicit values taking precedence over the environment."""
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    monkeypatch.delenv("ECS_CLEANUP_ENABLE_FARGATE", raising=False)

    config = CleanupConfig.from_env(region="us-east-2", profile=None, stack_delete_timeout=30.0)

    assert config.region == "us-east-2"
    assert config.enable_fargate is False
    assert config.stack_delete_timeout == 30.0


def test_from_env_invalid_number(monkeypatch):
    """Test rejecting unparsable numeric settings."""
    monkeypatch.setenv("ECS_CLEANUP_STACK_TIMEOUT", "ten minutes")

    with pytest.raises(ValueError, match="ECS_CLEANUP_STACK_TIMEOUT"):
        CleanupConfig.from_env()


@patch("ecs_cleanup.config.boto3.session.Session")
def test_make_clients(mock_session):
    """Test client construction from a session."""
    config = CleanupConfig(region="us-west-2", profile="ops", endpoint_url="http://localhost:4566")

    ecs, cloudformation = make_clients(config)

    mock_session.assert_called_once_with(profile_name="ops", region_name="us-west-2")
    session = mock_session.return_value
    session.client.assert_any_call("ecs", endpoint_url="http://localhost:4566")
    session.client.assert_any_call("cloudformation", endpoint_url="http://localhost:4566")
    assert ecs is session.client.return_value
    assert cloudformation is session.client.return_value


def test_from_env_rejects_non_positive_overrides(monkeypatch):
    """Test that explicit timeouts and intervals must be positive."""
    monkeypatch.delenv("ECS_CLEANUP_STACK_TIMEOUT", raising=False)

    with pytest.raises(ValueError, match="stack_delete_timeout must be positive"):
        CleanupConfig.from_env(stack_delete_timeout=-1)
    with pytest.raises(ValueError, match="resource_poll_interval must be positive"):
        CleanupConfig.from_env(resource_poll_interval=0)
