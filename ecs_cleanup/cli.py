"""Command line entrypoint for ecs-cleanup."""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Optional

import click

from .config import CleanupConfig, stack_name_for
from .events import CleanupEvents, LifecycleEvent
from .orchestrator import ClusterCleanup


@click.group()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable NDJSON events')
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
              help='Logging level')
@click.pass_context
def main(ctx, output_json, log_level):
    """ecs-cleanup - delete an ECS cluster and everything attached to it."""
    ctx.ensure_object(dict)
    ctx.obj['json'] = output_json
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as one JSON line."""
    click.echo(json.dumps(data))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not click.get_current_context().obj.get('json', False):
        click.echo(message)


def _describe(event: LifecycleEvent) -> str:
    kind, payload = event.kind, event.payload

    if kind == CleanupEvents.START:
        return f"🧹 Cleaning up cluster {payload}"
    if kind == CleanupEvents.STACK_FOUND:
        return f"📦 Found stack {payload.get('StackName')} ({payload.get('StackStatus')})"
    if kind in (CleanupEvents.SERVICES_FOUND, CleanupEvents.TASKS_FOUND, CleanupEvents.INSTANCES_FOUND):
        noun = {
            CleanupEvents.SERVICES_FOUND: "service(s)",
            CleanupEvents.TASKS_FOUND: "task(s)",
            CleanupEvents.INSTANCES_FOUND: "container instance(s)",
        }[kind]
        return f"🔍 Found {len(payload)} {noun}"
    if kind == CleanupEvents.SERVICES_SCALED_DOWN:
        return f"⬇️  Scaled {len(payload)} service(s) to zero"
    if kind == CleanupEvents.TASKS_STOPPED:
        return f"⏹  Stopped {len(payload)} task(s)"
    if kind == CleanupEvents.INSTANCES_DEREGISTERED:
        return f"🔌 Deregistered {len(payload)} container instance(s)"
    if kind == CleanupEvents.SERVICES_DELETED:
        return f"🗑  Deleted {len(payload)} service(s)"
    if kind == CleanupEvents.STACK_DELETION_STARTED:
        return f"⏳ Deleting stack {payload}"
    if kind == CleanupEvents.RESOURCE_DELETED:
        return f"   - {payload.get('LogicalResourceId')} ({payload.get('ResourceType', 'unknown')}) deleted"
    if kind == CleanupEvents.STACK_DELETION_DONE:
        return f"✅ Stack {payload} deleted"
    if kind == CleanupEvents.CLUSTER_DELETED:
        name = payload.get('clusterName') if isinstance(payload, dict) else payload
        return f"✅ Cluster {name} deleted"
    if kind == CleanupEvents.DONE:
        return f"🎉 Done: {payload}"
    if kind == CleanupEvents.DONE_WITH_ERROR:
        return f"❌ {payload}"
    return f"⚠️  {payload}"


async def _run_and_stream(cleanup: ClusterCleanup, cluster: str, verbose: bool, output_json: bool) -> LifecycleEvent:
    channel = cleanup.start(cluster, verbose=verbose)
    terminal: Optional[LifecycleEvent] = None
    async for event in channel.subscribe():
        if output_json:
            _json_output(event.to_dict())
        else:
            _human_output(_describe(event))
        terminal = event
    return terminal


@main.command()
@click.argument('cluster')
@click.option('--region', help='AWS region (defaults to AWS_REGION)')
@click.option('--profile', help='AWS named profile')
@click.option('--endpoint-url', help='Override the AWS endpoint URL')
@click.option('--fargate', is_flag=True, help='Also clean up FARGATE services and tasks')
@click.option('--timeout', type=click.FloatRange(min=0, min_open=True), help='Stack deletion timeout in seconds')
@click.option('--poll-interval', type=click.FloatRange(min=0, min_open=True), help='Seconds between stack resource checks')
@click.option('--verbose', is_flag=True, help='Log every event and the total run time')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete(ctx, cluster, region, profile, endpoint_url, fargate, timeout, poll_interval, verbose, yes):
    """Delete CLUSTER and its services, tasks, instances and stack."""
    output_json = ctx.obj.get('json', False)

    try:
        config = CleanupConfig.from_env(
            region=region,
            profile=profile,
            endpoint_url=endpoint_url,
            enable_fargate=fargate or None,
            stack_delete_timeout=timeout,
            resource_poll_interval=poll_interval,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    if not yes:
        click.confirm(f"Delete cluster {cluster} and all of its resources?", abort=True)

    cleanup = ClusterCleanup(config)
    terminal = asyncio.run(_run_and_stream(cleanup, cluster, verbose, output_json))

    if terminal is None or terminal.kind != CleanupEvents.DONE:
        sys.exit(1)
    sys.exit(0)


@main.command('stack-name')
@click.argument('cluster')
def stack_name(cluster):
    """Print the CloudFormation stack name associated with CLUSTER."""
    click.echo(stack_name_for(cluster))


if __name__ == '__main__':
    main()
