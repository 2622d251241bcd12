"""
Lifecycle events and the broadcast channel that carries them.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class CleanupEvents(Enum):
    """Kinds of events emitted during a cleanup run."""
    START = "start"
    STACK_FOUND = "stackFound"
    SERVICES_FOUND = "servicesFound"
    SERVICES_SCALED_DOWN = "servicesScaledDown"
    TASKS_FOUND = "tasksFound"
    TASKS_STOPPED = "tasksStopped"
    INSTANCES_FOUND = "instancesFound"
    INSTANCES_DEREGISTERED = "instancesDeregistered"
    SERVICES_DELETED = "servicesDeleted"
    STACK_DELETION_STARTED = "stackDeletionStarted"
    STACK_DELETION_DONE = "stackDeletionDone"
    RESOURCE_DELETED = "resourceDeleted"
    CLUSTER_DELETED = "clusterDeleted"
    DONE = "done"
    DONE_WITH_ERROR = "doneWithError"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (CleanupEvents.DONE, CleanupEvents.DONE_WITH_ERROR)


@dataclass(frozen=True)
class LifecycleEvent:
    """A single (kind, payload) record pushed onto the channel."""
    kind: CleanupEvents
    payload: Any = None
    ts: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation, one NDJSON line per event."""
        return {
            "ts": datetime.fromtimestamp(self.ts).isoformat(),
            "type": self.kind.value,
            "data": _jsonable(self.payload),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseException):
        return {"error": type(value).__name__, "message": str(value)}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


class Subscription:
    """Async iterator over the events of one channel, ending after the terminal event."""

    def __init__(self, channel: "EventChannel"):
        self._channel = channel
        self._queue: "asyncio.Queue[Optional[LifecycleEvent]]" = asyncio.Queue()
        self._finished = False

    def _push(self, event: Optional[LifecycleEvent]) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        """Stop receiving events; pending iteration ends."""
        self._channel.unsubscribe(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> LifecycleEvent:
        if self._finished:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None:
            self._finished = True
            raise StopAsyncIteration
        if event.kind.is_terminal:
            self._finished = True
            self._channel.unsubscribe(self)
        return event


class EventChannel:
    """
    Single-producer, multi-consumer broadcast of lifecycle events.

    Events are delivered to every active listener and subscription in the
    order they were emitted. Nothing is emitted after a terminal event.
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self._history: List[LifecycleEvent] = []
        self._listeners: List[Callable[[LifecycleEvent], None]] = []
        self._subscriptions: List[Subscription] = []
        self._closed = False

    @property
    def history(self) -> Tuple[LifecycleEvent, ...]:
        return tuple(self._history)

    @property
    def closed(self) -> bool:
        return self._closed

    def kinds(self) -> List[CleanupEvents]:
        return [event.kind for event in self._history]

    def emit(self, kind: CleanupEvents, payload: Any = None) -> Optional[LifecycleEvent]:
        """
        Record an event and deliver it to all subscribers.

        Args:
            kind: Event kind
            payload: Event payload

        Returns:
            The emitted event, or None if the channel was already closed
        """
        if self._closed:
            logger.warning(f"Dropping {kind.value} event emitted after the run finished")
            return None

        event = LifecycleEvent(kind=kind, payload=payload)
        self._history.append(event)
        if kind.is_terminal:
            self._closed = True

        if self.verbose:
            logger.info(f"[{kind.value}] {_summary(payload)}")

        for callback in list(self._listeners):
            try:
                callback(event)
            except Exception:
                logger.exception(f"Event listener {callback!r} failed on {kind.value}")

        for subscription in list(self._subscriptions):
            subscription._push(event)

        return event

    def on(self, callback: Callable[[LifecycleEvent], None]) -> None:
        self._listeners.append(callback)

    def off(self, callback: Callable[[LifecycleEvent], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def subscribe(self, replay: bool = True) -> Subscription:
        """
        Open an async subscription.

        Args:
            replay: Deliver already-emitted events first

        Returns:
            Subscription yielding events until the terminal one
        """
        subscription = Subscription(self)
        if replay:
            for event in self._history:
                subscription._push(event)
        if self._closed:
            if not replay:
                subscription._push(None)
        else:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            subscription._push(None)

    async def wait_closed(self) -> LifecycleEvent:
        """Wait for the terminal event and return it."""
        if self._closed:
            return self._history[-1]
        async for event in self.subscribe(replay=False):
            if event.kind.is_terminal:
                return event
        return self._history[-1]


def _summary(payload: Any) -> str:
    if isinstance(payload, (list, tuple)):
        return f"{len(payload)} item(s)"
    if isinstance(payload, BaseException):
        return f"{type(payload).__name__}: {payload}"
    if isinstance(payload, dict):
        for key in ("LogicalResourceId", "StackName", "clusterName", "serviceName"):
            if key in payload:
                return str(payload[key])
        return "{...}"
    return str(payload)
