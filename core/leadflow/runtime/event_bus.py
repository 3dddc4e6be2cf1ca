"""
Event Bus - Pub/sub for test-run lifecycle events.

Lets a view (CLI, UI adapter, tests) follow a WorkflowTestRunner without
the runner knowing who is listening:
- Subscribe to submission, status and terminal events
- Filter by workflow or by test run
- Wait for a specific event
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events the test runner publishes."""

    TEST_RUN_SUBMITTED = "test_run_submitted"
    TEST_RUN_SUBMIT_FAILED = "test_run_submit_failed"
    TEST_RUN_STATUS = "test_run_status"
    TEST_RUN_COMPLETED = "test_run_completed"
    TEST_RUN_FAILED = "test_run_failed"
    TEST_RUN_CANCELLED = "test_run_cancelled"


@dataclass
class WorkflowEvent:
    """An event in the test-run lifecycle."""

    type: EventType
    workflow_id: str
    test_run_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "workflow_id": self.workflow_id,
            "test_run_id": self.test_run_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


EventHandler = Callable[[WorkflowEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_workflow: str | None = None
    filter_test_run: str | None = None


class EventBus:
    """
    Pub/sub event bus for test-run observers.

    Example:
        bus = EventBus()

        async def on_done(event: WorkflowEvent):
            print(f"Run {event.test_run_id} finished")

        bus.subscribe([EventType.TEST_RUN_COMPLETED], on_done)
        runner = WorkflowTestRunner(graph, service, event_bus=bus)
    """

    def __init__(self, max_history: int = 1000, max_concurrent_handlers: int = 10):
        """
        Args:
            max_history: Maximum events to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[WorkflowEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_workflow: str | None = None,
        filter_test_run: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"
        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_workflow=filter_workflow,
            filter_test_run=filter_test_run,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription. Returns True if it existed."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def publish(self, event: WorkflowEvent) -> None:
        """Publish an event to all matching subscribers."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history :]

        matching_handlers = [
            subscription.handler
            for subscription in list(self._subscriptions.values())
            if self._matches(subscription, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

    def _matches(self, subscription: Subscription, event: WorkflowEvent) -> bool:
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_workflow and subscription.filter_workflow != event.workflow_id:
            return False
        if subscription.filter_test_run and subscription.filter_test_run != event.test_run_id:
            return False
        return True

    async def _execute_handlers(self, event: WorkflowEvent, handlers: list[EventHandler]) -> None:
        """Execute handlers concurrently with rate limiting."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Handler error for {event.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers], return_exceptions=True)

    # === CONVENIENCE PUBLISHERS ===

    async def emit_submitted(
        self, workflow_id: str, test_run_id: str, lead_id: str | None
    ) -> None:
        await self.publish(
            WorkflowEvent(
                type=EventType.TEST_RUN_SUBMITTED,
                workflow_id=workflow_id,
                test_run_id=test_run_id,
                data={"lead_id": lead_id},
            )
        )

    async def emit_submit_failed(self, workflow_id: str, error: str) -> None:
        await self.publish(
            WorkflowEvent(
                type=EventType.TEST_RUN_SUBMIT_FAILED,
                workflow_id=workflow_id,
                data={"error": error},
            )
        )

    async def emit_status(self, workflow_id: str, test_run_id: str, status: str) -> None:
        await self.publish(
            WorkflowEvent(
                type=EventType.TEST_RUN_STATUS,
                workflow_id=workflow_id,
                test_run_id=test_run_id,
                data={"status": status},
            )
        )

    async def emit_completed(
        self, workflow_id: str, test_run_id: str, result: dict[str, Any]
    ) -> None:
        await self.publish(
            WorkflowEvent(
                type=EventType.TEST_RUN_COMPLETED,
                workflow_id=workflow_id,
                test_run_id=test_run_id,
                data={"result": result},
            )
        )

    async def emit_failed(
        self,
        workflow_id: str,
        test_run_id: str | None,
        error: str,
        result: dict[str, Any] | None = None,
    ) -> None:
        """Emit a failed run: an execution failure (with result) or a poll failure (without)."""
        await self.publish(
            WorkflowEvent(
                type=EventType.TEST_RUN_FAILED,
                workflow_id=workflow_id,
                test_run_id=test_run_id,
                data={"error": error, "result": result},
            )
        )

    async def emit_cancelled(self, workflow_id: str, test_run_id: str | None) -> None:
        await self.publish(
            WorkflowEvent(
                type=EventType.TEST_RUN_CANCELLED,
                workflow_id=workflow_id,
                test_run_id=test_run_id,
            )
        )

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        test_run_id: str | None = None,
        limit: int = 100,
    ) -> list[WorkflowEvent]:
        """
        Get event history with optional filtering.

        Returns:
            List of matching events (most recent first)
        """
        events = self._event_history[::-1]
        if event_type:
            events = [e for e in events if e.type == event_type]
        if test_run_id:
            events = [e for e in events if e.test_run_id == test_run_id]
        return events[:limit]

    async def wait_for(
        self,
        event_type: EventType,
        test_run_id: str | None = None,
        timeout: float | None = None,
    ) -> WorkflowEvent | None:
        """
        Wait for a specific event to occur.

        Returns:
            The event if received, None if timeout
        """
        result: WorkflowEvent | None = None
        event_received = asyncio.Event()

        async def handler(event: WorkflowEvent) -> None:
            nonlocal result
            result = event
            event_received.set()

        sub_id = self.subscribe([event_type], handler, filter_test_run=test_run_id)
        try:
            if timeout:
                try:
                    await asyncio.wait_for(event_received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await event_received.wait()
            return result
        finally:
            self.unsubscribe(sub_id)
