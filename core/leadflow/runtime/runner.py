"""
Workflow Test Runner - Submit a dry run and poll it to a terminal state.

State machine:

    idle ──start()──▶ submitting ──accepted──▶ running ──terminal poll──▶ completed | failed
      ▲                   │                       │
      └── submit failed ──┘                       ├── poll transport error ──▶ failed
      ▲                                           │
      └────────────────── close() ────────────────┘

The runner owns at most one polling task. It is cancelled when a terminal
status arrives or when the view is closed; ``close()`` is the explicit
teardown transition. A second ``start()`` while a run is outstanding is
rejected rather than queued or replacing the first run.

Errors never escape as exceptions: submission failures, poll failures and
execution failures all end up in ``state`` / ``last_error`` / ``result``.
"""

import asyncio
import logging
from enum import StrEnum

from leadflow.config import DEFAULT_LEAD_LIMIT, DEFAULT_POLL_INTERVAL
from leadflow.graph.workflow import WorkflowGraph
from leadflow.observability import set_trace_context
from leadflow.runtime.event_bus import EventBus
from leadflow.runtime.service import TestRunService, failed_result
from leadflow.runtime.trace import TraceEntry, build_trace
from leadflow.schemas.execution import (
    TestLead,
    TestResult,
    TestRunStatus,
    TestRunStatusResponse,
)

logger = logging.getLogger(__name__)


class RunnerState(StrEnum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowTestRunner:
    """
    Drives one test run at a time for one graph.

    Example:
        runner = WorkflowTestRunner(graph, InProcessTestRunService())
        await runner.load_test_leads()
        if await runner.start(lead_id=None):
            result = await runner.wait(timeout=30)
        await runner.close()
    """

    __test__ = False  # Not a pytest test class

    def __init__(
        self,
        graph: WorkflowGraph,
        service: TestRunService,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        event_bus: EventBus | None = None,
    ):
        self.graph = graph
        self.poll_interval = poll_interval
        self._service = service
        self._event_bus = event_bus

        self.state = RunnerState.IDLE
        self.test_run_id: str | None = None
        self.lead_id: str | None = None
        self.run_status: TestRunStatus | None = None
        self.result: TestResult | None = None
        self.last_error: str | None = None
        self.transport_failed = False
        self.closed = False

        self.test_leads: list[TestLead] = []
        self.leads_unavailable = False

        self._poll_task: asyncio.Task | None = None

    @property
    def is_outstanding(self) -> bool:
        """True while a run is being submitted or polled."""
        return self.state in (RunnerState.SUBMITTING, RunnerState.RUNNING)

    @property
    def poll_task(self) -> asyncio.Task | None:
        return self._poll_task

    # === LEAD SELECTOR ===

    async def load_test_leads(self, limit: int = DEFAULT_LEAD_LIMIT) -> list[TestLead]:
        """
        Load leads for the "simulate as this lead" selector.

        A failure degrades to the mock lead only: ``leads_unavailable`` is set
        and an empty list is returned.
        """
        try:
            self.test_leads = await self._service.load_leads_for_testing(limit)
            self.leads_unavailable = False
        except Exception as e:
            logger.warning(f"Could not load test leads, using mock lead only: {e}")
            self.test_leads = []
            self.leads_unavailable = True
        return self.test_leads

    # === TRANSITIONS ===

    async def start(self, lead_id: str | None = None) -> bool:
        """
        Submit a test run and start polling it.

        Args:
            lead_id: Lead to simulate as; the mock lead is used if None

        Returns:
            True if the run was submitted; False if it was refused (runner
            closed, run already outstanding) or submission failed. The
            reason is in ``last_error``.
        """
        if self.closed:
            self.last_error = "Test runner is closed"
            return False
        if self.is_outstanding:
            self.last_error = "A test run is already in progress"
            logger.warning(f"Refused to start a second test run for workflow '{self.graph.id}'")
            return False

        self.state = RunnerState.SUBMITTING
        self.lead_id = lead_id
        self.test_run_id = None
        self.run_status = None
        self.result = None
        self.last_error = None
        self.transport_failed = False
        set_trace_context(workflow_id=self.graph.id, lead_id=lead_id or "mock")

        try:
            submission = await self._service.submit_test_run(self.graph, lead_id)
        except Exception as e:
            if self.closed:
                return False
            self.state = RunnerState.IDLE
            self.last_error = f"Failed to start test: {e}"
            logger.error(self.last_error)
            if self._event_bus:
                await self._event_bus.emit_submit_failed(self.graph.id, str(e))
            return False

        if self.closed:
            # Closed while the submission was in flight; do not start polling
            return False

        self.test_run_id = submission.test_run_id
        self.run_status = submission.status
        self.state = RunnerState.RUNNING
        set_trace_context(test_run_id=submission.test_run_id)
        logger.info(f"Test run {submission.test_run_id} submitted")

        if self._event_bus:
            await self._event_bus.emit_submitted(self.graph.id, submission.test_run_id, lead_id)

        self._poll_task = asyncio.create_task(self._poll(submission.test_run_id))
        return True

    async def _poll(self, test_run_id: str) -> None:
        """Poll on a fixed interval until a terminal status. No backoff, no poll limit."""
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                status = await self._service.get_test_run_status(self.graph.id, test_run_id)
            except Exception as e:
                await self._fail_transport(test_run_id, f"Failed to fetch test results: {e}")
                return

            self.run_status = status.status
            if self._event_bus:
                await self._event_bus.emit_status(self.graph.id, test_run_id, status.status)

            if status.status.is_terminal:
                await self._finish(test_run_id, status)
                return

    async def _finish(self, test_run_id: str, status: TestRunStatusResponse) -> None:
        result = status.result
        if status.status == TestRunStatus.COMPLETED:
            self.state = RunnerState.COMPLETED
            self.result = result
            logger.info(f"Test run {test_run_id} completed")
            if self._event_bus:
                payload = result.model_dump(mode="json", by_alias=True) if result else {}
                await self._event_bus.emit_completed(self.graph.id, test_run_id, payload)
            return

        if result is None:
            result = failed_result(status.error or "Test execution failed")
        self.state = RunnerState.FAILED
        self.result = result
        self.last_error = result.error or status.error or "Test execution failed"
        logger.warning(f"Test run {test_run_id} failed: {self.last_error}")
        if self._event_bus:
            await self._event_bus.emit_failed(
                self.graph.id,
                test_run_id,
                self.last_error,
                result.model_dump(mode="json", by_alias=True),
            )

    async def _fail_transport(self, test_run_id: str, message: str) -> None:
        self.state = RunnerState.FAILED
        self.transport_failed = True
        self.last_error = message
        logger.error(f"Test run {test_run_id}: {message}")
        if self._event_bus:
            await self._event_bus.emit_failed(self.graph.id, test_run_id, message)

    async def wait(self, timeout: float | None = None) -> TestResult | None:
        """
        Wait for the polling task to finish.

        Returns:
            The terminal TestResult, or None on timeout, transport failure, or
            when no run was started. Timing out does not stop polling.
        """
        task = self._poll_task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        return self.result

    async def close(self) -> None:
        """
        Tear down the view: stop polling and refuse further runs.

        An outstanding run transitions back to ``idle``; a finished run keeps
        its terminal state and result for display.
        """
        self.closed = True
        was_outstanding = self.is_outstanding

        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if was_outstanding:
            self.state = RunnerState.IDLE
            logger.info(f"Test run {self.test_run_id or '(unsubmitted)'} abandoned")
            if self._event_bus:
                await self._event_bus.emit_cancelled(self.graph.id, self.test_run_id)

    # === TRACE ===

    def trace(self) -> list[TraceEntry]:
        """Per-node trace of the last result (empty if there is none)."""
        if self.result is None:
            return []
        return build_trace(self.graph, self.result)
