"""
Test-run job service - The collaborator a WorkflowTestRunner talks to.

The runner only needs three operations (submit, poll, list leads), so the
service is a Protocol. ``InProcessTestRunService`` is the job service
itself, running dry runs as background asyncio tasks; ``HttpTestRunService``
(see ``http_service``) reaches a remote one.
"""

import asyncio
import logging
import time
import uuid
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from leadflow.graph.validator import WorkflowValidator
from leadflow.graph.workflow import WorkflowGraph
from leadflow.observability import set_trace_context
from leadflow.schemas.execution import (
    ExecutionState,
    ExecutionStatus,
    LeadContext,
    NodeError,
    TestLead,
    TestResult,
    TestRunStatus,
    TestRunStatusResponse,
    TestRunSubmission,
)
from leadflow.simulation.executor import DryRunExecutor

logger = logging.getLogger(__name__)


class TestRunServiceError(Exception):
    """The job service could not be reached or refused a request."""

    __test__ = False  # Not a pytest test class

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TestRunNotFoundError(TestRunServiceError):
    __test__ = False  # Not a pytest test class


class LeadNotFoundError(TestRunServiceError):
    pass


class TestRunService(Protocol):
    """Job-submission interface used by the test runner."""

    async def submit_test_run(
        self, graph: WorkflowGraph, lead_id: str | None = None
    ) -> TestRunSubmission:
        """Create a dry-run job. Raises TestRunServiceError on failure."""
        ...

    async def get_test_run_status(
        self, workflow_id: str, test_run_id: str
    ) -> TestRunStatusResponse:
        """Poll a job. ``result`` is set only for terminal statuses."""
        ...

    async def load_leads_for_testing(self, limit: int = 50) -> list[TestLead]:
        """Leads offered as simulation subjects."""
        ...


def failed_result(message: str, node_id: str = "workflow") -> TestResult:
    """A TestResult for a run that failed before or outside node evaluation."""
    return TestResult(
        success=False,
        state=ExecutionState(
            status=ExecutionStatus.FAILED,
            errors=[NodeError(node_id=node_id, error=message)],
        ),
        error=message,
    )


@dataclass
class TestRunRecord:
    """Bookkeeping for one submitted test run."""

    __test__ = False  # Not a pytest test class

    id: str
    workflow_id: str
    lead_id: str | None
    status: TestRunStatus = TestRunStatus.PENDING
    result: TestResult | None = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    def to_response(self) -> TestRunStatusResponse:
        return TestRunStatusResponse(
            test_run_id=self.id,
            status=self.status,
            result=self.result if self.status.is_terminal else None,
            error=self.result.error if self.result and self.status.is_terminal else None,
        )


class InProcessTestRunService:
    """
    Runs dry-run jobs in background tasks of the current event loop.

    Each submission snapshots the graph, so edits made while a run is in
    flight never change what is being simulated. Finished runs are kept
    for polling with retention pruning (max count and optional TTL).

    Example:
        service = InProcessTestRunService(leads=[LeadContext(id="l1", data={"score": 80})])
        submission = await service.submit_test_run(graph, lead_id="l1")
        result = await service.wait_for_completion(submission.test_run_id)
    """

    def __init__(
        self,
        leads: Iterable[LeadContext] | None = None,
        executor: DryRunExecutor | None = None,
        validator: WorkflowValidator | None = None,
        validate: bool = True,
        max_concurrent: int = 10,
        result_retention_max: int | None = 1000,
        result_retention_ttl_seconds: float | None = None,
    ):
        """
        Args:
            leads: Lead directory used for ``lead_id`` lookups and the lead selector
            executor: Dry-run executor (default settings if None)
            validator: Whole-graph validator run before each simulation
            validate: Skip whole-graph validation when False
            max_concurrent: Maximum simulations running at once
            result_retention_max: Maximum finished runs kept for polling
            result_retention_ttl_seconds: Drop finished runs older than this
        """
        self._leads: dict[str, LeadContext] = {lead.id: lead for lead in leads or []}
        self._executor = executor or DryRunExecutor()
        self._validator = validator or WorkflowValidator()
        self._validate = validate
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._result_retention_max = result_retention_max
        self._result_retention_ttl_seconds = result_retention_ttl_seconds

        self._active_runs: dict[str, TestRunRecord] = {}
        self._run_tasks: dict[str, asyncio.Task] = {}
        self._completion_events: dict[str, asyncio.Event] = {}
        self._finished_runs: OrderedDict[str, TestRunRecord] = OrderedDict()
        self._finished_times: dict[str, float] = {}

    # === LEAD DIRECTORY ===

    def add_lead(self, lead: LeadContext) -> None:
        self._leads[lead.id] = lead

    async def load_leads_for_testing(self, limit: int = 50) -> list[TestLead]:
        leads = list(self._leads.values())[:limit]
        return [TestLead.model_validate({**lead.data, "id": lead.id}) for lead in leads]

    # === JOBS ===

    async def submit_test_run(
        self, graph: WorkflowGraph, lead_id: str | None = None
    ) -> TestRunSubmission:
        """
        Queue a dry run and return its ID. Non-blocking.

        Raises:
            LeadNotFoundError: if ``lead_id`` is not in the lead directory
        """
        lead = None
        if lead_id is not None:
            lead = self._leads.get(lead_id)
            if lead is None:
                raise LeadNotFoundError(f"Test lead '{lead_id}' not found", status_code=404)

        test_run_id = f"testrun_{uuid.uuid4().hex[:12]}"
        record = TestRunRecord(id=test_run_id, workflow_id=graph.id, lead_id=lead_id)
        snapshot = WorkflowGraph.from_dict(graph.to_dict())

        self._active_runs[test_run_id] = record
        self._completion_events[test_run_id] = asyncio.Event()
        self._run_tasks[test_run_id] = asyncio.create_task(self._run(record, snapshot, lead))

        logger.info(f"Queued test run {test_run_id} for workflow '{graph.id}'")
        return TestRunSubmission(
            test_run_id=test_run_id,
            status=TestRunStatus.PENDING,
            message="Workflow test started",
        )

    async def _run(
        self, record: TestRunRecord, graph: WorkflowGraph, lead: LeadContext | None
    ) -> None:
        set_trace_context(
            workflow_id=record.workflow_id,
            test_run_id=record.id,
            lead_id=record.lead_id or "mock",
        )
        try:
            async with self._semaphore:
                record.status = TestRunStatus.RUNNING
                # Let pollers observe the running state before the simulation finishes
                await asyncio.sleep(0)

                validation = self._validator.validate_graph(graph) if self._validate else None
                if validation is not None and not validation.valid:
                    result = failed_result(f"Workflow validation failed: {validation.error}")
                else:
                    result = self._executor.run(graph, lead=lead)

                record.result = result
                record.status = TestRunStatus.COMPLETED if result.success else TestRunStatus.FAILED
                logger.info(f"Test run {record.id} finished: {record.status}")

        except asyncio.CancelledError:
            record.status = TestRunStatus.FAILED
            record.result = failed_result("Test run cancelled")
            raise

        except Exception as e:
            logger.error(f"Test run {record.id} failed: {e}")
            record.status = TestRunStatus.FAILED
            record.result = failed_result(str(e))

        finally:
            self._finalize(record)

    def _finalize(self, record: TestRunRecord) -> None:
        record.completed_at = datetime.now()
        self._record_finished(record)
        event = self._completion_events.pop(record.id, None)
        if event is not None:
            event.set()
        self._active_runs.pop(record.id, None)
        self._run_tasks.pop(record.id, None)

    def _record_finished(self, record: TestRunRecord) -> None:
        self._finished_runs[record.id] = record
        self._finished_runs.move_to_end(record.id)
        self._finished_times[record.id] = time.time()
        self._prune_finished_runs()

    def _prune_finished_runs(self) -> None:
        """Prune finished runs based on TTL and max retention."""
        if self._result_retention_ttl_seconds is not None:
            cutoff = time.time() - self._result_retention_ttl_seconds
            for run_id, recorded_at in list(self._finished_times.items()):
                if recorded_at < cutoff:
                    self._finished_times.pop(run_id, None)
                    self._finished_runs.pop(run_id, None)

        if self._result_retention_max is not None:
            while len(self._finished_runs) > self._result_retention_max:
                old_run_id, _ = self._finished_runs.popitem(last=False)
                self._finished_times.pop(old_run_id, None)

    def _get_record(self, test_run_id: str) -> TestRunRecord | None:
        self._prune_finished_runs()
        return self._active_runs.get(test_run_id) or self._finished_runs.get(test_run_id)

    async def get_test_run_status(
        self, workflow_id: str, test_run_id: str
    ) -> TestRunStatusResponse:
        """
        Raises:
            TestRunNotFoundError: unknown (or pruned) run, or a run of another workflow
        """
        record = self._get_record(test_run_id)
        if record is None or record.workflow_id != workflow_id:
            raise TestRunNotFoundError(
                f"Test run '{test_run_id}' does not exist for workflow '{workflow_id}'",
                status_code=404,
            )
        return record.to_response()

    async def wait_for_completion(
        self, test_run_id: str, timeout: float | None = None
    ) -> TestResult | None:
        """
        Wait for a run to finish.

        Returns:
            The run's TestResult, or None on timeout or unknown run
        """
        event = self._completion_events.get(test_run_id)
        if event is not None:
            try:
                if timeout is not None:
                    await asyncio.wait_for(event.wait(), timeout=timeout)
                else:
                    await event.wait()
            except TimeoutError:
                return None
        record = self._get_record(test_run_id)
        return record.result if record else None

    async def close(self) -> None:
        """Cancel every in-flight run."""
        for task in list(self._run_tasks.values()):
            if not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._run_tasks.clear()

        # A task cancelled before its first step never reaches its finally block
        for record in list(self._active_runs.values()):
            record.status = TestRunStatus.FAILED
            record.result = failed_result("Test run cancelled")
            self._finalize(record)

    def get_stats(self) -> dict:
        statuses: dict[str, int] = {}
        for record in self._active_runs.values():
            statuses[record.status] = statuses.get(record.status, 0) + 1
        return {
            "active_runs": len(self._active_runs),
            "finished_runs": len(self._finished_runs),
            "status_counts": statuses,
            "leads": len(self._leads),
        }
