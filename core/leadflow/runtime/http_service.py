"""
HTTP client for a remote test-run job service.

Endpoints (all responses use the ``{"success": bool, "data": ...}`` envelope):
    POST /api/v1/workflows/{id}/test              body {testLeadId?, workflow}
    GET  /api/v1/workflows/{id}/test/{testRunId}
    GET  /api/v1/leads?limit=N
"""

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from leadflow.config import get_api_base_url, get_api_key
from leadflow.graph.workflow import WorkflowGraph
from leadflow.runtime.service import LeadNotFoundError, TestRunNotFoundError, TestRunServiceError
from leadflow.schemas.execution import TestLead, TestRunStatusResponse, TestRunSubmission

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class HttpTestRunService:
    """
    TestRunService backed by the REST API.

    Example:
        async with HttpTestRunService("http://localhost:3001", api_key=token) as service:
            runner = WorkflowTestRunner(graph, service)
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            base_url: API root; defaults to the configured API URL
            api_key: Bearer token; defaults to the configured key
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests inject one with a MockTransport)
        """
        self.base_url = (base_url or get_api_base_url()).rstrip("/")
        api_key = api_key if api_key is not None else get_api_key()
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )

    async def __aenter__(self) -> "HttpTestRunService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _error_detail(self, response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return error.get("detail") or error.get("title") or response.text
        if isinstance(error, str):
            return error
        return response.text

    def _handle_response(
        self, response: httpx.Response, not_found: type[TestRunServiceError]
    ) -> Any:
        """Unwrap the ``{success, data}`` envelope or raise."""
        if response.status_code >= 400:
            detail = self._error_detail(response)
            if response.status_code == 404:
                raise not_found(detail, status_code=404)
            if response.status_code in (401, 403):
                raise TestRunServiceError(
                    f"Not authorized (HTTP {response.status_code}): {detail}",
                    status_code=response.status_code,
                )
            raise TestRunServiceError(
                f"Test run API error (HTTP {response.status_code}): {detail}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise TestRunServiceError(f"Malformed response from test run API: {e}") from e
        if not isinstance(body, dict) or not body.get("success", False):
            raise TestRunServiceError(f"Test run API reported failure: {body!r}")
        return body.get("data")

    async def _request(
        self,
        method: str,
        path: str,
        not_found: type[TestRunServiceError] = TestRunServiceError,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, f"{API_PREFIX}{path}", **kwargs)
        except httpx.TimeoutException as e:
            raise TestRunServiceError(f"Test run API request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            raise TestRunServiceError(f"Network error: {e}") from e
        return self._handle_response(response, not_found)

    async def submit_test_run(
        self, graph: WorkflowGraph, lead_id: str | None = None
    ) -> TestRunSubmission:
        payload: dict[str, Any] = {"workflow": graph.to_dict()}
        if lead_id:
            payload["testLeadId"] = lead_id
        data = await self._request(
            "POST", f"/workflows/{graph.id}/test", not_found=LeadNotFoundError, json=payload
        )
        try:
            submission = TestRunSubmission.model_validate(data)
        except ValidationError as e:
            raise TestRunServiceError(f"Unexpected submission response: {e}") from e
        logger.info(f"Submitted test run {submission.test_run_id} for workflow '{graph.id}'")
        return submission

    async def get_test_run_status(
        self, workflow_id: str, test_run_id: str
    ) -> TestRunStatusResponse:
        data = await self._request(
            "GET", f"/workflows/{workflow_id}/test/{test_run_id}", not_found=TestRunNotFoundError
        )
        try:
            return TestRunStatusResponse.model_validate(data)
        except ValidationError as e:
            raise TestRunServiceError(f"Unexpected test run status response: {e}") from e

    async def load_leads_for_testing(self, limit: int = 50) -> list[TestLead]:
        data = await self._request("GET", "/leads", params={"limit": limit})
        if isinstance(data, dict):
            data = data.get("leads") or data.get("items") or []
        try:
            return [TestLead.model_validate(item) for item in data or []]
        except ValidationError as e:
            raise TestRunServiceError(f"Unexpected leads response: {e}") from e
