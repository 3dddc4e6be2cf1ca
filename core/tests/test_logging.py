"""Tests for structured logging and trace context propagation."""

import asyncio
import json
import logging

import pytest

from leadflow.observability import (
    clear_trace_context,
    configure_logging,
    get_trace_context,
    set_trace_context,
)
from leadflow.observability.logging import (
    HumanReadableFormatter,
    StructuredFormatter,
    resolve_format,
    strip_ansi_codes,
)


@pytest.fixture(autouse=True)
def _clean_context():
    clear_trace_context()
    yield
    clear_trace_context()


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("leadflow.test", logging.INFO, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestTraceContext:
    def test_set_merges_fields(self):
        set_trace_context(workflow_id="wf-1")
        set_trace_context(test_run_id="run-1")
        assert get_trace_context() == {"workflow_id": "wf-1", "test_run_id": "run-1"}

    def test_get_returns_copy(self):
        set_trace_context(workflow_id="wf-1")
        get_trace_context()["workflow_id"] = "changed"
        assert get_trace_context()["workflow_id"] == "wf-1"

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_context(self):
        async def run(run_id: str) -> dict:
            set_trace_context(test_run_id=run_id)
            await asyncio.sleep(0)
            return get_trace_context()

        first, second = await asyncio.gather(
            asyncio.create_task(run("run-1")), asyncio.create_task(run("run-2"))
        )
        assert first["test_run_id"] == "run-1"
        assert second["test_run_id"] == "run-2"
        assert get_trace_context() == {}


class TestFormatters:
    def test_structured_formatter(self):
        set_trace_context(workflow_id="wf-1", test_run_id="run-1")
        line = StructuredFormatter().format(
            _record("\033[32mdone\033[0m", node_id="cond", status="completed")
        )
        entry = json.loads(line)

        assert entry["message"] == "done"
        assert entry["level"] == "info"
        assert entry["workflow_id"] == "wf-1"
        assert entry["node_id"] == "cond"
        assert entry["status"] == "completed"
        assert "event" not in entry

    def test_human_formatter_prefix(self):
        set_trace_context(workflow_id="wf-1", test_run_id="testrun_0123456789ab", lead_id="l1")
        line = HumanReadableFormatter().format(_record("polling", event="poll"))

        assert "[wf:wf-1 | run:456789ab | lead:l1]" in line
        assert line.endswith("polling [poll]")

    def test_human_formatter_without_context(self):
        line = strip_ansi_codes(HumanReadableFormatter().format(_record("hello")))
        assert line == "[INFO    ] hello"


class TestConfigure:
    def test_resolve_format(self, monkeypatch):
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        monkeypatch.delenv("ENV", raising=False)
        assert resolve_format("auto") == "human"
        assert resolve_format("json") == "json"

        monkeypatch.setenv("ENV", "production")
        assert resolve_format("auto") == "json"

        monkeypatch.setenv("ENV", "development")
        monkeypatch.setenv("LOG_FORMAT", "JSON")
        assert resolve_format("auto") == "json"

    def test_configure_logging(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            configure_logging(level="info", format="json")

            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, StructuredFormatter)
            assert root.level == logging.INFO
            assert logging.getLogger("httpx").level == logging.WARNING

            configure_logging(level="DEBUG", format="human")
            assert isinstance(root.handlers[0].formatter, HumanReadableFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
