"""
Command-line interface for leadflow.

Usage:
    leadflow validate workflow.json
    leadflow connect workflow.json node_a node_b
    leadflow test workflow.json --lead-file leads.json --lead-id lead-1
    leadflow test workflow.json --remote
    leadflow templates --category nurturing
"""

import argparse
import asyncio
import json
import sys
from typing import Any

from pydantic import ValidationError

from leadflow.config import RunnerConfig
from leadflow.graph.templates import list_templates
from leadflow.graph.validator import WorkflowValidator
from leadflow.graph.workflow import GraphModelError, WorkflowGraph
from leadflow.observability import configure_logging
from leadflow.runtime.http_service import HttpTestRunService
from leadflow.runtime.runner import RunnerState, WorkflowTestRunner
from leadflow.runtime.service import InProcessTestRunService, TestRunService
from leadflow.runtime.trace import format_trace
from leadflow.schemas.execution import LeadContext


def _load_json(path: str) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _load_graph(path: str) -> WorkflowGraph:
    """Load a graph file; exits with status 2 on an unreadable or malformed file."""
    try:
        return WorkflowGraph.from_dict(_load_json(path))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
    except (ValidationError, GraphModelError) as e:
        print(f"Invalid workflow file {path}: {e}", file=sys.stderr)
    sys.exit(2)


def _load_leads(path: str) -> list[LeadContext]:
    """
    Leads file: a list of lead objects, each with an ``id`` plus its fields.

    Exits with status 2 on an unreadable or malformed file.
    """
    try:
        items = _load_json(path)
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read {path}: {e}", file=sys.stderr)
        sys.exit(2)

    if not isinstance(items, list):
        print(f"Invalid leads file {path}: expected a list of leads", file=sys.stderr)
        sys.exit(2)

    leads = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or "id" not in item:
            print(f"Invalid leads file {path}: lead #{index} has no 'id'", file=sys.stderr)
            sys.exit(2)
        data = dict(item)
        lead_id = str(data.pop("id"))
        leads.append(LeadContext(id=lead_id, data=data))
    return leads


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def cmd_validate(args: argparse.Namespace) -> int:
    graph = _load_graph(args.graph)
    result = WorkflowValidator().validate_graph(graph)

    if args.json:
        print(
            json.dumps(
                {
                    "valid": result.valid,
                    "errors": [issue.to_dict() for issue in result.errors],
                    "warnings": result.warnings,
                },
                indent=2,
            )
        )
    else:
        print(f"Workflow '{graph.name}' ({len(graph.nodes)} nodes, {len(graph.edges)} edges)")
        for issue in result.errors:
            target = issue.node_id or issue.edge_id
            where = f" [{target}]" if target else ""
            print(f"  ✗ {issue.type}{where}: {issue.message}")
        for warning in result.warnings:
            print(f"  ! {warning}")
        if result.valid:
            print("  ✓ valid")

    return 0 if result.valid else 1


def cmd_connect(args: argparse.Namespace) -> int:
    graph = _load_graph(args.graph)
    result = graph.can_connect(args.source, args.target)
    if result.accepted:
        print(f"✓ {args.source} -> {args.target} can be connected")
        return 0
    print(f"✗ {args.source} -> {args.target} rejected ({result.rule}): {result.reason}")
    return 1


async def _run_test(
    graph: WorkflowGraph, service: TestRunService, args: argparse.Namespace
) -> int:
    config = RunnerConfig()
    poll_interval = args.poll_interval if args.poll_interval is not None else config.poll_interval
    runner = WorkflowTestRunner(graph, service, poll_interval=poll_interval)
    try:
        leads = await runner.load_test_leads(config.lead_limit)
        if runner.leads_unavailable:
            print("Could not load test leads; using the mock lead.", file=sys.stderr)
        elif args.lead_id is None and leads:
            print(f"{len(leads)} lead(s) available; simulating with the mock lead.")

        if not await runner.start(lead_id=args.lead_id):
            print(runner.last_error, file=sys.stderr)
            return 1

        result = await runner.wait(timeout=args.timeout)
        if runner.state == RunnerState.RUNNING:
            print(f"Timed out after {args.timeout}s waiting for test run", file=sys.stderr)
            return 1
        if result is None:
            print(runner.last_error or "Test run produced no result", file=sys.stderr)
            return 1

        if args.json:
            print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2))
        else:
            print(format_trace(graph, result))
        return 0 if runner.state == RunnerState.COMPLETED else 1
    finally:
        await runner.close()


def cmd_test(args: argparse.Namespace) -> int:
    graph = _load_graph(args.graph)
    leads = _load_leads(args.lead_file) if args.lead_file and not args.remote else []

    async def run() -> int:
        if args.remote:
            config = RunnerConfig()
            async with HttpTestRunService(
                config.api_base_url, config.api_key, timeout=config.request_timeout
            ) as service:
                return await _run_test(graph, service, args)

        service = InProcessTestRunService(leads=leads)
        try:
            return await _run_test(graph, service, args)
        finally:
            await service.close()

    return asyncio.run(run())


def cmd_templates(args: argparse.Namespace) -> int:
    templates = list_templates(category=args.category, search=args.search)
    if not templates:
        print("No templates found.")
        return 0
    for template in templates:
        print(f"{template.id:<24} {template.category:<12} {template.name}")
        if template.description:
            print(f"{'':<24} {'':<12} {template.description}")
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the workflow commands with the main CLI."""
    validate = subparsers.add_parser("validate", help="Validate a workflow file")
    validate.add_argument("graph", help="Path to a workflow JSON file")
    validate.add_argument("--json", action="store_true", help="Print issues as JSON")
    validate.set_defaults(func=cmd_validate)

    connect = subparsers.add_parser(
        "connect", help="Explain whether an edge between two nodes would be accepted"
    )
    connect.add_argument("graph", help="Path to a workflow JSON file")
    connect.add_argument("source", help="Source node ID")
    connect.add_argument("target", help="Target node ID")
    connect.set_defaults(func=cmd_connect)

    test = subparsers.add_parser("test", help="Dry-run a workflow and print the trace")
    test.add_argument("graph", help="Path to a workflow JSON file")
    test.add_argument("--lead-file", help="JSON list of leads to simulate with")
    test.add_argument("--lead-id", help="Lead to simulate as (default: mock lead)")
    test.add_argument(
        "--remote", action="store_true", help="Submit to the configured job-service API"
    )
    test.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls")
    test.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait for a result")
    test.add_argument("--json", action="store_true", help="Print the raw result as JSON")
    test.set_defaults(func=cmd_test)

    templates = subparsers.add_parser("templates", help="List built-in workflow templates")
    templates.add_argument("--category", help="Only this category")
    templates.add_argument("--search", help="Case-insensitive name/description filter")
    templates.set_defaults(func=cmd_templates)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="leadflow",
        description="leadflow - Build, validate and dry-run lead automation workflows",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    parser.add_argument(
        "--log-format",
        default="auto",
        choices=["auto", "json", "human"],
        help="Log output format",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, format=args.log_format)

    if hasattr(args, "func"):
        sys.exit(args.func(args))


if __name__ == "__main__":
    main()
