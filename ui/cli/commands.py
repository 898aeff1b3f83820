"""Typer command handlers."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import typer

from core.control_loop import LoopResult
from core.errors import PlanParseError, ValidationError
from core.event_bus import EventBus, StatusEvent
from core.orchestrator import Orchestrator, RuntimeBundle
from planner.dependency_graph import validate
from planner.request_router import RequestRouter
from planner.schemas import parse_planning_response

# Events worth showing on the terminal; the audit log records all of them.
_DISPLAYED_EVENTS = {
    "plan_admitted",
    "action_started",
    "action_completed",
    "action_failed",
    "action_blocked",
    "plan_finished",
    "request_rejected",
    "request_cancelled",
}


def _configure_logging(config: dict[str, Any]) -> None:
    level = str(config.get("logging", {}).get("level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _runtime(
    root: Path | None = None,
    provider: str | None = None,
    max_iterations: int | None = None,
) -> RuntimeBundle:
    overrides: dict[str, Any] = {}
    if provider:
        overrides["models"] = {"llm": {"active_provider": provider}}
    if max_iterations:
        overrides["loop"] = {"max_iterations": max_iterations}
    orchestrator = Orchestrator(root=root)
    _configure_logging(orchestrator.load_config(overrides))
    bundle = orchestrator.build(overrides=overrides)
    bundle.event_bus.subscribe(EventBus.WILDCARD, _echo_event)
    return bundle


def _echo_event(event_name: str, event: StatusEvent) -> None:
    if event_name not in _DISPLAYED_EVENTS:
        return
    where = ""
    if event.plan_id:
        where = f" [{event.plan_id}" + (f"#{event.action_id}]" if event.action_id else "]")
    typer.echo(f"{event.status:>11}{where} {event.summary}")


def _echo_summary(result: LoopResult) -> None:
    for plan_id, status in result.plan_statuses.items():
        typer.echo(f"Plan {plan_id}: {status.value}")
    for error in result.errors:
        typer.echo(f"Error: {error}", err=True)
    typer.echo(
        f"Iterations: {result.iterations} | Completed: {result.completed} | "
        f"State: {result.state.value}"
    )


def run(
    prompt: str,
    root: Path | None = None,
    provider: str | None = None,
    max_iterations: int | None = None,
) -> None:
    """Plan and execute one request, then exit non-zero if anything failed."""
    bundle = _runtime(root=root, provider=provider, max_iterations=max_iterations)
    result = bundle.control_loop.run_goal(prompt)
    _echo_summary(result)
    if not result.completed:
        raise typer.Exit(code=1)


def chat(root: Path | None = None, provider: str | None = None) -> None:
    """Run interactive loop."""
    bundle = _runtime(root=root, provider=provider)
    typer.echo("Chat mode. Type 'exit' to quit.")
    while True:
        user_text = typer.prompt("you")
        if user_text.strip().lower() in {"exit", "quit"}:
            typer.echo("bye")
            break
        result = bundle.control_loop.run_goal(user_text)
        _echo_summary(result)


def validate_plan(plan_json: Path) -> None:
    """Parse a planning reply file and print the execution order."""
    try:
        decision = parse_planning_response(plan_json.read_text(encoding="utf-8"))
        validated = validate(RequestRouter().plan_from_decision(decision))
    except (PlanParseError, ValidationError) as exc:
        typer.echo(f"Invalid plan: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"Plan '{validated.plan.title}' is valid. Execution order:")
    for action in validated.ordered_actions():
        deps = ", ".join(str(d) for d in action.dependencies) or "-"
        typer.echo(
            f"  {action.id:>3}  {validated.plan.phases[validated.phase_index[action.id]].name:<15}"
            f" {action.tool:<15} {action.title}  (deps: {deps})"
        )


def config_show(root: Path | None = None) -> None:
    """Show effective runtime config."""
    config = Orchestrator(root=root).load_config()
    typer.echo(json.dumps(config, indent=2, default=str))


def tools_list(root: Path | None = None) -> None:
    """List tools and enabled flags."""
    bundle = Orchestrator(root=root).build()
    for tool in bundle.tool_registry.list_tools():
        aliases = f" (aliases: {', '.join(tool.aliases)})" if tool.aliases else ""
        typer.echo(f"{tool.name}: {'enabled' if tool.enabled else 'disabled'}{aliases}")
