"""CLI entrypoint for planexec."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from ui.cli import commands

app = typer.Typer(help="Hierarchical task planning and execution engine")
config_app = typer.Typer(help="Configuration commands")
tools_app = typer.Typer(help="Tool commands")

_ROOT_OPTION = typer.Option(None, "--root", help="Project root holding config/ and the workspace")


@app.command("run")
def run_cmd(
    prompt: str = typer.Argument(..., help="Request to plan and execute"),
    root: Optional[Path] = _ROOT_OPTION,
    provider: Optional[str] = typer.Option(None, "--provider", help="Override models.llm.active_provider"),
    max_iterations: Optional[int] = typer.Option(None, "--max-iterations", min=1),
) -> None:
    """Plan and execute one request."""
    commands.run(prompt=prompt, root=root, provider=provider, max_iterations=max_iterations)


@app.command("chat")
def chat_cmd(
    root: Optional[Path] = _ROOT_OPTION,
    provider: Optional[str] = typer.Option(None, "--provider", help="Override models.llm.active_provider"),
) -> None:
    """Interactive session; conversation state carries across turns."""
    commands.chat(root=root, provider=provider)


@app.command("validate")
def validate_cmd(
    plan_json: Path = typer.Argument(..., exists=True, dir_okay=False, help="Planning reply JSON file"),
) -> None:
    """Parse and validate a planning reply without executing it."""
    commands.validate_plan(plan_json=plan_json)


@config_app.command("show")
def config_show_cmd(root: Optional[Path] = _ROOT_OPTION) -> None:
    """Show effective configuration."""
    commands.config_show(root=root)


@tools_app.command("list")
def tools_list_cmd(root: Optional[Path] = _ROOT_OPTION) -> None:
    """List tool status."""
    commands.tools_list(root=root)


app.add_typer(config_app, name="config")
app.add_typer(tools_app, name="tools")


def main() -> None:
    """Console script entrypoint."""
    app()


if __name__ == "__main__":
    main()
