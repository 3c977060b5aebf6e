"""Command line interface for agentdesk."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .agents.events import AgentEvent
from .config import ConfigError, ProjectConfig
from .runtime import Runtime, build_runtime

app = typer.Typer(help="Run and inspect agentdesk projects")
console = Console()

_STATUS_STYLES = {
    "completed": "green",
    "review": "cyan",
    "failed": "red",
    "queued": "yellow",
    "running": "blue",
    "rejected": "magenta",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load(config_path: Path) -> ProjectConfig:
    try:
        return ProjectConfig.from_file(config_path)
    except (ConfigError, OSError, ValueError, yaml.YAMLError) as exc:
        console.print(f"[bold red]Invalid configuration:[/] {exc}")
        raise typer.Exit(code=1) from exc


def _print_event(event: AgentEvent) -> None:
    agent_id = event.state.definition_id
    if event.type == "status_changed":
        console.print(f"[dim]{agent_id}[/] status -> [bold]{event.state.status.value}[/]")
    elif event.type == "thinking":
        console.print(f"[dim]{agent_id}[/] thinking: {event.text[:120]}")
    elif event.type == "task_completed":
        console.print(f"[green]{agent_id} completed[/] {event.task.title}")
    elif event.type == "task_failed":
        console.print(f"[red]{agent_id} failed[/] {event.task.title}: {event.error}")


def _render_tasks(runtime: Runtime) -> None:
    table = Table(title="Tasks", show_lines=True)
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Output")
    for task in runtime.task_store.list_tasks():
        style = _STATUS_STYLES.get(task.status.value, "white")
        output = ""
        if task.output:
            output = str(task.output.get("content") or task.output.get("error") or "")
        table.add_row(
            task.id[:8],
            task.title,
            task.assigned_agent or "-",
            f"[{style}]{task.status.value}[/]",
            output[:200],
        )
    console.print(table)


def _render_usage(runtime: Runtime) -> None:
    table = Table(title="Token usage")
    table.add_column("Agent")
    table.add_column("Calls", justify="right")
    table.add_column("Prompt", justify="right")
    table.add_column("Completion", justify="right")
    table.add_column("Est. cost (USD)", justify="right")
    for agent in runtime.coordinator.agents:
        totals = runtime.usage.totals(agent.id)
        table.add_row(
            agent.id,
            str(totals.calls),
            str(totals.prompt_tokens),
            str(totals.completion_tokens),
            f"{totals.estimated_cost:.4f}",
        )
    console.print(table)


async def _run_project(runtime: Runtime, timeout: float, auto_approve: bool) -> bool:
    await runtime.submit_seed_tasks()
    return await runtime.run_until_idle(timeout, auto_approve=auto_approve)


@app.command()
def run(
    config_path: Path = typer.Argument(..., help="Path to YAML configuration"),
    auto_approve: bool = typer.Option(False, help="Approve tasks that finish in review"),
    show_events: bool = typer.Option(False, help="Print agent events as they happen"),
    timeout: float = typer.Option(60.0, help="Seconds to wait for the queue to drain"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Submit the tasks in the config file and run them until the queue drains."""

    _configure_logging(verbose)
    config = _load(config_path)
    try:
        runtime = build_runtime(config)
    except ConfigError as exc:
        console.print(f"[bold red]Invalid configuration:[/] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(f"[bold green]Running project[/] {config.name} ({len(config.tasks)} tasks)")
    for agent_id, reason in runtime.offline.items():
        console.print(f"[yellow]Agent {agent_id} offline:[/] {reason}")
    if show_events:
        runtime.coordinator.subscribe(_print_event)

    drained = asyncio.run(_run_project(runtime, timeout, auto_approve))
    _render_tasks(runtime)
    _render_usage(runtime)
    if not drained:
        console.print(f"[yellow]Stopped after {timeout:.0f}s with work still pending.[/]")
        raise typer.Exit(code=2)


@app.command()
def inspect(config_path: Path = typer.Argument(..., help="Config to inspect")) -> None:
    """Print the agents, models, and tools defined by a configuration file."""

    config = _load(config_path)
    console.print(f"[bold]Project:[/] {config.name}\n{config.description or ''}")

    agents = Table(title="Agents")
    agents.add_column("ID")
    agents.add_column("Name")
    agents.add_column("Role")
    agents.add_column("Capabilities")
    agents.add_column("Model")
    agents.add_column("Tools")
    for spec in config.agents:
        definition = spec.definition
        agents.add_row(
            definition.id,
            definition.name,
            definition.role,
            ", ".join(definition.capabilities),
            definition.model_preference or config.models.primary,
            ", ".join(spec.tools) or "-",
        )
    console.print(agents)

    models = Table(title="Models")
    models.add_column("Key")
    models.add_column("Provider")
    models.add_column("Model")
    models.add_column("Role")
    for key, model in config.models.models.items():
        role = "primary" if key == config.models.primary else "fallback" if key == config.models.fallback else ""
        models.add_row(key, model.provider, model.model, role)
    console.print(models)

    if config.tool_specs:
        console.print("[bold]Custom tools[/]")
        for name, spec in config.tool_specs.items():
            console.print(f"- {name}: {spec.type}")


if __name__ == "__main__":  # pragma: no cover
    app()
