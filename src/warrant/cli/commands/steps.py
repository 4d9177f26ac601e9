"""
Steps Command - inspect the declared verification steps.
"""

from pathlib import Path
from typing import Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from warrant.shared.domain.exceptions import ConfigurationError
from warrant.shared.infrastructure.config import settings
from warrant.steps.loader import StepsConfig, StepsYAMLLoader

app = typer.Typer()
console = Console()


def _load(project: Path, steps_file: Optional[Path]) -> StepsConfig:
    try:
        return StepsYAMLLoader.load_for_project(
            project.resolve(), steps_file, warrant_dir=settings.warrant_dir, file_name=settings.steps_file,
        )
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(2)


@app.command("list")
def list_steps(
    project: Path = typer.Option(Path("."), "--project", exists=True, file_okay=False, help="Project directory"),
    steps_file: Optional[Path] = typer.Option(None, "--steps", exists=True, dir_okay=False, help="Step declarations file"),
):
    """
    List declared steps in declaration order

    Example:
        warrant steps list
        warrant steps list --steps ci/steps.yaml
    """
    config = _load(project, steps_file)
    table = Table(title=f"Steps ({config.source})", box=box.ROUNDED)
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Severity", no_wrap=True)
    table.add_column("Depends on")
    table.add_column("Timeout", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Command", style="dim")

    for step in config.steps:
        table.add_row(
            step.id,
            step.severity.value,
            ", ".join(step.depends_on) or "-",
            f"{step.timeout:g}s" if step.timeout else "default",
            str(step.retry_policy.max_attempts),
            step.command_line,
        )
    console.print(table)


@app.command("check")
def check_steps(
    project: Path = typer.Option(Path("."), "--project", exists=True, file_okay=False, help="Project directory"),
    steps_file: Optional[Path] = typer.Option(None, "--steps", exists=True, dir_okay=False, help="Step declarations file"),
):
    """
    Validate step declarations (duplicates, unknown dependencies, cycles) without running anything

    Example:
        warrant steps check --steps .warrant/steps.yaml
    """
    config = _load(project, steps_file)
    try:
        registry = config.build_registry()
    except ConfigurationError as e:
        console.print(f"[red]Invalid step declarations:[/red] {e}")
        raise typer.Exit(2)

    order = " -> ".join(registry.topological_order())
    console.print(f"[green]{len(registry)} steps OK[/green]")
    console.print(f"[dim]Execution order:[/dim] {order}")
