"""
Validate Command - check an LLM's success narrative against real step results.

Exit codes:
    0  FULLY_VALIDATED
    1  PARTIALLY_VALIDATED, INCOMPLETE, or the report could not be written
    2  usage error or invalid step declarations
"""

import asyncio
import contextlib
import signal
from pathlib import Path
from typing import List, Optional

import typer
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from warrant.pipeline.application.orchestrator import VerificationPipeline
from warrant.pipeline.domain.enums import Severity, StepState, Verdict
from warrant.pipeline.domain.models import PipelineConfig, ValidationRun
from warrant.reports.generator import ReportGenerator
from warrant.shared.domain.exceptions import ConfigurationError, ReportWriteError
from warrant.shared.infrastructure.config import settings
from warrant.shared.infrastructure.logging import configure_logging, get_logger
from warrant.steps.loader import StepsYAMLLoader

console = Console()
logger = get_logger(__name__)

EXIT_VALIDATED = 0
EXIT_NOT_VALIDATED = 1
EXIT_USAGE = 2

VERDICT_STYLE = {
    Verdict.FULLY_VALIDATED: "green",
    Verdict.PARTIALLY_VALIDATED: "yellow",
    Verdict.INCOMPLETE: "red",
}

STATE_STYLE = {
    StepState.PASSED: "green",
    StepState.FAILED: "red",
    StepState.TIMEOUT: "red",
    StepState.BLOCKED: "magenta",
    StepState.SKIPPED: "dim",
}


def exit_code_for(verdict: Verdict) -> int:
    """PARTIALLY_VALIDATED fails CI in strict and standard mode alike."""
    return EXIT_VALIDATED if verdict is Verdict.FULLY_VALIDATED else EXIT_NOT_VALIDATED


def create_step_results_table(run: ValidationRun) -> Table:
    """Per-step breakdown in declaration order."""
    table = Table(title="Step Results", box=box.ROUNDED)
    table.add_column("Step", style="cyan", no_wrap=True)
    table.add_column("Severity", width=9, no_wrap=True)
    table.add_column("State", width=8, no_wrap=True)
    table.add_column("Exit", justify="right")
    table.add_column("Attempts", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Reason", style="dim")

    for step in run.steps:
        result = run.result_for(step.id)
        if result is None:
            continue
        severity_color = "red bold" if step.severity is Severity.CRITICAL else "yellow"
        state_color = STATE_STYLE[result.state]
        table.add_row(
            step.id,
            f"[{severity_color}]{step.severity.value}[/{severity_color}]",
            f"[{state_color}]{result.state.value}[/{state_color}]",
            "-" if result.exit_code is None else str(result.exit_code),
            str(max(result.attempt, 0)),
            f"{result.duration_ms}ms",
            result.reason or "",
        )
    return table


def display_run(run: ValidationRun) -> None:
    """Print the verdict together with its full derivation."""
    console.print(create_step_results_table(run))

    if run.findings:
        claims = Table(title="Claims", box=box.ROUNDED)
        claims.add_column("Claim")
        claims.add_column("Scope", style="cyan")
        claims.add_column("Finding")
        for finding in run.findings:
            color = {"SUPPORTED": "green", "CONTRADICTED": "red"}.get(finding.status.value, "dim")
            claims.add_row(finding.claim.text, finding.claim.scope, f"[{color}]{finding.status.value}[/{color}]")
        console.print(claims)

    display_verdict(run)


def display_verdict(run: ValidationRun) -> None:
    color = VERDICT_STYLE[run.verdict]
    derivation = "\n".join(f"  - {reason}" for reason in run.verdict_reasons)
    cancelled = "\n[red]Run was cancelled before all steps finished.[/red]" if run.cancelled else ""
    console.print(Panel(
        f"[bold {color}]{run.verdict.value}[/bold {color}]\n"
        f"[dim]Confidence:[/dim] {run.confidence:.2f}\n"
        f"[dim]Derivation:[/dim]\n{derivation}{cancelled}",
        title="Verdict",
        border_style=color,
    ))


async def _run_pipeline_async(pipeline: VerificationPipeline, narrative: str, source: str) -> ValidationRun:
    """Run the pipeline, turning Ctrl-C into a graceful cancellation."""
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError):
        loop.add_signal_handler(signal.SIGINT, pipeline.cancel)
        installed = True
    try:
        return await pipeline.run_async(narrative=narrative, narrative_source=source)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def validate(
    llm_output: Path = typer.Option(
        ..., "--llm-output", exists=True, dir_okay=False, readable=True,
        help="File containing the LLM output whose claims are checked",
    ),
    project: Path = typer.Option(
        Path("."), "--project", exists=True, file_okay=False,
        help="Project directory the steps run in",
    ),
    report: Optional[Path] = typer.Option(None, "--report", help="Report file (default: validation_report.md)"),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", min=0.001, help="Default per-step timeout in seconds",
    ),
    run_timeout: Optional[float] = typer.Option(
        None, "--run-timeout", min=0.001, help="Cancel the whole run after this many seconds",
    ),
    strict: bool = typer.Option(False, "--strict", help="Treat advisory steps as critical"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
    steps_file: Optional[Path] = typer.Option(
        None, "--steps", exists=True, dir_okay=False, help="Step declarations file",
    ),
    skip: Optional[List[str]] = typer.Option(None, "--skip", help="Exclude a step (repeatable)"),
    max_parallel: Optional[int] = typer.Option(None, "--max-parallel", min=1, help="Maximum concurrent steps"),
    logs_dir: Optional[Path] = typer.Option(None, "--logs-dir", help="Directory for per-step logs"),
):
    """
    Verify the success claims in an LLM output against real build/test results

    Example:
        warrant validate --llm-output response.md
        warrant validate --llm-output response.md --project ../app --strict
        warrant validate --llm-output out.txt --timeout 600 --debug
    """
    configure_logging(level="DEBUG" if debug else None)
    project = project.resolve()
    report_path = report or Path(settings.report_path)

    try:
        steps_config = StepsYAMLLoader.load_for_project(
            project, steps_file, warrant_dir=settings.warrant_dir, file_name=settings.steps_file,
        )
        registry = steps_config.build_registry()
        config = PipelineConfig(
            default_step_timeout=timeout or settings.default_step_timeout,
            max_parallelism=max_parallel or settings.max_parallelism,
            run_timeout=run_timeout,
            strict=strict,
            skip=tuple(skip or ()),
            output_excerpt_limit=settings.output_excerpt_limit,
            log_dir=str(logs_dir or project / settings.warrant_dir / "logs"),
            kill_grace_period=settings.kill_grace_period,
            scopes=steps_config.scopes,
        )
        narrative = llm_output.read_text(encoding="utf-8", errors="replace")

        console.print(f"[cyan]Validating[/cyan] {llm_output} [dim]against[/dim] {project}")
        pipeline = VerificationPipeline(registry, config=config, project_root=project)
        run = asyncio.run(_run_pipeline_async(pipeline, narrative, str(llm_output)))
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e), **e.context)
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_USAGE)

    display_run(run)

    try:
        written, json_path = ReportGenerator().write(run, report_path)
    except ReportWriteError as e:
        console.print(f"[red]Report not written:[/red] {e}")
        console.print(f"[bold]Verdict:[/bold] {run.verdict.value}")
        raise typer.Exit(EXIT_NOT_VALIDATED)

    console.print(f"[dim]Report:[/dim] {written} [dim](+ {json_path.name}; step logs in {config.log_dir})[/dim]")
    raise typer.Exit(exit_code_for(run.verdict))
