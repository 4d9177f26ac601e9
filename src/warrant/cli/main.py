"""
Warrant CLI - checks LLM success claims against real results
Main entry point for the command-line interface

Usage:
    warrant validate --llm-output <file>    # Run the steps and judge the claims
    warrant steps list                      # Show declared steps
    warrant steps check                     # Validate step declarations
    warrant version                         # Show version
"""

import typer
from rich.console import Console
from rich.panel import Panel

from warrant import __version__
from warrant.cli.commands import steps
from warrant.cli.commands.validate import validate

app = typer.Typer(
    name="warrant",
    help="Warrant - verifies LLM success claims against real build, test and audit results",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()

# Register commands
app.command(name="validate")(validate)
app.add_typer(steps.app, name="steps", help="Inspect and check declared verification steps")


@app.command()
def version():
    """Show Warrant version information"""
    console.print(Panel.fit(
        "[bold cyan]Warrant Core[/bold cyan]\n"
        f"[dim]Version:[/dim] {__version__}\n",
        title="About Warrant",
        border_style="cyan",
    ))


def main():
    """Main entry point"""
    app()


if __name__ == "__main__":
    main()
