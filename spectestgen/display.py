"""Rich terminal display helpers for generator output."""

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from spectestgen.models import GeneratedArtifact, SuiteResult

_console = Console()


def display_generated_source(
    artifact: GeneratedArtifact, console: Console | None = None
) -> None:
    """Print generated test source with Python syntax highlighting in a panel.

    Args:
        artifact: Generated test module.
        console: Optional console override for tests.
    """
    c = console or _console
    syntax = Syntax(artifact.source, "python", line_numbers=False)
    title = f"{artifact.filename} ({artifact.command_count} directives)"
    c.print(Panel(syntax, title=title, border_style="cyan"))


def display_suite_summary(result: SuiteResult, console: Console | None = None) -> None:
    """Print a table summarizing every generated module.

    Args:
        result: Outcome of a suite build.
        console: Optional console override for tests.
    """
    c = console or _console
    table = Table(title="Generated Spectests")
    table.add_column("Script")
    table.add_column("Module")
    table.add_column("Directives", justify="right")
    table.add_column("Output")
    table.add_column("Fast build")

    for file in result.files:
        output_value = "written" if file.written else "unchanged"
        fast_value = "[yellow]excluded[/yellow]" if file.gated else "included"
        table.add_row(
            file.script.name,
            file.module_name,
            str(file.command_count),
            output_value,
            fast_value,
        )
    c.print(table)
    manifest_state = "written" if result.manifest_written else "unchanged"
    c.print(f"[bold]Manifest:[/bold] {result.manifest_path} ({manifest_state})")


def display_error(message: str, console: Console | None = None) -> None:
    """Print an error message in red.

    Args:
        message: Error message to display.
        console: Optional console override for tests.
    """
    c = console or _console
    c.print(f"[red]Error: {message}[/red]")


def display_spinner_context(message: str):
    """Return a spinner context manager for status output.

    Args:
        message: Status message shown while work is in progress.

    Returns:
        Rich status context manager.
    """
    return _console.status(message)
