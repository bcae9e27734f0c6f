"""
Progress tracking and reporting utilities using rich.
"""

from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

console = Console(stderr=True)


def create_progress_bar() -> Progress:
    """
    Create a rich Progress bar with custom formatting.

    Progress is drawn on stderr so JSON/CSV on stdout stays clean.
    """
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


@contextmanager
def track_progress(description: str, total: int | None = None) -> Iterator[tuple[Progress, int]]:
    """
    Context manager for tracking progress over a set of computers or files.

    Usage:
        with track_progress("Querying", total=len(computers)) as (progress, task):
            for computer in computers:
                progress.update(task, description=f"Querying {computer}")
                ...
                progress.advance(task)

    Args:
        description: Description to show in progress bar
        total: Total number of steps (None for indeterminate progress)

    Yields:
        (Progress instance, task id)
    """
    progress = create_progress_bar()
    with progress:
        task = progress.add_task(description, total=total)
        yield progress, task


def summary_panel(title: str, items: dict[str, str | int]) -> Panel:
    """
    Build a formatted summary box.

    Args:
        title: Summary title
        items: Dictionary of items to show (key: value pairs)
    """
    from rich.table import Table

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")

    for key, value in items.items():
        table.add_row(key, str(value))

    return Panel(table, title=f"[bold]{title}[/bold]", border_style="blue")
