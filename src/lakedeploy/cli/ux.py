"""
Console output for lakedeploy commands.

stdout carries summaries (and ``--output json`` documents); diagnoses and
operator hints go to stderr. Colour follows NO_COLOR / FORCE_COLOR, and
spinners only appear on an interactive terminal outside CI.
"""

from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from typing import Iterator

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.theme import Theme

LAKEDEPLOY_THEME = Theme(
    {
        "info": "#88C0D0",
        "success": "#A3BE8C",
        "warning": "#EBCB8B",
        "error": "#BF616A bold",
        "muted": "#D8DEE9",
    }
)

CI_VARIABLES = ("CI", "GITHUB_ACTIONS", "TF_BUILD", "JENKINS_URL", "GITLAB_CI")

# Resource and step states -> (style, marker)
STATE_STYLES = {
    "applied": ("success", "✓"),
    "skipped": ("muted", "↷"),
    "pending": ("muted", "·"),
    "not_applied": ("warning", "✗"),
    "failed": ("error", "✗"),
}


def _is_interactive() -> bool:
    if any(os.environ.get(var) for var in CI_VARIABLES):
        return False
    return sys.stdout.isatty()


def _make_console(stderr: bool = False) -> Console:
    return Console(
        theme=LAKEDEPLOY_THEME,
        stderr=stderr,
        force_terminal=os.environ.get("FORCE_COLOR") is not None,
        no_color=os.environ.get("NO_COLOR") is not None,
    )


console = _make_console()
err_console = _make_console(stderr=True)


@contextmanager
def spinner(message: str) -> Iterator[None]:
    """Show a transient spinner while a long deployment runs."""
    if not _is_interactive():
        yield
        return

    with Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        console=console,
        transient=True,
    ) as progress:
        progress.add_task(description=message, total=None)
        yield


def header(title: str) -> None:
    console.print()
    console.print(Panel(f"[bold]{title}[/bold]", border_style="cyan"))


def state_line(state: str, label: str, note: str = "") -> None:
    """Print one resource or step with its state marker."""
    style, marker = STATE_STYLES.get(state, ("muted", "?"))
    suffix = f" [muted]{note}[/muted]" if note else ""
    console.print(f"  [{style}]{marker} {label}[/{style}]{suffix}")


def print_key_value(items: dict[str, str], title: str | None = None) -> None:
    if title:
        console.print(f"\n[bold]{title}[/bold]")
    for key, value in items.items():
        console.print(f"  [info]{key}:[/info] {value}")


def warning(message: str) -> None:
    console.print(f"[warning]⚠ {message}[/warning]")


def error(message: str) -> None:
    """Print a diagnosis to stderr."""
    err_console.print(f"[error]✗ {message}[/error]", highlight=False)


def info(message: str) -> None:
    """Print an operator hint to stderr."""
    err_console.print(f"[info]→ {message}[/info]", highlight=False)
