"""Shared utilities for all CLI command modules.

Provides the Rich console instance, logging setup, context helpers,
and the error reporting used by every command group.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from rich.console import Console

from .. import SYNC_HOME
from ..errors import ErrorKind, SyncError
from ..orchestrator import SyncContext

console = Console()

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(verbose: bool) -> None:
    """Send cjsync logs to stderr when --verbose is given."""
    if not verbose:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("cjsync")
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)


def open_context(home: Optional[str]) -> SyncContext:
    """Open a sync session on the given (or default) home."""
    return SyncContext.open(Path(home or SYNC_HOME).expanduser())


def fail(exc: Exception) -> None:
    """Print an error and exit 1.

    Args:
        exc: A SyncError, or an OSError from file handling.
    """
    if isinstance(exc, SyncError) and exc.kind == ErrorKind.ROLLBACK_FAILURE:
        console.print(f"[bold red]CRITICAL:[/] {exc}")
        console.print("[red]Live state may be inconsistent. Check your data before continuing.[/]")
    elif isinstance(exc, SyncError):
        console.print(f"[red]{exc}[/] [dim]({exc.kind.value})[/]")
    else:
        console.print(f"[red]{exc}[/]")
    raise SystemExit(1)


def print_result(result, title: str) -> None:
    """Render an ApplyResult; exit 1 if it did not commit."""
    from rich.panel import Panel

    if result.success:
        lines = [f"[bold green]{title} committed[/]"]
        if result.applied_count:
            lines.append(f"Applied: {result.applied_count}")
        for name, count in result.added_count.items():
            lines.append(f"Added {name}: {count}")
        console.print(Panel("\n".join(lines), title=title, border_style="green"))
        return

    scope = "configuration only" if result.partial else "full state"
    console.print(Panel(
        f"[bold red]{title} failed[/]\n"
        f"Error: {result.error}\n"
        f"Rolled back: {'yes (' + scope + ')' if result.rolled_back else 'no'}",
        title=title,
        border_style="red",
    ))
    raise SystemExit(1)
