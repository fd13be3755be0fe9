"""CLI for local-history."""

import difflib
import logging
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import config_to_yaml
from .constants import CONFIG_FILE, HISTORY_VERSION
from .context import WorkspaceContext
from .core import GateDecision, HistoryGroup, Snapshot
from .errors import HistoryError, StoreUnavailableError
from .query import display_path, group_by_day
from .service import LocalHistory
from .store import atomic_write_bytes
from .utils import format_timestamp_for_display, humanize_age, humanize_size


app = typer.Typer(help="""\
Local file history. Capture point-in-time copies of workspace files,
browse them, compare them with the current file and restore them.""")

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Local file history."""
    _setup_logging(verbose)


def require_history(ctx: Optional[WorkspaceContext] = None) -> LocalHistory:
    """Open the history store for the current workspace.

    Raises:
        typer.Exit: If the store root is unusable
    """
    ctx = ctx or WorkspaceContext()
    try:
        return LocalHistory(ctx.config, workspace=ctx.root)
    except StoreUnavailableError as e:
        console.print(f"[red]✗[/red] {e}")
        console.print()
        console.print("[dim]Hint: set store_root in .local-history/config.yaml "
                      "or LOCAL_HISTORY_STORE[/dim]")
        raise typer.Exit(1)


def _select(history: LocalHistory, path: Path, index: int) -> Snapshot:
    """Pick the index-th newest snapshot of a file or exit."""
    entries = history.list_for(path)
    if not entries:
        console.print(f"[yellow]No history for {path}[/yellow]")
        raise typer.Exit(1)
    if index < 0 or index >= len(entries):
        console.print(f"[red]✗[/red] Index {index} out of range (0-{len(entries) - 1})")
        raise typer.Exit(1)
    return entries[index]


def _entry_size(snapshot: Snapshot) -> str:
    try:
        return humanize_size(snapshot.content_path.stat().st_size)
    except OSError:
        return "?"


def _print_groups(groups: List[HistoryGroup], base: Optional[Path], show_path: bool) -> None:
    for group in groups:
        table = Table(title=group.title, title_justify="left", show_header=False, box=None)
        table.add_column("When", style="cyan")
        table.add_column("Age", style="dim")
        if show_path:
            table.add_column("File")
        table.add_column("Size", justify="right", style="dim")
        for entry in group.entries:
            row = [
                format_timestamp_for_display(entry.captured_at),
                humanize_age(entry.captured_at),
            ]
            if show_path:
                row.append(display_path(entry.original_path, base))
            row.append(_entry_size(entry))
            table.add_row(*row)
        console.print(table)
        console.print()


@app.command()
def init(
    path: Optional[Path] = typer.Argument(None, help="Workspace directory (default: current directory)"),
):
    """Mark a directory as a history workspace and write default config."""
    target = (path or Path.cwd()).resolve()
    if WorkspaceContext.is_initialized(target):
        console.print(f"[yellow]Already initialized:[/yellow] {target}")
        raise typer.Exit(0)

    target.mkdir(parents=True, exist_ok=True)
    ctx = WorkspaceContext.init(target)
    ctx.config_path.parent.mkdir(parents=True, exist_ok=True)
    atomic_write_bytes(ctx.config_path, config_to_yaml(ctx.config).encode("utf-8"))
    console.print(f"[green]✓[/green] Initialized workspace at {target}")
    console.print(f"[dim]Config: {ctx.storage_dir / CONFIG_FILE}[/dim]")


@app.command()
def capture(
    paths: List[Path] = typer.Argument(..., help="Files that changed"),
    source: str = typer.Option("cli", "--source", help="Notification source label"),
):
    """Capture snapshots of changed files (exclusions and debounce apply)."""
    ctx = WorkspaceContext()
    history = require_history(ctx)
    failed = False
    for path in paths:
        decision, snapshot = history.submit(ctx.absolute(path), source=source)
        if snapshot is not None:
            console.print(f"[green]✓[/green] {path} [dim]({snapshot.timestamp})[/dim]")
        elif decision is GateDecision.ACCEPTED:
            console.print(f"[red]✗[/red] {path}: capture failed")
            failed = True
        else:
            console.print(f"[dim]- {path}: {decision.value}[/dim]")
    if failed:
        raise typer.Exit(1)


@app.command()
def log(
    path: Path = typer.Argument(..., help="File to show history for"),
):
    """Show the history of one file, grouped by day."""
    ctx = WorkspaceContext()
    history = require_history(ctx)
    target = ctx.absolute(path)
    entries = history.list_for(target)
    if not entries:
        console.print(f"[yellow]No history for {path}[/yellow]")
        return

    console.print(f"[bold]{display_path(str(target), ctx.root)}[/bold] "
                  f"[dim]({len(entries)} snapshots)[/dim]\n")
    # Indices shown per day; `show --index` uses the overall position
    index = 0
    for group in group_by_day(entries, base=ctx.root):
        table = Table(title=group.title, title_justify="left", show_header=False, box=None)
        table.add_column("#", style="dim", justify="right")
        table.add_column("When", style="cyan")
        table.add_column("Age", style="dim")
        table.add_column("Size", justify="right", style="dim")
        for entry in group.entries:
            table.add_row(
                str(index),
                format_timestamp_for_display(entry.captured_at),
                humanize_age(entry.captured_at),
                _entry_size(entry),
            )
            index += 1
        console.print(table)
        console.print()


@app.command()
def history(
    filter_text: Optional[str] = typer.Option(None, "--filter", "-f", help="Substring to match on path or file name"),
):
    """Show history across the workspace, grouped by recency."""
    ctx = WorkspaceContext()
    local_history = require_history(ctx)
    groups = local_history.list_all(filter_text)
    if not groups:
        console.print("[dim]No history[/dim]")
        return
    _print_groups(groups, ctx.root, show_path=True)


@app.command()
def show(
    path: Path = typer.Argument(..., help="File whose snapshot to print"),
    index: int = typer.Option(0, "--index", "-n", help="0 = newest snapshot"),
):
    """Print the content of a snapshot."""
    ctx = WorkspaceContext()
    history = require_history(ctx)
    snapshot = _select(history, ctx.absolute(path), index)
    data = history.read_content(snapshot)
    if data is None:
        console.print(f"[red]✗[/red] Snapshot {snapshot.timestamp} is no longer available")
        raise typer.Exit(1)
    sys.stdout.buffer.write(data)
    sys.stdout.flush()


@app.command()
def diff(
    path: Path = typer.Argument(..., help="File to compare"),
    index: int = typer.Option(0, "--index", "-n", help="0 = newest snapshot"),
):
    """Unified diff between a snapshot and the current file."""
    ctx = WorkspaceContext()
    history = require_history(ctx)
    target = ctx.absolute(path)
    snapshot = _select(history, target, index)
    old = history.read_content(snapshot)
    if old is None:
        console.print(f"[red]✗[/red] Snapshot {snapshot.timestamp} is no longer available")
        raise typer.Exit(1)
    try:
        new = target.read_bytes()
    except OSError:
        new = b""

    lines = difflib.unified_diff(
        old.decode("utf-8", errors="replace").splitlines(keepends=True),
        new.decode("utf-8", errors="replace").splitlines(keepends=True),
        fromfile=f"{snapshot.basename} ({snapshot.timestamp})",
        tofile=f"{snapshot.basename} (current)",
    )
    text = "".join(lines)
    if not text:
        console.print("[dim]No differences[/dim]")
        return
    for line in text.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            console.print(line, style="green", markup=False, highlight=False)
        elif line.startswith("-") and not line.startswith("---"):
            console.print(line, style="red", markup=False, highlight=False)
        else:
            console.print(line, markup=False, highlight=False)


@app.command()
def restore(
    path: Path = typer.Argument(..., help="File to restore"),
    index: int = typer.Option(0, "--index", "-n", help="0 = newest snapshot"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to this path instead"),
):
    """Restore a file from one of its snapshots."""
    ctx = WorkspaceContext()
    history = require_history(ctx)
    snapshot = _select(history, ctx.absolute(path), index)
    try:
        written = history.restore(snapshot, ctx.absolute(output) if output else None)
    except (HistoryError, OSError) as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] Restored {written} from {snapshot.timestamp}")


@app.command()
def prune():
    """Apply the retention policy to every file in the store."""
    history = require_history()
    result = history.prune_all()
    console.print(
        f"[green]✓[/green] Removed {result.removed_count} snapshots "
        f"across {result.files} files"
    )
    if result.failed:
        console.print(f"[yellow]⚠ {result.failed} snapshots could not be removed[/yellow]")


@app.command()
def purge(
    path: Optional[Path] = typer.Argument(None, help="File to purge (default: everything)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Delete history for one file, or the whole store."""
    ctx = WorkspaceContext()
    history = require_history(ctx)
    target = ctx.absolute(path) if path else None
    scope = str(target) if target else f"ALL history in {history.store.root}"
    if not yes and not typer.confirm(f"Delete {scope}?"):
        raise typer.Exit(1)
    removed = history.purge(target)
    console.print(f"[green]✓[/green] Removed {removed} snapshots")


@app.command()
def config():
    """Print the effective configuration."""
    ctx = WorkspaceContext()
    cfg = ctx.config
    console.print(f"[bold]Workspace:[/bold] {ctx.root}"
                  + ("" if ctx.initialized else " [dim](not initialized)[/dim]"))
    console.print(f"[bold]Store:[/bold] {cfg.resolved_store_root}")
    console.print(config_to_yaml(cfg), markup=False, highlight=False)


@app.command()
def version():
    """Print the version."""
    console.print(HISTORY_VERSION)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
