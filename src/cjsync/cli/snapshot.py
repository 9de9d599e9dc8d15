"""Snapshot history commands: create, list, restore, lock, delete."""

from __future__ import annotations

from datetime import datetime

import click
from rich.table import Table

from .. import SYNC_HOME
from ..errors import SyncError
from ._common import console, fail, open_context, print_result


def register_snapshot_commands(main: click.Group) -> None:
    """Register the snapshot command group."""

    @main.group()
    def snapshot():
        """Snapshot history — undo for your configuration.

        Up to ten unlocked snapshots are kept; locked ones are kept
        forever. Every restore records a restore point first.
        """

    @snapshot.command("create")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--label", "-l", default=None, help="Label for the snapshot.")
    def snapshot_create(home: str, label: str):
        """Take a manual snapshot of the current configuration."""
        from ..models import SnapshotTrigger

        context = open_context(home)
        try:
            snap = context.snapshots.create_snapshot(SnapshotTrigger.MANUAL, label)
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()
        console.print(f"[green]Snapshot created:[/] [cyan]{snap.id}[/] ({snap.size_kb:.1f} KB)")

    @snapshot.command("list")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def snapshot_list(home: str):
        """List snapshots, newest first."""
        context = open_context(home)
        try:
            metas = context.snapshots.list_snapshots()
        finally:
            context.close()

        if not metas:
            console.print("\n[dim]No snapshots yet.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Created", style="dim")
        table.add_column("Trigger")
        table.add_column("Label")
        table.add_column("Size", justify="right")
        table.add_column("Locked")

        for m in metas:
            created = datetime.fromtimestamp(m.timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
            table.add_row(
                m.id,
                created,
                m.trigger.value,
                m.label or "",
                f"{m.size_kb:.1f} KB",
                "[yellow]yes[/]" if m.is_locked else "",
            )

        console.print(f"\n[bold]{len(metas)}[/] snapshot(s):\n")
        console.print(table)
        console.print()

    @snapshot.command("restore")
    @click.argument("snapshot_id")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def snapshot_restore(snapshot_id: str, home: str):
        """Restore a snapshot (a restore point is saved first)."""
        from ..orchestrator import SyncOrchestrator

        context = open_context(home)
        try:
            print_result(SyncOrchestrator(context).restore_snapshot(snapshot_id), "Snapshot restore")
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

    @snapshot.command("lock")
    @click.argument("snapshot_id")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def snapshot_lock(snapshot_id: str, home: str):
        """Lock or unlock a snapshot. Locked snapshots are never evicted."""
        context = open_context(home)
        try:
            locked = context.snapshots.toggle_lock(snapshot_id)
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()
        console.print(f"[cyan]{snapshot_id}[/] {'[yellow]locked[/]' if locked else 'unlocked'}")

    @snapshot.command("delete")
    @click.argument("snapshot_id")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def snapshot_delete(snapshot_id: str, home: str):
        """Delete a snapshot."""
        context = open_context(home)
        try:
            deleted = context.snapshots.delete_snapshot(snapshot_id)
        finally:
            context.close()
        if not deleted:
            console.print(f"[red]Snapshot '{snapshot_id}' not found[/]")
            raise SystemExit(1)
        console.print(f"[green]Deleted[/] {snapshot_id}")
