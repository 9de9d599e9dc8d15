"""Preset commands: list, apply, save, delete."""

from __future__ import annotations

import click
from rich.table import Table

from .. import SYNC_HOME
from ..errors import SyncError
from ._common import console, fail, open_context, print_result


def register_preset_commands(main: click.Group) -> None:
    """Register the preset command group."""

    @main.group()
    def preset():
        """Presets — switch layouts in one step.

        Three system presets are built in; save your own from the
        current configuration.
        """

    @preset.command("list")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def preset_list(home: str):
        """List system and user presets."""
        context = open_context(home)
        try:
            presets = context.presets.list_presets()
        finally:
            context.close()

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name")
        table.add_column("Description", style="dim")
        table.add_column("Fields", justify="right")
        table.add_column("Type")

        for p in presets:
            table.add_row(
                p.id,
                f"{p.icon} {p.name}".strip(),
                p.description or "",
                str(len(p.settings) + len(p.icon_config)),
                "[dim]system[/]" if p.is_system else "user",
            )
        console.print(table)

    @preset.command("apply")
    @click.argument("preset_id")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def preset_apply(preset_id: str, home: str):
        """Apply a preset (a snapshot is saved first)."""
        from ..orchestrator import SyncOrchestrator

        context = open_context(home)
        try:
            found = context.presets.get(preset_id)
            if found is None:
                console.print(f"[red]Preset '{preset_id}' not found[/]")
                raise SystemExit(1)
            print_result(SyncOrchestrator(context).apply_preset(found), "Preset")
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

    @preset.command("save")
    @click.argument("name")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--icon", default="📦", help="Icon shown next to the name.")
    @click.option("--description", "-d", default=None, help="Short description.")
    def preset_save(name: str, home: str, icon: str, description: str):
        """Save the current configuration as a user preset."""
        context = open_context(home)
        try:
            saved = context.presets.save_current(context.state, name, icon, description)
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()
        console.print(f"[green]Preset saved:[/] [cyan]{saved.id}[/]")

    @preset.command("delete")
    @click.argument("preset_id")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    def preset_delete(preset_id: str, home: str):
        """Delete a user preset. System presets cannot be deleted."""
        context = open_context(home)
        try:
            deleted = context.presets.delete(preset_id)
        finally:
            context.close()
        if not deleted:
            console.print(f"[red]No user preset '{preset_id}'[/]")
            raise SystemExit(1)
        console.print(f"[green]Deleted[/] {preset_id}")
