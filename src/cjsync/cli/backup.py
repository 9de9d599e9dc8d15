"""Backup file commands: export, inspect, restore, merge, diff."""

from __future__ import annotations

from datetime import datetime

import click
from rich.panel import Panel

from .. import SYNC_HOME
from ..errors import SyncError
from ._common import console, fail, open_context, print_result


def register_backup_commands(main: click.Group) -> None:
    """Register the backup command group."""

    @main.group()
    def backup():
        """Backup files — all settings, todos, notes and poems.

        Export the full state to a JSON file (optionally encrypted),
        restore it wholesale, or merge in only what is new.
        """

    @backup.command("export")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--output", "-o", default=".", type=click.Path(), help="Output directory.")
    @click.option("--password", "-p", default=None, help="Encrypt the backup file.")
    def backup_export(home: str, output: str, password: str):
        """Write a full backup file.

        Examples:

            cjsync backup export

            cjsync backup export -o ~/Backups -p secret
        """
        from ..backup import export_backup

        context = open_context(home)
        try:
            result = export_backup(
                context.state, output, password=password, iterations=context.settings.pbkdf2_iterations
            )
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

        console.print(Panel(
            f"[bold green]Backup written[/]\n"
            f"Collections: {', '.join(result['meta']['dataKeys'])}\n"
            f"Size: {result['size'] / 1024:.1f} KB\n"
            f"Encrypted: {'yes' if result['encrypted'] else 'no'}\n"
            f"Path: [cyan]{result['filepath']}[/]",
            title="Backup Complete",
            border_style="green",
        ))

    @backup.command("inspect")
    @click.argument("file", type=click.Path(exists=True))
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--password", "-p", default=None, help="Password for encrypted backups.")
    def backup_inspect(file: str, home: str, password: str):
        """Validate a backup file and show what it contains.

        Examples:

            cjsync backup inspect chengjing-backup-v1-20260301-120000.json
        """
        from ..backup import read_backup, restore_stats
        from ..config import load_settings

        settings = load_settings(home)
        try:
            stats = restore_stats(read_backup(file, password, settings.pbkdf2_iterations))
        except (SyncError, OSError) as exc:
            fail(exc)

        exported = datetime.fromtimestamp(stats.export_time / 1000).strftime("%Y-%m-%d %H:%M:%S")
        console.print(Panel(
            f"Version: v{stats.version}\n"
            f"Exported: {exported}\n"
            f"Settings: {'yes' if stats.settings else 'no'}\n"
            f"Icon config: {'yes' if stats.icon_config else 'no'}\n"
            f"Todos: {stats.todo_count}\n"
            f"Notes: {stats.note_count}\n"
            f"Poems: {stats.poem_count}",
            title="Backup",
            border_style="cyan",
        ))

    @backup.command("restore")
    @click.argument("file", type=click.Path(exists=True))
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--password", "-p", default=None, help="Password for encrypted backups.")
    @click.option("--key", "-k", "keys", multiple=True, help="Restore only these setting keys (repeatable).")
    @click.option("--yes", "-y", is_flag=True, help="Skip the confirmation prompt.")
    def backup_restore(file: str, home: str, password: str, keys: tuple[str, ...], yes: bool):
        """Replace the current state with a backup.

        With --key, only the chosen configuration keys are written and
        everything else is left alone.

        Examples:

            cjsync backup restore backup.json

            cjsync backup restore backup.json -k todoWidth -k boxSize
        """
        from ..backup import read_backup
        from ..orchestrator import SyncOrchestrator

        context = open_context(home)
        try:
            container = read_backup(file, password, context.settings.pbkdf2_iterations)
            if not keys and not yes:
                click.confirm("This replaces your settings, todos, notes and poems. Continue?", abort=True)

            orchestrator = SyncOrchestrator(context)
            if keys:
                result = orchestrator.perform_selective_settings_restore(list(keys), container)
            else:
                result = orchestrator.perform_restore(container)
            print_result(result, "Restore")
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

    @backup.command("merge")
    @click.argument("file", type=click.Path(exists=True))
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--password", "-p", default=None, help="Password for encrypted backups.")
    @click.option("--todos/--no-todos", default=True, help="Merge new todos.")
    @click.option("--notes/--no-notes", default=True, help="Merge new notes.")
    @click.option("--poems/--no-poems", default=True, help="Merge new poems.")
    @click.option("--overwrite-settings", is_flag=True, help="Also take the backup's settings.")
    def backup_merge(
        file: str,
        home: str,
        password: str,
        todos: bool,
        notes: bool,
        poems: bool,
        overwrite_settings: bool,
    ):
        """Add only the items you do not already have.

        Existing items are never changed or removed.

        Examples:

            cjsync backup merge backup.json

            cjsync backup merge backup.json --no-poems --overwrite-settings
        """
        from ..backup import read_backup
        from ..diff import analyze_backup
        from ..models import MergeOptions
        from ..orchestrator import SyncOrchestrator

        context = open_context(home)
        try:
            container = read_backup(file, password, context.settings.pbkdf2_iterations)
            diff = analyze_backup(container["data"], context.state.collect_all())
            options = MergeOptions(
                include_todos=todos,
                include_notes=notes,
                include_poems=poems,
                overwrite_settings=overwrite_settings,
                source_data=container["data"],
            )
            print_result(SyncOrchestrator(context).perform_merge(diff, options), "Merge")
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

    @backup.command("diff")
    @click.argument("file", type=click.Path(exists=True))
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--password", "-p", default=None, help="Password for encrypted backups.")
    @click.option("--format", "fmt", type=click.Choice(["text", "json"]), default="text", help="Output format.")
    def backup_diff(file: str, home: str, password: str, fmt: str):
        """Compare a backup with the current state.

        Examples:

            cjsync backup diff backup.json --format json
        """
        from ..backup import read_backup
        from ..diff import FORMATTERS, analyze_backup

        context = open_context(home)
        try:
            container = read_backup(file, password, context.settings.pbkdf2_iterations)
            diff = analyze_backup(container["data"], context.state.collect_all())
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

        click.echo(FORMATTERS[fmt](diff))
