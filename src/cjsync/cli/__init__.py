"""
cjsync CLI — move ChengJing settings and data between installs.

Each command group lives in its own module and registers itself on
the main Click group.

Entry point: cjsync.cli:main
"""

from __future__ import annotations

import click

from .. import __version__
from ._common import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="cjsync")
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr.")
def main(verbose: bool):
    """cjsync — ChengJing configuration sync and backup.

    QR transfer, backup files, safe merges and snapshot history.
    """
    setup_logging(verbose)


# ---------------------------------------------------------------------------
# Register all command groups from modular files
# ---------------------------------------------------------------------------

from .qr import register_qr_commands
from .backup import register_backup_commands
from .snapshot import register_snapshot_commands
from .preset import register_preset_commands

register_qr_commands(main)
register_backup_commands(main)
register_snapshot_commands(main)
register_preset_commands(main)
