"""QR payload commands: export, import."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel
from rich.table import Table

from .. import SYNC_HOME
from ..errors import SyncError
from ._common import console, fail, open_context, print_result


def wallpaper_data_url(path: str) -> str:
    """Read an image file as a base64 data URL."""
    import base64
    import mimetypes

    mime = mimetypes.guess_type(path)[0] or "application/octet-stream"
    encoded = base64.b64encode(Path(path).expanduser().read_bytes()).decode("ascii")
    return f"data:{mime};base64,{encoded}"


def ascii_qr(request: dict) -> str:
    """generateQR handler: render request["text"] as an ASCII QR code.

    Raises:
        ImportError: qrcode is not installed.
    """
    import qrcode
    from io import StringIO

    code = qrcode.QRCode(box_size=1, border=1)
    code.add_data(request["text"])
    code.make(fit=True)

    buf = StringIO()
    code.print_ascii(out=buf)
    return buf.getvalue()


def register_qr_commands(main: click.Group) -> None:
    """Register the qr command group."""

    @main.group()
    def qr():
        """QR transfer — settings in a payload small enough to scan.

        Encode your configuration as a compact, optionally
        password-protected string, and import one from another device.
        """

    @qr.command("export")
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option(
        "--mode", "-m",
        type=click.Choice(["theme", "full", "custom"]),
        default="full",
        help="theme: appearance only; full: all settings; custom: --key only.",
    )
    @click.option("--key", "-k", "keys", multiple=True, help="Setting key for custom mode (repeatable).")
    @click.option("--password", "-p", default=None, help="Encrypt the payload.")
    @click.option("--output", "-o", default=None, type=click.Path(), help="Write the payload to a file.")
    @click.option(
        "--wallpaper", "-w", default=None, type=click.Path(exists=True, dir_okay=False),
        help="Image file to carry along as the wallpaper.",
    )
    @click.option("--show", is_flag=True, help="Print the payload as an ASCII QR code (needs qrcode).")
    def qr_export(
        home: str,
        mode: str,
        keys: tuple[str, ...],
        password: str,
        output: str,
        wallpaper: str,
        show: bool,
    ):
        """Encode the current configuration as a QR payload.

        A wallpaper image makes the payload large; it usually only fits
        a file transfer, not a single QR code.

        Examples:

            cjsync qr export

            cjsync qr export --mode theme -p secret -o theme.txt

            cjsync qr export --mode custom -k todoWidth -k boxSize --show

            cjsync qr export -w ~/Pictures/bg.png -o config.txt
        """
        from ..broker import RequestBroker

        handlers = {}
        if show:
            try:
                import qrcode  # noqa: F401

                handlers["generateQR"] = ascii_qr
            except ImportError:
                console.print("[dim]Install 'qrcode' for QR output: pip install qrcode[/dim]")

        context = open_context(home)
        state = context.state
        settings, icon_config = state.settings, state.icon_config
        if mode == "custom":
            settings = {k: v for k, v in settings.items() if k in keys}
            icon_config = {k: v for k, v in icon_config.items() if k in keys}

        qr_art = None
        try:
            with RequestBroker(handlers, timeout=context.settings.broker_timeout_seconds) as broker:
                result = broker.encode(
                    settings,
                    icon_config,
                    mode=mode,
                    password=password,
                    wallpaper=wallpaper_data_url(wallpaper) if wallpaper else None,
                    limit=context.settings.max_transport_chars,
                    iterations=context.settings.pbkdf2_iterations,
                )
                if "generateQR" in broker.handlers and not result["is_over_limit"]:
                    qr_art = broker.generate_qr(result["payload"])
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()

        if output:
            Path(output).expanduser().write_text(result["payload"], encoding="utf-8")

        status = "[red]OVER LIMIT[/]" if result["is_over_limit"] else "[green]fits[/]"
        console.print(Panel(
            f"Mode: {mode}\n"
            f"Encrypted: {'yes' if password else 'no'}\n"
            f"Size: {result['size']} / {context.settings.max_transport_chars} chars ({status})"
            + (f"\nPath: [cyan]{output}[/]" if output else ""),
            title="QR Payload",
            border_style="red" if result["is_over_limit"] else "green",
        ))
        if not output:
            click.echo(result["payload"])
        if qr_art:
            click.echo(qr_art)
        if result["is_over_limit"]:
            console.print("[yellow]Too large for one QR code. Try --mode theme or a backup file.[/]")

    @qr.command("import")
    @click.argument("payload_file", type=click.Path(exists=True))
    @click.option("--home", default=SYNC_HOME, type=click.Path(), help="Sync home directory.")
    @click.option("--password", "-p", default=None, help="Password for encrypted payloads.")
    @click.option("--apply", "do_apply", is_flag=True, help="Apply the decoded settings.")
    def qr_import(payload_file: str, home: str, password: str, do_apply: bool):
        """Decode a QR payload and optionally apply it.

        Unknown or out-of-range fields are dropped and listed.

        Examples:

            cjsync qr import payload.txt

            cjsync qr import payload.txt -p secret --apply
        """
        from ..broker import RequestBroker
        from ..models import DecodeResult
        from ..orchestrator import SyncOrchestrator

        text = Path(payload_file).read_text(encoding="utf-8").strip()
        context = open_context(home)
        try:
            with RequestBroker(timeout=context.settings.broker_timeout_seconds) as broker:
                decoded = DecodeResult.model_validate(
                    broker.decode(text, password, iterations=context.settings.pbkdf2_iterations)
                )

            table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
            table.add_column("Field", style="cyan")
            table.add_column("Value")
            for key, value in decoded.settings.items():
                table.add_row(key, repr(value))
            for key, value in decoded.icon_config.items():
                table.add_row(f"iconConfig.{key}", repr(value))

            console.print(
                f"\n[bold]{len(decoded.settings) + len(decoded.icon_config)}[/] field(s), "
                f"mode [cyan]{decoded.mode.value}[/], "
                f"{'encrypted' if decoded.encrypted else 'plain'}:\n"
            )
            console.print(table)
            if decoded.wallpaper:
                console.print(
                    f"\nWallpaper: [cyan]{len(decoded.wallpaper) / 1024:.1f} KB[/] "
                    "(replaces the daily wallpaper)"
                )
            if decoded.dropped:
                console.print(f"\n[yellow]Dropped:[/] {', '.join(decoded.dropped)}")

            if do_apply:
                print_result(SyncOrchestrator(context).apply_decoded(decoded), "Import")
        except (SyncError, OSError) as exc:
            fail(exc)
        finally:
            context.close()
