"""stickerbridge CLI — command line interface."""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from . import __version__

console = Console()


def _mask(value) -> str:
    if not value:
        return "[dim]not set[/dim]"
    value = str(value)
    if len(value) <= 8:
        return "••••"
    return f"{value[:4]}…{value[-4:]}"


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="stickerbridge")
@click.pass_context
def cli(ctx):
    """stickerbridge — Telegram photos, GIFs and stickers to WhatsApp"""
    if ctx.invoked_subcommand is None:
        console.print(f"[bold]stickerbridge v{__version__}[/bold]\n")
        console.print("    [bold]stickerbridge start [/bold]  Start the Telegram ↔ WhatsApp relay")
        console.print("    [bold]stickerbridge config[/bold]  Show resolved configuration")
        console.print("\n[dim]Run 'stickerbridge <command> --help' for details.[/dim]")


@cli.command()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def start(debug):
    """Start the relay (Telegram bot + WhatsApp bridge)."""
    from .config import load_settings
    from .main import run

    settings = load_settings()
    if debug:
        settings.debug = True
    console.print("[bold blue]Starting stickerbridge...[/bold blue]")
    asyncio.run(run(settings))


@cli.command()
def config():
    """Show resolved configuration (secrets masked)."""
    from .config import load_settings

    settings = load_settings()

    table = Table(title=f"stickerbridge v{__version__}", show_header=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")

    table.add_row("Telegram token", _mask(settings.telegram_bot_token))
    table.add_row("WhatsApp number", settings.wa_phone_number or "[dim]not set[/dim]")
    table.add_row("Owner JID", settings.owner_jid or "[dim]not set[/dim]")
    pairing = "platform-generated"
    if settings.use_custom_pairing_code and settings.custom_pairing_code:
        pairing = f"custom ({settings.custom_pairing_code})"
    table.add_row("Pairing code", pairing)
    table.add_row("Bridge URL", settings.bridge_url)
    table.add_row("Pack", f"{settings.pack_name} / {settings.pack_author}")
    table.add_row("Command prefix", settings.command_prefix)
    table.add_row("Choice timeout", f"{settings.choice_timeout:g}s")
    table.add_row("Pack item delay", f"{settings.pack_item_delay:g}s")
    table.add_row("Reconnect delay", f"{settings.reconnect_delay:g}s")
    table.add_row("Log file", settings.log_file or "[dim]console only[/dim]")

    console.print(table)


if __name__ == "__main__":
    cli()
