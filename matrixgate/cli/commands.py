"""CLI commands for matrixgate."""

import asyncio
import os
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from matrixgate import __version__, __logo__

app = typer.Typer(
    name="matrixgate",
    help=f"{__logo__} matrixgate - Matrix admission control and owner pairing",
    no_args_is_help=True,
)

console = Console()
err_console = Console(stderr=True)


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} matrixgate v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """matrixgate - Matrix admission control and owner pairing."""
    pass


def _load(config_path: Path | None):
    from matrixgate.config.loader import load_config, apply_env_credentials

    return apply_env_credentials(load_config(config_path))


def _services(config):
    from matrixgate.groups import RegisteredGroupsStore
    from matrixgate.pairing import PairingService, PairingStore

    pairing = PairingService(PairingStore(config.data_dir))
    groups = RegisteredGroupsStore(config.data_dir, config.groups_dir)
    return pairing, groups


def _print_owner(owner) -> None:
    err_console.print(f"  Owner: [cyan]{owner.owner_id}[/cyan]")
    err_console.print(f"  Main Room: {owner.main_room_id}")
    err_console.print(f"  Paired: {owner.paired_at}")


# ============================================================================
# Pairing
# ============================================================================


@app.command()
def pair(
    code: str = typer.Argument(None, help="Pairing code shown by the bot"),
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Approve a pairing request and make its room the main admin room."""
    config = _load(config_path)
    pairing, groups = _services(config)

    if not code:
        err_console.print("Usage: matrixgate pair <CODE>")
        err_console.print("")
        pending = pairing.get_pending_pairing()
        if pending:
            err_console.print("[bold]Pending pairing request:[/bold]")
            err_console.print(f"  Code: [cyan]{pending.code}[/cyan]")
            err_console.print(f"  User: {pending.requester_id}")
            err_console.print(f"  Room: {pending.room_name}")
            err_console.print(f"  Created: {pending.created_at}")
        else:
            owner = pairing.get_owner()
            if owner:
                err_console.print("[bold]Already paired:[/bold]")
                _print_owner(owner)
            else:
                err_console.print("[dim]No pending pairing request. Send a message to the bot first.[/dim]")
        raise typer.Exit(1)

    existing = pairing.get_owner()
    if existing:
        err_console.print("[red]Already paired![/red]")
        _print_owner(existing)
        err_console.print("")
        err_console.print(f"To reset, delete {pairing.store.owner_path} and restart the gateway.")
        raise typer.Exit(1)

    owner = pairing.approve_pairing(code)
    if not owner:
        err_console.print("[red]Invalid or expired pairing code.[/red]")
        pending = pairing.get_pending_pairing()
        if pending:
            err_console.print(f"Current valid code: [cyan]{pending.code}[/cyan]")
        else:
            err_console.print("[dim]No pending pairing request. Send a message to the bot first.[/dim]")
        raise typer.Exit(1)

    folder = config.assistant.main_group_folder
    group_dir = groups.register_main_group(owner, folder, config.assistant.name)

    console.print("[green]✓[/green] Pairing successful!")
    console.print("")
    console.print(f"  Owner: [cyan]{owner.owner_id}[/cyan]")
    console.print(f"  Main Room: {owner.main_room_id}")
    console.print(f"  Folder: {group_dir}")
    console.print("")
    console.print("Restart the gateway to apply changes.")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
):
    """Show pairing state and registered rooms."""
    from matrixgate.config.loader import get_config_path

    config = _load(config_path)
    pairing, groups = _services(config)
    path = config_path or get_config_path()

    console.print(f"{__logo__} matrixgate status\n")
    console.print(f"Config: {path} {'[green]✓[/green]' if path.exists() else '[dim]defaults[/dim]'}")
    console.print(f"Data: {config.data_dir}")
    console.print(f"Homeserver: {config.matrix.homeserver or '[dim]not set[/dim]'}")
    console.print(f"Bot user: {config.matrix.user_id or '[dim]not set[/dim]'}")

    owner = pairing.get_owner()
    if owner:
        console.print(f"Owner: [cyan]{owner.owner_id}[/cyan] (main room {owner.main_room_id})")
    else:
        pending = pairing.get_pending_pairing()
        if pending:
            console.print(f"Owner: [yellow]pending[/yellow] code {pending.code} from {pending.requester_id}")
        else:
            console.print("Owner: [dim]not paired[/dim]")

    registered = groups.load()
    if not registered:
        return

    table = Table(title="Registered Groups")
    table.add_column("Room", style="cyan")
    table.add_column("Name")
    table.add_column("Folder")
    table.add_column("Trigger")
    table.add_column("Added")
    for room_id, group in registered.items():
        table.add_row(room_id, group.name, group.folder, group.trigger, group.added_at[:19])
    console.print(table)


# ============================================================================
# Gateway
# ============================================================================


@app.command()
def gateway(
    config_path: Path = typer.Option(None, "--config", "-c", help="Path to config.json"),
    verbose: bool = typer.Option(False, "--verbose", help="Debug logging"),
):
    """Connect to Matrix and start admitting messages."""
    from matrixgate.channels.matrix.client import MatrixSession
    from matrixgate.channels.matrix.monitor import MatrixMonitor
    from matrixgate.errors import ConfigError, MatrixRequestError
    from matrixgate.gateway import PairingGate

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else os.environ.get("LOG_LEVEL", "INFO").upper())

    config = _load(config_path)
    try:
        session = MatrixSession(config)
    except ConfigError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    pairing, groups = _services(config)

    async def handle(message, room_config, is_main):
        # No agent is attached here; admitted messages are logged
        logger.info(
            f"Admitted {message.event_id} from {message.sender_name} in {message.room_id} "
            f"(main={is_main}, folder={room_config.folder if room_config else None}): {message.content[:80]}"
        )

    gate = PairingGate(
        pairing, groups, session.send_message, session.get_room_name, handle,
        set_typing=session.set_typing,
    )
    monitor = MatrixMonitor(session, pairing, config.assistant, gate)
    monitor.start()

    console.print(f"{__logo__} Starting gateway for {config.matrix.user_id}...")

    async def run():
        try:
            await session.start()
        finally:
            await session.stop()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nGoodbye!")
    except (ConfigError, MatrixRequestError) as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
