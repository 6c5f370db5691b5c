from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from arraysim.device import get_emulator_types
from arraysim.device.mock import RX_RECORD_SIZE, RxStatus
from arraysim.server import client
from arraysim.server.bg_killer import kill_arraysim_servers, list_running_servers
from arraysim.server.server import start_server
from arraysim.system import (
    create_default_settings_file,
    load_settings,
    settings_default_path,
)
from arraysim.types import LinkError
from arraysim.util import (
    DEFAULT_CLIENT_HOST_ADDR,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_LOGLEVEL,
    format_error_response,
    get_log_filename,
    shutdown_log,
    start_client_log,
)


def print_tree(cmd, prefix="", parent_ctx=None):
    """Print command tree starting from given command."""
    ctx = click.Context(cmd, info_name=cmd.name, parent=parent_ctx)

    # Only print root name if no parent
    if not parent_ctx:
        click.echo(cmd.name)

    for sub in sorted(cmd.list_commands(ctx)):
        sub_cmd = cmd.get_command(ctx, sub)
        click.echo(f"{prefix}└── {sub}")
        if isinstance(sub_cmd, click.Group):
            print_tree(sub_cmd, prefix + "    ", ctx)


def tree_option(f):
    """Add --tree option to command."""

    def callback(ctx, param, value):
        if not value or ctx.resilient_parsing:
            return
        print_tree(ctx.command)
        ctx.exit()

    return click.option(
        "--tree",
        is_flag=True,
        help="Show command tree from this point",
        expose_value=False,
        is_eager=True,
        callback=callback,
    )(f)


@click.group()
@tree_option
def cli():
    """arraysim - simulated ultrasound transducer array.

    Serves the device-link protocol so that array drivers can be exercised
    against emulated devices:

    - TCP server with an emulated device array

    - Probe and registry tools for running servers

    - Settings file management
    """
    pass


@cli.command()
@click.option(
    "--settings-file",
    "-s",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.arraysim/settings.ini)",
)
@click.option(
    "--emulator",
    "-e",
    "emulator_name",
    default="mock",
    type=click.Choice(sorted(get_emulator_types())),
    help="Device emulator to run (default: mock)",
)
@click.option(
    "--host-address", "-ha", default=None, help="Address to bind (overrides settings)"
)
@click.option("--port", "-p", default=None, type=int, help="Port (overrides settings)")
@click.option(
    "--log-to-file/--no-log-to-file",
    "-ltf/",
    default=True,
    help="Enable/disable logging to file (default: enabled)",
)
@click.option(
    "--log-to-stdout/--no-log-to-stdout",
    "-lts/",
    default=True,
    help="Enable/disable console logging (default: enabled)",
)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: auto-generated)",
)
@click.option(
    "--clear-prev-log/--no-clear-prev-log",
    "-c/",
    default=True,
    help="Clear previous log file on startup (default: enabled)",
)
@click.option(
    "--log-level",
    "-ll",
    default=None,
    help="Logging level (overrides settings)",
)
def server(
    settings_file: Optional[Path],
    host_address: Optional[str],
    port: Optional[int],
    log_level: Optional[str],
    **kwargs,
):
    """Start the simulator server.

    Listens for device-link connections and runs the simulation owner in the
    foreground until interrupted (Ctrl-C).
    """
    try:
        settings = load_settings(
            settings_file, host=host_address, port=port, log_level=log_level
        )
    except ValueError as e:
        raise click.BadParameter(str(e)) from e
    start_server(settings, **kwargs)


@cli.command()
def list():
    """List registered arraysim servers."""
    servers = list_running_servers()

    click.echo("\nRunning arraysim servers:")
    click.echo("-------------------------")

    if not servers:
        click.echo("No servers found")
        click.echo("")
        return

    for server in servers:
        status = "(RUNNING)" if server.get("running", False) else "(NOT RUNNING)"
        click.echo(f"\nPID: {server['pid']} {status}")
        click.echo(f"Started: {server['timestamp']}")
        click.echo(f"Address: {server['host']}:{server['port']}")
    click.echo("")


@cli.command()
def kill():
    """Kill all registered arraysim servers."""
    killed = kill_arraysim_servers()
    if killed:
        click.echo(f"Killed {killed} arraysim server(s)")
    else:
        click.echo("No running arraysim servers found")
    click.echo("")


@cli.group()
@tree_option
def settings():
    """Manage the settings file."""
    pass


@settings.command()
@click.option(
    "--settings-file",
    "-s",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.arraysim/settings.ini)",
)
def show(settings_file: Optional[Path]):
    """Print the effective settings."""
    path = settings_file if settings_file is not None else settings_default_path()
    try:
        current = load_settings(path)
    except ValueError:
        click.echo(f"Error: {format_error_response()}", err=True)
        raise SystemExit(1)

    source = str(path) if path.exists() else "defaults"
    click.echo(f"\nSettings ({source}):")
    click.echo("-------------------")
    for key, value in current.to_dict().items():
        click.echo(f"{key} = {value}")
    click.echo("")


@settings.command()
@click.option(
    "--settings-file",
    "-s",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Settings file (default: ~/.arraysim/settings.ini)",
)
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing file")
def init(settings_file: Optional[Path], force: bool):
    """Write a settings file with default values."""
    try:
        path = create_default_settings_file(settings_file, overwrite=force)
    except FileExistsError as e:
        click.echo(f"Error: {e} (use --force to overwrite)", err=True)
        raise SystemExit(1)
    click.echo(f"Wrote default settings to {path}")


@cli.command()
@click.option("--host-address", "-ha", default=DEFAULT_CLIENT_HOST_ADDR)
@click.option("--port", "-p", default=DEFAULT_PORT, type=int)
@click.option("--timeout", "-t", default=DEFAULT_TIMEOUT, type=float)
@click.option(
    "--log-path",
    "-lp",
    default="",
    help="Custom path for log file (default: ~/.arraysim/client.log)",
)
@click.option("--log-level", "-ll", default=DEFAULT_LOGLEVEL, help="Logging level")
def probe(host_address: str, port: int, timeout: float, log_path: str, log_level: str):
    """Connect to a server, handshake and print the latest device statuses."""
    console = Console(color_system="standard")
    start_client_log(log_path=log_path, log_level=log_level.upper())
    try:
        statuses = _probe(console, host_address, port, timeout)
    except LinkError:
        click.echo(f"Log: {get_log_filename()}")
        raise SystemExit(1)
    finally:
        shutdown_log()

    console.print(
        f"[green]+[/green] {host_address}:{port} reports {len(statuses)} device(s)"
    )
    if not statuses:
        return

    decode = len(statuses[0]) == RX_RECORD_SIZE
    table = Table(box=None)
    table.add_column("Device", justify="right")
    table.add_column("Raw")
    if decode:
        table.add_column("Data", justify="right")
        table.add_column("Ack", justify="right")
    for idx, raw in enumerate(statuses):
        row = [str(idx), raw.hex()]
        if decode:
            status = RxStatus.from_bytes(raw)
            row += [f"0x{status.data:02X}", str(status.ack)]
        table.add_row(*row)
    console.print(table)


def _probe(console: Console, host_address: str, port: int, timeout: float):
    try:
        conn = client.open_connection(host_address, port, timeout=timeout)
    except LinkError as e:
        console.print(f"[red]-[/red] Could not connect to {host_address}:{port}: {e}")
        raise

    try:
        client.handshake(conn)
        return client.read(conn)
    except LinkError as e:
        console.print(f"[red]-[/red] Probe failed: {e}")
        raise
    finally:
        client.close_connection(conn)
