"""
wg-provision - WireGuard peer provisioning

Adds peers to the server's wg0.conf, installs pasted client configs and
bootstraps a new server.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import Settings, load_config, setup_logging
from .exceptions import ProvisioningError, ServiceReloadFailure
from .keygen import get_key_provider
from .prompts import RichInputSource
from .qr_generator import generate_qr_code
from .system import SystemdReloader
from .workflow import ProvisioningWorkflow


logger = logging.getLogger(__name__)

console = Console()

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_RELOAD_FAILED = 3
EXIT_INTERRUPTED = 130


def build_workflow(settings: Settings) -> ProvisioningWorkflow:
    return ProvisioningWorkflow(
        settings,
        key_provider=get_key_provider(settings.key_backend),
        reloader=SystemdReloader(timeout=settings.reload_timeout),
        input_source=RichInputSource(console),
    )


def print_error(error: ProvisioningError):
    console.print(f"[red]✗ {error.message}[/red]")
    for step in error.remediation:
        console.print(f"  • {step}")


def print_reload_warning(error: ServiceReloadFailure):
    """The peer is registered; only the running interface is stale"""
    lines = [
        f"[bold yellow]Peer registered, but reloading {error.interface} failed.[/bold yellow]",
        f"{error.detail}",
        "",
        "The server config already contains the new peer. It becomes active",
        "once the interface is reloaded:",
    ]
    lines += [f"  • {step}" for step in error.remediation]
    console.print(Panel("\n".join(lines), title="WARNING", border_style="yellow"))


def cmd_init_server(args, workflow: ProvisioningWorkflow) -> int:
    """Create server keys and wg0.conf, open the port, enable the service"""
    console.print("[cyan]Initializing WireGuard server...[/cyan]")

    server = workflow.initialize_server(port=args.port, wan_interface=args.wan_interface)

    console.print(f"[green]✓ Server config: {workflow.registry.path}[/green]")
    console.print(f"  Address:    {server.address}")
    console.print(f"  ListenPort: {server.listen_port}/udp")
    console.print(f"  PublicKey:  {workflow.server_public_key()}")
    return EXIT_OK


def cmd_add_peer(args, workflow: ProvisioningWorkflow) -> int:
    """Add a new peer and reload the server"""
    result = workflow.add_peer(name=args.name, overwrite=args.overwrite, port=args.port)
    record = result.record

    console.print(f"[green]✓ Peer '{record.name}' registered at {record.address}[/green]")
    console.print(f"✓ Client config saved to {result.client_config_path}")

    console.print("\n=== Client Configuration ===")
    console.print(result.client_config, markup=False, highlight=False)

    if args.qr:
        qr_path = result.client_config_path.with_suffix('.png')
        console.print("\nScan this QR code with the WireGuard mobile app:\n")
        console.print(generate_qr_code(result.client_config, output_path=qr_path), markup=False, highlight=False)
        console.print(f"✓ QR code saved to {qr_path}")

    if not result.reloaded:
        print_reload_warning(result.reload_error)
        return EXIT_RELOAD_FAILED

    console.print(f"[green]✓ WireGuard interface {workflow.settings.interface} reloaded[/green]")
    return EXIT_OK


def cmd_import_client(args, workflow: ProvisioningWorkflow) -> int:
    """Install a pasted client config"""
    raw_text = None
    if args.file and args.file != '-':
        raw_text = Path(args.file).read_text()
    elif args.file == '-':
        raw_text = sys.stdin.read()

    try:
        path = workflow.ingest_client_config(
            raw_text,
            name=args.name,
            overwrite=args.overwrite,
            bring_up=args.up,
        )
    except ServiceReloadFailure as e:
        console.print("[yellow]Config saved, but the interface did not come up.[/yellow]")
        print_error(e)
        return EXIT_RELOAD_FAILED

    name = path.stem
    console.print(f"[green]✓ Config saved to {path}[/green]")
    console.print("\nUseful commands:")
    console.print(f"  Start:  sudo wg-quick up {name}")
    console.print(f"  Stop:   sudo wg-quick down {name}")
    console.print(f"  Status: sudo wg show {name}")
    console.print(f"  Logs:   sudo journalctl -u wg-quick@{name} -f")
    return EXIT_OK


def cmd_list_peers(args, workflow: ProvisioningWorkflow) -> int:
    """List peers registered in the server config"""
    peers = workflow.list_peers()

    if not peers:
        console.print("No peers found")
        return EXIT_OK

    table = Table(title=f"Peers in {workflow.registry.path}")
    table.add_column("Name", style="cyan")
    table.add_column("Address")
    table.add_column("Added")
    table.add_column("Public key", overflow="fold")

    for peer in peers:
        added = peer.created_at.strftime('%Y-%m-%d') if peer.created_at.year > 1970 else "-"
        table.add_row(peer.name, peer.address, added, peer.public_key)

    console.print(table)
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='wg-provision',
        description='wg-provision - WireGuard peer provisioning',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  wg-provision init-server --port 51820       Create server keys and wg0.conf
  wg-provision add-peer laptop --qr           Add a peer and show its QR code
  wg-provision add-peer phone --yes           Replace an existing peer
  wg-provision import-client client.conf      Install a client config
  wg-provision list-peers                     List registered peers
        """
    )

    parser.add_argument(
        '-c', '--config',
        type=Path,
        default=None,
        help='Config file path (default: /etc/wg-provision/config.yaml if present)'
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    init_parser = subparsers.add_parser('init-server', help='Initialize the WireGuard server')
    init_parser.add_argument('--port', type=int, help='Listen port (prompted when omitted)')
    init_parser.add_argument('--wan-interface', help='Interface for NAT (auto-detected when omitted)')

    add_parser = subparsers.add_parser('add-peer', help='Add a new peer')
    add_parser.add_argument('name', nargs='?', help='Peer name (prompted when omitted)')
    add_parser.add_argument('--port', type=int, help='Server port for the client Endpoint')
    add_parser.add_argument('--qr', action='store_true', help='Show and save a QR code')
    overwrite = add_parser.add_mutually_exclusive_group()
    overwrite.add_argument('--yes', dest='overwrite', action='store_const', const=True,
                           help='Replace an existing peer with the same name')
    overwrite.add_argument('--no-overwrite', dest='overwrite', action='store_const', const=False,
                           help='Fail if the peer already exists')

    import_parser = subparsers.add_parser('import-client', help='Install a client config')
    import_parser.add_argument('file', nargs='?', help="Config file, '-' for stdin (pasted when omitted)")
    import_parser.add_argument('--name', help='Interface name (default: from the config comment, else wg0)')
    import_parser.add_argument('--yes', dest='overwrite', action='store_const', const=True,
                               help='Overwrite an existing config')
    up = import_parser.add_mutually_exclusive_group()
    up.add_argument('--up', dest='up', action='store_const', const=True, help='Bring the interface up')
    up.add_argument('--no-up', dest='up', action='store_const', const=False, help='Do not bring it up')

    subparsers.add_parser('list-peers', help='List registered peers')

    return parser


COMMANDS = {
    'init-server': cmd_init_server,
    'add-peer': cmd_add_peer,
    'import-client': cmd_import_client,
    'list-peers': cmd_list_peers,
}


def main(argv: Optional[List[str]] = None, workflow: Optional[ProvisioningWorkflow] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return EXIT_FAILED

    try:
        if workflow is None:
            settings = load_config(args.config)
            setup_logging(settings, verbose=args.verbose)
            workflow = build_workflow(settings)

        return COMMANDS[args.command](args, workflow)

    except ProvisioningError as e:
        logger.error(f"{args.command} failed: {e}")
        print_error(e)
        return EXIT_FAILED
    except (OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        console.print(f"[red]✗ {e}[/red]")
        return EXIT_FAILED
    except KeyboardInterrupt:
        console.print("\n[yellow]Aborted[/yellow]")
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
