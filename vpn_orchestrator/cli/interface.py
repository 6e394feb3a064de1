"""
Command-line interface for the VPN orchestrator
"""

import logging
import time
from pathlib import Path
from typing import Optional, List

import click
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich import box

from ..core.config_manager import ConfigManager
from ..core.connection_controller import ConnectionController
from ..core.errors import VPNError, ConnectionLost
from ..core.node_catalog import NodeCatalog, SelectionPolicy
from ..core.settings_store import SettingsStore, SETTING_NAMES
from ..core.types import Node, Protocol
from ..providers.backend import HTTPBackend
from ..utils.formatting import format_bytes, format_speed
from ..utils.logging_setup import configure_logging
from ..utils.network_tools import NetworkTools, flag_url

console = Console()


class VPNCLI:
    """Command-line front-end over the connection controller"""

    def __init__(self, controller: ConnectionController,
                 network_tools: Optional[NetworkTools] = None):
        self.controller = controller
        self.catalog = controller.catalog
        self.settings = controller.settings
        self.network_tools = network_tools or NetworkTools()

        # Register callbacks
        self.controller.register_callback('state_change', self._on_state_change)
        self.controller.register_callback('connection_lost', self._on_connection_lost)
        self.controller.register_callback('error', self._on_error)

    @classmethod
    def from_config(cls, config: ConfigManager) -> 'VPNCLI':
        backend = HTTPBackend(
            config.api_url,
            timeout=config.api_timeout,
            access_token=config.access_token
        )
        controller = ConnectionController(
            backend,
            catalog=NodeCatalog(backend),
            settings=SettingsStore(config.storage_file),
            sample_interval=config.stats_interval,
            timer_interval=config.timer_interval
        )
        return cls(controller)

    def list_nodes(self, country: Optional[str] = None,
                   protocol: Optional[str] = None,
                   search: Optional[str] = None):
        """List available nodes"""
        self.catalog.refresh(country=country, protocol=protocol)
        nodes = self.catalog.search(search)

        if not nodes:
            console.print("[yellow]No servers found[/yellow]")
            return

        table = Table(title="Available VPN Servers", box=box.ROUNDED)
        table.add_column("ID", style="cyan")
        table.add_column("Name", style="white")
        table.add_column("Country", style="green")
        table.add_column("City", style="white")
        table.add_column("Load", style="red")
        table.add_column("Latency", style="cyan")
        table.add_column("Users", style="magenta")
        table.add_column("Protocols", style="yellow")

        for node in nodes[:50]:  # Limit display
            protocols = ', '.join(
                p.display_name for p in Protocol if node.supports(p)
            ) or 'none'
            table.add_row(
                node.id[:8],
                node.name,
                f"{node.country} ({node.country_code.upper()})" if node.country_code else node.country,
                node.city,
                f"{node.load_score:.0f}%",
                f"{node.latency}ms" if node.latency else "N/A",
                f"{node.current_connections}/{node.max_connections}",
                protocols
            )

        console.print(table)
        console.print(
            f"[dim]Showing {len(nodes[:50])} of {len(nodes)} servers[/dim]"
        )

    def connect(self, node_id: Optional[str] = None,
                policy: Optional[SelectionPolicy] = None,
                watch: bool = False):
        """Connect to VPN"""
        if self.controller.restore():
            console.print("[yellow]Already connected[/yellow]")
            self.status()
            return

        self.catalog.refresh()

        node = None
        if node_id:
            node = self._find_node(node_id)
            self.controller.select_node(node)
        elif policy is None:
            policy = SelectionPolicy.QUICK

        with console.status("Connecting..."):
            result = self.controller.connect(node=node, policy=policy)

        connected = self.controller.state.connected_node
        console.print(
            f"[green]✓ Connected to {connected.location}[/green] "
            f"[dim]({result.client_ip or 'address pending'})[/dim]"
        )
        self._display_node(connected)

        if watch:
            self.watch()

    def switch(self, node_id: Optional[str] = None,
               policy: Optional[SelectionPolicy] = None):
        """Switch to another server"""
        self.controller.restore()
        self.catalog.refresh()

        node = self._find_node(node_id) if node_id else None
        if node is None and policy is None:
            policy = SelectionPolicy.QUICK

        with console.status("Switching server..."):
            self.controller.switch_server(node=node, policy=policy)

        console.print(
            f"[green]✓ Now connected to "
            f"{self.controller.state.connected_node.location}[/green]"
        )

    def disconnect(self):
        """Disconnect from VPN"""
        if not self.controller.restore():
            console.print("[yellow]Not connected[/yellow]")
            return

        with console.status("Disconnecting..."):
            self.controller.disconnect()

        console.print("[green]✓ Disconnected[/green]")

    def status(self):
        """Show VPN status"""
        self.controller.restore()
        console.print(self._status_table())

        session = self.controller.state.session
        if session is not None:
            session_table = Table(title="Session", box=box.SIMPLE)
            session_table.add_column("Field", style="cyan")
            session_table.add_column("Value", style="white")
            session_table.add_row("Session", session.id)
            session_table.add_row("Protocol", session.protocol or "N/A")
            session_table.add_row("Tunnel IP", session.tunnel_ip or "N/A")
            session_table.add_row(
                "Connected at",
                session.connected_at.isoformat() if session.connected_at else "N/A"
            )
            console.print(session_table)

    def watch(self, refresh_per_second: float = 2.0):
        """Render live throughput until the connection ends or Ctrl+C"""
        if not self.controller.restore():
            console.print("[yellow]Not connected[/yellow]")
            return

        try:
            with Live(self._status_table(), console=console,
                      refresh_per_second=refresh_per_second) as live:
                while self.controller.state.is_connected:
                    time.sleep(1.0 / refresh_per_second)
                    live.update(self._status_table())
        except KeyboardInterrupt:
            return
        finally:
            self.controller.shutdown()

        # Only the sampler leaves CONNECTED while watching
        raise ConnectionLost("Connection lost")

    def user_stats(self):
        """Show account-wide usage"""
        stats = self.controller.backend.get_user_stats()

        table = Table(title="Usage", box=box.ROUNDED)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Total sessions", str(stats.total_sessions))
        table.add_row("Active sessions", str(stats.active_sessions))
        table.add_row("Data transferred", f"{stats.data_transferred_gb:.2f} GB")
        console.print(table)

    def show_settings(self):
        table = Table(title="Settings", box=box.ROUNDED)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="white")
        for key, value in self.settings.as_dict().items():
            table.add_row(key, str(value))
        console.print(table)

    def set_setting(self, key: str, value: str):
        self.settings.set(key, value)
        console.print(f"[green]✓ {key} = {self.settings.as_dict()[key]}[/green]")

    def _find_node(self, node_id: str) -> Node:
        node = self.catalog.find(node_id)
        if node is None:
            matches = [n for n in self.catalog.nodes if n.id.startswith(node_id)]
            if len(matches) == 1:
                node = matches[0]
        if node is None:
            raise click.BadParameter(f"Unknown server: {node_id}", param_hint='--node')
        return node

    def _status_table(self) -> Table:
        status = self.controller.get_status()

        table = Table(title="VPN Status", box=box.ROUNDED)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("State", status['state'])
        table.add_row("Connected", "✓" if status['connected'] else "✗")

        if status['connected']:
            node = self.controller.state.connected_node
            table.add_row("Server", node.name or node.id)
            table.add_row("Location", node.location)
            table.add_row("Protocol", Protocol(status['protocol']).display_name
                          if status['protocol'] else "N/A")
            table.add_row("Tunnel IP", status['client_ip'] or "N/A")
            table.add_row("Connection time", status['uptime_text'])
            table.add_row("Download", format_speed(status['download_rate']))
            table.add_row("Upload", format_speed(status['upload_rate']))
            table.add_row("Transferred", format_bytes(status['total_transferred']))
        else:
            table.add_row("Public IP", self.network_tools.get_public_ip() or "Unknown")

        return table

    def _display_node(self, node: Node):
        """Display connection information"""
        console.print(Panel.fit(
            Group(
                f"[bold]Country:[/bold] {node.country}",
                f"[bold]City:[/bold] {node.city}",
                f"[bold]Server:[/bold] {node.name or node.hostname}",
                f"[bold]Load:[/bold] {node.load_score:.0f}%",
                f"[bold]Flag:[/bold] {flag_url(node.country_code, node.country)}",
            ),
            title="Connection Details",
            border_style="blue"
        ))

    def _on_state_change(self, old_state, new_state, message):
        """Handle state change callback"""
        console.print(f"[dim]State: {old_state.name} → {new_state.name}[/dim]")

    def _on_connection_lost(self, node):
        where = node.location if node else "server"
        console.print(f"[yellow]⚠ Connection lost ({where})[/yellow]")

    def _on_error(self, error_message):
        """Handle error callback"""
        console.print(f"[red]Error: {error_message}[/red]")


def _policy(quick: bool, secure: bool, random_node: bool) -> Optional[SelectionPolicy]:
    chosen = [
        policy for flag, policy in (
            (quick, SelectionPolicy.QUICK),
            (secure, SelectionPolicy.SECURE),
            (random_node, SelectionPolicy.RANDOM),
        ) if flag
    ]
    if len(chosen) > 1:
        raise click.UsageError("Use only one of --quick, --secure and --random")
    return chosen[0] if chosen else None


def configure_logging_from(config: ConfigManager,
                           log_level: Optional[str] = None) -> logging.Logger:
    """
    Configure package logging from config.yaml

    An explicit --log-level wins over the file and is also echoed to the
    console; otherwise only warnings reach stderr.
    """
    level = log_level or config.get('logging.level', 'INFO')
    log_file = config.get('logging.file')
    return configure_logging(
        level,
        Path(log_file) if log_file else None,
        console_level=level if log_level else logging.WARNING
    )


def _run(ctx: click.Context, action, *args, **kwargs):
    """Run a CLI action, turning orchestrator errors into exit code 1"""
    try:
        action(*args, **kwargs)
    except VPNError as e:
        console.print(f"[red]✗ {e}[/red]")
        ctx.exit(1)


@click.group(context_settings={'help_option_names': ['-h', '--help']})
@click.option('--config-dir', type=click.Path(path_type=Path),
              help='Configuration directory')
@click.option('--log-level', default=None,
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                                case_sensitive=False),
              help='Set logging level')
@click.pass_context
def cli(ctx: click.Context, config_dir: Optional[Path], log_level: Optional[str]):
    """VPN connection orchestrator"""
    if ctx.obj is not None:
        return

    config = ConfigManager(config_dir)
    configure_logging_from(config, log_level)

    ctx.obj = VPNCLI.from_config(config)


@cli.command('nodes')
@click.option('--country', help='Filter by country')
@click.option('--protocol', type=click.Choice([p.value for p in Protocol]),
              help='Filter by protocol')
@click.option('--search', help='Free-text filter on country, city and name')
@click.pass_context
def nodes_command(ctx, country, protocol, search):
    """List available servers"""
    _run(ctx, ctx.obj.list_nodes, country=country, protocol=protocol, search=search)


@cli.command('connect')
@click.option('--node', 'node_id', help='Server ID')
@click.option('--quick', is_flag=True, help='Lowest-load server')
@click.option('--secure', is_flag=True, help='Secure server')
@click.option('--random', 'random_node', is_flag=True, help='Random server')
@click.option('--watch', is_flag=True, help='Show live statistics after connecting')
@click.pass_context
def connect_command(ctx, node_id, quick, secure, random_node, watch):
    """Connect to VPN"""
    policy = _policy(quick, secure, random_node)
    if node_id and policy:
        raise click.UsageError("--node cannot be combined with a selection flag")
    _run(ctx, ctx.obj.connect, node_id=node_id, policy=policy, watch=watch)


@cli.command('switch')
@click.option('--node', 'node_id', help='Server ID')
@click.option('--quick', is_flag=True, help='Lowest-load server')
@click.option('--random', 'random_node', is_flag=True, help='Random server')
@click.pass_context
def switch_command(ctx, node_id, quick, random_node):
    """Switch to another server"""
    policy = _policy(quick, False, random_node)
    _run(ctx, ctx.obj.switch, node_id=node_id, policy=policy)


@cli.command('disconnect')
@click.pass_context
def disconnect_command(ctx):
    """Disconnect VPN"""
    _run(ctx, ctx.obj.disconnect)


@cli.command('status')
@click.pass_context
def status_command(ctx):
    """Check VPN status"""
    _run(ctx, ctx.obj.status)


@cli.command('watch')
@click.pass_context
def watch_command(ctx):
    """Live throughput and connection time"""
    _run(ctx, ctx.obj.watch)


@cli.command('stats')
@click.pass_context
def stats_command(ctx):
    """Account usage statistics"""
    _run(ctx, ctx.obj.user_stats)


@cli.group('settings')
def settings_group():
    """Show or change preferences"""


@settings_group.command('show')
@click.pass_context
def settings_show(ctx):
    ctx.obj.show_settings()


@settings_group.command('set')
@click.argument('key', type=click.Choice(SETTING_NAMES))
@click.argument('value')
@click.pass_context
def settings_set(ctx, key, value):
    """Change one preference"""
    _run(ctx, ctx.obj.set_setting, key, value)


def main(argv: Optional[List[str]] = None):
    """Main entry point for CLI interface"""
    cli.main(args=argv, prog_name='vpn-orchestrator')
