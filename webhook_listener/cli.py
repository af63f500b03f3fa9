"""
CLI (Command Line Interface) for Webhook Listener
"""
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .api import PlatformClient
from .config import Settings
from .errors import WebhookListenerError
from .events import ALL_EVENTS
from .listener import WebhookListener
from .output import Output
from .relay import RelayServer, RelayServerConfig
from .rules import ForwardingRule, parse_forwarding_rule
from .tunnel import LocalTunnel

console = Console()


class ForwardingRuleType(click.ParamType):
    """`URL` or `EVENT[,EVENT...]=URL`."""

    name = 'rule'

    def convert(self, value, param, ctx):
        if isinstance(value, ForwardingRule):
            return value
        try:
            return parse_forwarding_rule(value)
        except ValueError as e:
            self.fail(str(e), param, ctx)


FORWARDING_RULE = ForwardingRuleType()
TIMEOUT = click.FloatRange(min=0, min_open=True)
BODY_SIZE = click.IntRange(min=0)


def mask(token):
    if not token:
        return ''
    return f"{token[:4]}…" if len(token) > 4 else '…'


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--global-config', '-Q',
    type=click.Path(file_okay=False, path_type=Path),
    help='Path to the configuration directory (default: ~/.webhook-listener)',
)
@click.option('--debug', '-d', is_flag=True, help='Debug mode')
@click.pass_context
def cli(ctx, global_config, debug):
    """
    Webhook Listener - Receive platform webhooks on your machine

    Exposes a temporary local server through localtunnel, registers it as a
    webhook and relays the deliveries to your local endpoints.
    """
    ctx.obj = {
        'settings': Settings(global_config),
        'output': Output(debug=debug, console=console),
    }


@cli.command()
@click.option(
    '--forward-to', 'rules',
    multiple=True,
    type=FORWARDING_RULE,
    help='URL to forward webhooks to, e.g. http://localhost:3000/api/webhook. '
         'Prefix with EVENT[,EVENT...]= to forward only those events. Repeatable.',
)
@click.option('--no-log', is_flag=True, help="Don't output the webhook payloads")
@click.option('--token', '-t', help='Login token')
@click.option('--team', 'team_id', help='Team id the webhook is registered on')
@click.option('--api-url', help='Platform API base URL')
@click.option('--port', type=int, default=0, show_default=True, help='Local port (0 picks a free one)')
@click.option('--forward-timeout', type=TIMEOUT, help='Seconds to wait for each forward target')
@click.option('--max-body-size', type=BODY_SIZE, help='Largest accepted payload in bytes (0 disables the limit)')
@click.pass_obj
def listen(obj, rules, no_log, token, team_id, api_url, port, forward_timeout, max_body_size):
    """
    Listen for webhooks until interrupted

    Example: webhook-listener listen --forward-to http://localhost:3000/api/webhook
    """
    settings = obj['settings']
    output = obj['output']

    token = token or settings.get('token')
    if not token:
        output.error("No token configured. Use --token or 'webhook-listener config --token'.")
        sys.exit(1)

    if forward_timeout is None:
        forward_timeout = settings.get('forward_timeout')
    if max_body_size is None:
        max_body_size = settings.get('max_body_size')

    config = RelayServerConfig(
        log_payloads=not no_log,
        rules=rules,
        forward_timeout=forward_timeout,
        max_body_size=max_body_size or None,
    )

    listener = WebhookListener(
        server=RelayServer(config, output, port=port),
        tunnel=LocalTunnel(output, settings.tunnel_log_file),
        client=PlatformClient(
            token,
            api_url=api_url or settings.get('api_url'),
            team_id=team_id or settings.get('team_id'),
            output=output,
        ),
        output=output,
    )

    console.print("🚀 Starting webhook listener...", style="bold")
    try:
        listener.run()
    except WebhookListenerError as e:
        output.error(str(e))
        sys.exit(1)

    console.print("[green]✅ Webhook listener stopped[/green]")


@cli.command()
def events():
    """List the event types webhooks are registered for"""
    table = Table(title="🎣 Webhook Events", show_header=True, header_style="bold cyan")
    table.add_column("Event", style="cyan", no_wrap=True)

    for event in ALL_EVENTS:
        table.add_row(event)

    console.print(table)


@cli.command()
@click.option('--token', '-t', help='Login token')
@click.option('--team', 'team_id', help='Default team id')
@click.option('--api-url', help='Platform API base URL')
@click.option('--forward-timeout', type=TIMEOUT, help='Seconds to wait for each forward target')
@click.option('--max-body-size', type=BODY_SIZE, help='Largest accepted payload in bytes (0 disables the limit)')
@click.pass_obj
def config(obj, token, team_id, api_url, forward_timeout, max_body_size):
    """Configure global options"""
    settings = obj['settings']
    updates = {
        'token': token,
        'team_id': team_id,
        'api_url': api_url,
        'forward_timeout': forward_timeout,
        'max_body_size': max_body_size,
    }
    updates = {key: value for key, value in updates.items() if value is not None}

    if updates:
        settings.config.update(updates)
        settings.save_config()
        for key in updates:
            shown = mask(updates[key]) if key == 'token' else updates[key]
            console.print(f"[green]✅ {key} configured:[/green] {shown}")
        return

    console.print("[bold]⚙️  Current Configuration:[/bold]\n")
    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.config.items():
        if key == 'token':
            value = mask(value)
        table.add_row(key, str(value))

    console.print(table)
    console.print(f"\n[dim]{settings.config_file}[/dim]")


def main():
    """Entry point for CLI"""
    cli()


if __name__ == '__main__':
    main()
