"""CLI command: killswitch refresh [SCOPES...], to resolve, then re-apply the firewall."""

from __future__ import annotations

import click

from killswitch.cli.common import console, fail, get_config
from killswitch.cli.firewall import run_apply
from killswitch.cli.resolve import run_resolve
from killswitch.errors import ConfigError


@click.command()
@click.argument("scopes", nargs=-1)
@click.option("--atomic", is_flag=True, help="Apply the rules with iptables-restore.")
@click.pass_context
def refresh(ctx: click.Context, scopes: tuple[str, ...], atomic: bool) -> None:
    """Refresh the allow-list and re-apply the firewall (the periodic job)."""
    config = get_config(ctx)
    try:
        result = run_resolve(config, scopes)
    except (ConfigError, ValueError, OSError) as e:
        fail("resolve", str(e))
        return
    if not result.ok:
        console.print("[yellow]No allow-list: the firewall will block all VPN servers.[/yellow]")
    run_apply(config, atomic=atomic)
