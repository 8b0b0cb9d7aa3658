"""CLI command: killswitch resolve [SCOPES...], to refresh the VPN allow-list."""

from __future__ import annotations

import sys

import click

from killswitch.allowlist.lookup import DnspythonLookup
from killswitch.allowlist.resolver import AllowListResolver, RefreshResult
from killswitch.cli.common import console, fail, get_config
from killswitch.config import KillSwitchConfig
from killswitch.errors import ConfigError


def run_resolve(config: KillSwitchConfig, scopes: tuple[str, ...]) -> RefreshResult:
    """Resolve the scopes; command-line scopes override the configured ones."""
    lookup = DnspythonLookup(
        nameservers=config.nameservers,
        timeout=config.dns_timeout,
        tries=config.dns_tries,
    )
    resolver = AllowListResolver(
        directory=config.allowlist_dir,
        aggregate_file=config.aggregate_file,
        lookup=lookup,
        static_endpoints=config.static_endpoints,
    )
    return resolver.refresh(list(scopes) or config.scopes)


@click.command()
@click.argument("scopes", nargs=-1)
@click.pass_context
def resolve(ctx: click.Context, scopes: tuple[str, ...]) -> None:
    """Resolve VPN server SCOPES into the allow-list of IP addresses."""
    config = get_config(ctx)
    try:
        result = run_resolve(config, scopes)
    except (ConfigError, ValueError, OSError) as e:
        fail("resolve", str(e))
        return

    console.print(
        f"[bold]Allow-list[/bold]: {len(result.aggregate)} addresses, "
        f"{len(result.resolved)} scope(s) resolved, "
        f"{len(result.failed)} failed"
    )
    if result.failed:
        console.print(f"  [yellow]Failed:[/yellow] {' '.join(result.failed)}")
    if not result.ok:
        console.print("[red]No allow-list exists: all VPN traffic will be blocked.[/red]")
        sys.exit(1)
