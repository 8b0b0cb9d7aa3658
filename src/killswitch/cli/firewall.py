"""CLI commands: killswitch firewall apply|show|simulate|restore."""

from __future__ import annotations

from pathlib import Path

import click

from killswitch.allowlist.store import load_allowlist
from killswitch.cli.common import console, fail, get_config
from killswitch.config import KillSwitchConfig
from killswitch.errors import KillSwitchError
from killswitch.firewall.compiler import compile_policy, policy_config_from, render_restore
from killswitch.firewall.controller import IptablesController, require_root
from killswitch.firewall.enforcer import PolicyEnforcer
from killswitch.firewall.evaluator import Packet, PolicyEvaluator
from killswitch.firewall.models import Chain, CompiledPolicy, Family

_DIRECTIONS = {"in": Chain.INPUT, "out": Chain.OUTPUT, "forward": Chain.FORWARD}


def snapshot_paths(config: KillSwitchConfig) -> dict[Family, Path]:
    return {Family.IPV4: config.snapshot_v4, Family.IPV6: config.snapshot_v6}


def build_policy(config: KillSwitchConfig) -> CompiledPolicy:
    addresses = load_allowlist(config.aggregate_file, config.allowlist_explicit)
    return compile_policy(policy_config_from(config), addresses)


def run_apply(config: KillSwitchConfig, atomic: bool = False) -> None:
    """Compile, apply and snapshot. Any failure is fatal and skips the snapshot."""
    try:
        require_root()
        console.print("Generating the firewall rules...")
        policy = build_policy(config)
        PolicyEnforcer(IptablesController()).enforce(
            policy, snapshot_paths(config), atomic=atomic
        )
    except (KillSwitchError, OSError) as e:
        console.print("[bold red]---=== Firewall has failed! ===---[/bold red]")
        fail("firewall", str(e))
    console.print("[green]The firewall is configured and saved (v4 & v6).[/green]")


@click.group()
def firewall() -> None:
    """Generate, apply, and inspect the firewall rules."""


@firewall.command()
@click.option(
    "--atomic",
    is_flag=True,
    help="Swap the rules in with iptables-restore instead of flush-and-append.",
)
@click.pass_context
def apply(ctx: click.Context, atomic: bool) -> None:
    """Block all traffic except VPN, then save the rules (root only)."""
    run_apply(get_config(ctx), atomic=atomic)


@firewall.command()
@click.option("--ipv6", is_flag=True, help="Show the IPv6 rules.")
@click.pass_context
def show(ctx: click.Context, ipv6: bool) -> None:
    """Print the compiled rules in iptables-restore format."""
    config = get_config(ctx)
    try:
        policy = build_policy(config)
    except KillSwitchError as e:
        fail("firewall", str(e))
        return
    click.echo(render_restore(policy, Family.IPV6 if ipv6 else Family.IPV4), nl=False)


@firewall.command()
@click.argument("destination")
@click.option(
    "--direction",
    type=click.Choice(sorted(_DIRECTIONS)),
    default="out",
    show_default=True,
)
@click.option("--iface", default="eth0", show_default=True, help="Network interface.")
@click.option("--state", default="NEW", show_default=True, help="Connection state.")
@click.option("--ipv6", is_flag=True, help="Simulate an IPv6 packet.")
@click.pass_context
def simulate(
    ctx: click.Context,
    destination: str,
    direction: str,
    iface: str,
    state: str,
    ipv6: bool,
) -> None:
    """Show what the compiled policy does to a packet to DESTINATION."""
    config = get_config(ctx)
    try:
        policy = build_policy(config)
    except KillSwitchError as e:
        fail("firewall", str(e))
        return

    chain = _DIRECTIONS[direction]
    packet = Packet(
        chain=chain,
        destination=destination,
        family=Family.IPV6 if ipv6 else Family.IPV4,
        in_interface=iface if chain is not Chain.OUTPUT else "",
        out_interface=iface if chain is not Chain.INPUT else "",
        state=state.upper(),
    )
    verdict = PolicyEvaluator(policy).evaluate(packet)

    color = "green" if verdict.accepted else "red"
    console.print(f"[{color}]{verdict.target.value}[/{color}] {direction} {destination} via {iface}")
    if verdict.matched_rule is not None:
        console.print(f"  rule: -A {' '.join(verdict.matched_rule.to_args())}")
    else:
        console.print("  rule: <default policy>")
    for prefix in verdict.logged:
        console.print(f"  logged as: [dim]{prefix.strip()}[/dim]")


@firewall.command()
@click.pass_context
def restore(ctx: click.Context) -> None:
    """Atomically apply the saved rule snapshots (root only)."""
    config = get_config(ctx)
    try:
        require_root()
        PolicyEnforcer(IptablesController()).restore(snapshot_paths(config))
    except KillSwitchError as e:
        console.print("[bold red]---=== Firewall has failed! ===---[/bold red]")
        fail("firewall", str(e))
    console.print("[green]The firewall is restored from the snapshots.[/green]")
