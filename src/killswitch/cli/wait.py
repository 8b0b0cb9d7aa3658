"""CLI command: killswitch wait PROGRAM [ARGS...], to start once the network is secured.

Usage (as an entry point):
    ENTRYPOINT ["killswitch", "wait"]
    CMD ["some-app", "--its-args"]
"""

from __future__ import annotations

import click

from killswitch.cli.common import console, fail
from killswitch.config import KillSwitchConfig
from killswitch.errors import ConfigError
from killswitch.firewall.controller import IptablesController
from killswitch.gate import ReadinessGate, is_locked_down


def _poll_interval(ctx: click.Context) -> float:
    """The configured poll interval. A broken config never stops the gate."""
    obj = ctx.ensure_object(dict)
    try:
        return KillSwitchConfig.load(obj.get("config_path")).poll_interval
    except ConfigError as e:
        console.print(f"[yellow]wait: ignoring config error:[/yellow] {e}")
        return KillSwitchConfig().poll_interval


@click.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option("--interval", type=float, default=None, help="Seconds between polls.")
@click.argument("program", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def wait(ctx: click.Context, interval: float | None, program: tuple[str, ...]) -> None:
    """Wait until the firewall blocks all traffic by default, then exec PROGRAM."""
    controller = IptablesController()
    gate = ReadinessGate(
        is_ready=lambda: is_locked_down(controller),
        interval=interval if interval is not None else _poll_interval(ctx),
    )
    gate.wait()
    try:
        gate.handoff(program)
    except OSError as e:
        fail("wait", f"cannot start {program[0]}: {e}", code=127)
