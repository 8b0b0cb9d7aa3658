"""CLI entry point: Click group with global options."""

from __future__ import annotations

import logging

import click

from killswitch import __version__


@click.group()
@click.version_option(version=__version__, prog_name="killswitch")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to a YAML config file (default: $KILLSWITCH_CONFIG).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """killswitch: block all traffic except the VPN tunnel."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _register_commands() -> None:
    from killswitch.cli.firewall import firewall  # noqa: F811
    from killswitch.cli.refresh import refresh  # noqa: F811
    from killswitch.cli.resolve import resolve  # noqa: F811
    from killswitch.cli.status import status  # noqa: F811
    from killswitch.cli.wait import wait  # noqa: F811

    main.add_command(resolve)
    main.add_command(firewall)
    main.add_command(refresh)
    main.add_command(wait)
    main.add_command(status)


_register_commands()
