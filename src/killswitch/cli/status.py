"""CLI command: killswitch status, to probe and publish the status report."""

from __future__ import annotations

import click

from killswitch.cli.common import fail, get_config
from killswitch.status.report import collect_report, publish, render


@click.command()
@click.option("--no-publish", is_flag=True, help="Only print, do not write the files.")
@click.pass_context
def status(ctx: click.Context, no_publish: bool) -> None:
    """Show how the internet sees us and where the traffic goes."""
    config = get_config(ctx)
    report = collect_report(config)
    rendered = render(report)
    if not no_publish:
        try:
            publish(rendered, report, config.status_dir)
        except OSError as e:
            fail("status", f"cannot publish the report: {e}")
    click.echo(rendered.ansi, nl=False)
