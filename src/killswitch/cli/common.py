"""Helpers shared by the CLI commands."""

from __future__ import annotations

import sys

import click
from rich.console import Console

from killswitch.config import KillSwitchConfig
from killswitch.errors import ConfigError

console = Console(stderr=True)


def get_config(ctx: click.Context) -> KillSwitchConfig:
    """Load the config once per invocation; a bad config is fatal."""
    obj = ctx.ensure_object(dict)
    if "config" not in obj:
        try:
            obj["config"] = KillSwitchConfig.load(obj.get("config_path"))
        except ConfigError as e:
            fail("config", str(e))
    return obj["config"]


def fail(component: str, message: str, code: int = 1) -> None:
    console.print(f"[red]{component}: FATAL ERROR:[/red] {message}")
    sys.exit(code)
