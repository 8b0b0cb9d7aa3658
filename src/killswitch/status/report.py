"""Status report: collect the probes, render them as ANSI, HTML and text.

The ANSI form is also shown on stdout. The HTML form is meant to be served by
a separately running web server, and refreshes itself every second. Every
signal that cannot be detected is rendered with an explicit placeholder, so
an absent signal never looks like a safe one.
"""

from __future__ import annotations

import enum
import io
import ipaddress
import json
import logging
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from killswitch.config import KillSwitchConfig
from killswitch.publish import atomic_publish
from killswitch.status import probes

logger = logging.getLogger(__name__)

UNKNOWN_IP = "?.?.?.?"
UNKNOWN_COUNTRY = "-=-=-=-"
UNKNOWN_HOP = "-*-*-*-"

_REFRESH_META = '<meta http-equiv="refresh" content="1" />'


class Assessment(enum.Enum):
    OK = "ok"
    UNKNOWN = "unknown"
    DANGER = "danger"


def now() -> str:
    """A unified date-time format."""
    return time.strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class StatusReport:
    """A point-in-time view of the enforced network state."""

    started: str
    updated: str = ""
    ip: str | None = None
    country: str | None = None
    next_hop: str | None = None
    hops_per_interface: dict[str, str | None] = field(default_factory=dict)
    interfaces: list[tuple[str, str, str]] = field(default_factory=list)
    forbidden_countries: list[str] = field(default_factory=list)
    tunnel_network: str = "10.0.0.0/8"

    def assess_ip(self) -> Assessment:
        return Assessment.OK if self.ip else Assessment.UNKNOWN

    def assess_country(self) -> Assessment:
        if not self.country:
            return Assessment.UNKNOWN
        forbidden = {c.casefold() for c in self.forbidden_countries}
        if self.country.casefold() in forbidden:
            return Assessment.DANGER
        return Assessment.OK

    def assess_next_hop(self) -> Assessment:
        """The tunnel's gateway is expected; anything else is a local network."""
        if not self.next_hop:
            return Assessment.UNKNOWN
        try:
            inside = ipaddress.ip_address(self.next_hop) in ipaddress.ip_network(
                self.tunnel_network, strict=False
            )
        except ValueError:
            return Assessment.UNKNOWN
        return Assessment.OK if inside else Assessment.DANGER

    def to_dict(self) -> dict:
        data = asdict(self)
        data["interfaces"] = [list(entry) for entry in self.interfaces]
        data["assessment"] = {
            "ip": self.assess_ip().value,
            "country": self.assess_country().value,
            "next_hop": self.assess_next_hop().value,
        }
        return data


@dataclass(frozen=True)
class RenderedReport:
    ansi: str
    html: str
    text: str


def collect_report(
    config: KillSwitchConfig,
    country_lookup: probes.CountryLookup | None = None,
) -> StatusReport:
    """Run every probe. Failed probes leave their field as None."""
    report = StatusReport(
        started=now(),
        forbidden_countries=list(config.forbidden_countries),
        tunnel_network=config.tunnel_nexthop_network,
    )
    lookup = country_lookup or probes.CountryLookup(
        cache_dir=config.cache_dir,
        ttl=config.country_cache_ttl,
        api_key=config.geo_api_key,
        timeout=config.probe_timeout,
    )

    report.ip = probes.external_ip(config.nameservers[0], timeout=config.probe_timeout)
    report.country = lookup.country(report.ip)
    report.next_hop = probes.next_hop(config.status_ip, timeout=config.probe_timeout)

    report.interfaces = probes.interfaces()
    for name in sorted({entry[0] for entry in report.interfaces}):
        if name.startswith("lo"):
            continue
        report.hops_per_interface[name] = probes.next_hop(
            config.status_ip,
            timeout=config.probe_timeout,
            interface=name,
            queries=3,
        )

    report.updated = now()
    logger.debug("Collected status: %s", report)
    return report


def render(report: StatusReport, width: int = 100) -> RenderedReport:
    console = Console(
        record=True,
        file=io.StringIO(),
        force_terminal=True,
        color_system="standard",
        width=width,
    )

    console.print(f"started {report.started} // updated {report.updated}", style="white")
    console.print()

    if report.ip:
        console.print("Current IP address (for information):", style="bright_black")
        console.print(_big(report.ip, "bold bright_white"))
    else:
        console.print("Current IP address cannot be detected:", style="bright_black")
        console.print(_big(UNKNOWN_IP, "bold yellow"))

    country = report.assess_country()
    if country is Assessment.UNKNOWN:
        console.print("Country cannot be detected:", style="bright_black")
        console.print(_big(UNKNOWN_COUNTRY, "bold yellow"))
    elif country is Assessment.DANGER:
        console.print(f"Country must NOT be {report.country}", style="red")
        console.print(_big(report.country or "", "bold red blink reverse"))
    else:
        console.print("Country is as expected:", style="bright_black")
        console.print(_big(report.country or "", "bold green"))

    hop = report.assess_next_hop()
    if hop is Assessment.UNKNOWN:
        console.print("Next-hop IP address is absent (blocked):", style="bright_black")
        console.print(_big(UNKNOWN_HOP, "bold yellow"))
    elif hop is Assessment.DANGER:
        console.print(
            f"Next-hop IP address must be in {report.tunnel_network}:", style="red"
        )
        console.print(_big(report.next_hop or "", "bold red"))
    else:
        console.print("Next-hop IP address is as expected:", style="bright_black")
        console.print(_big(report.next_hop or "", "bold green"))

    console.print()
    console.print("Available interfaces:", style="bold")
    table = Table(show_header=False, box=None, padding=(0, 2))
    for name, family, address in report.interfaces:
        table.add_row(name, family, address)
    console.print(table)

    console.print()
    console.print("Next hops per interface (only tun* should be permitted):", style="bold")
    hops = Table(show_header=False, box=None, padding=(0, 2))
    for name, address in sorted(report.hops_per_interface.items()):
        hops.add_row(name, address or UNKNOWN_HOP)
    console.print(hops)

    ansi = console.export_text(styles=True, clear=False)
    text = console.export_text(clear=False)
    html = console.export_html(clear=False, inline_styles=True)
    html = html.replace("<head>", f"<head>\n{_REFRESH_META}", 1)
    return RenderedReport(ansi=ansi, html=html, text=text)


def publish(rendered: RenderedReport, report: StatusReport, status_dir: Path) -> None:
    """Atomically switch every report file to the new version."""
    status_dir = Path(status_dir)
    atomic_publish(status_dir / "index.ansi", rendered.ansi)
    atomic_publish(status_dir / "index.html", rendered.html)
    atomic_publish(status_dir / "index.txt", rendered.text)
    atomic_publish(
        status_dir / "index.json",
        json.dumps(report.to_dict(), indent=2, sort_keys=True) + "\n",
    )


def _big(value: str, style: str) -> Panel:
    return Panel(Text(value, style=style, justify="center"), expand=False, padding=(0, 2))
