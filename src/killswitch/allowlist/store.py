"""Address files: one IPv4 address per line, sorted, deduplicated."""

from __future__ import annotations

import ipaddress
import logging
from collections.abc import Iterable
from pathlib import Path

from killswitch.errors import ConfigError
from killswitch.publish import atomic_publish

logger = logging.getLogger(__name__)


def sort_addresses(addresses: Iterable[str]) -> list[str]:
    """Deduplicate and sort addresses numerically."""
    unique = {ipaddress.IPv4Address(a) for a in addresses}
    return [str(a) for a in sorted(unique)]


def format_addresses(addresses: Iterable[str]) -> str:
    lines = sort_addresses(addresses)
    return "".join(f"{line}\n" for line in lines)


def parse_addresses(text: str) -> list[str]:
    """Parse an address file; blank lines, comments and non-IPv4 lines are skipped."""
    addresses = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith((";", "#")):
            continue
        try:
            addresses.append(str(ipaddress.IPv4Address(stripped)))
        except ValueError:
            logger.debug("Ignoring non-IPv4 line: %r", stripped)
    return sort_addresses(addresses)


def read_addresses(path: Path) -> list[str]:
    """Read an address file. A missing file reads as empty."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    return parse_addresses(text)


def write_addresses(path: Path, addresses: Iterable[str]) -> Path:
    return atomic_publish(path, format_addresses(addresses))


def load_allowlist(path: Path, explicit: bool) -> list[str]:
    """Read the aggregate allow-list for the firewall.

    An explicitly configured but unreadable file is fatal. An implicit one
    that does not exist yet is an empty allow-list (nothing gets through).
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        if explicit:
            raise ConfigError(f"Allow-list file is not readable: {path}") from exc
        logger.warning("No allow-list at %s yet; VPN servers will be blocked", path)
        return []
    except OSError as exc:
        raise ConfigError(f"Allow-list file is not readable: {path}: {exc}") from exc
    return parse_addresses(text)
