"""DNS lookups against a trusted resolver, time-capped.

The local resolvers are assumed to be blocked by the firewall, so every query
goes to an explicitly configured (and explicitly unblocked) nameserver. A
lookup either works fast or does not work at all.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import Protocol

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)


class DnsLookup(Protocol):
    """Resolves a hostname to IPv4 addresses. Never raises for DNS failures."""

    def lookup(self, hostname: str) -> list[str]:
        ...


class DnspythonLookup:
    """A-record lookups over TCP via dnspython, with bounded tries."""

    def __init__(
        self,
        nameservers: list[str],
        timeout: float = 1.0,
        tries: int = 3,
        tcp: bool = True,
    ) -> None:
        self._nameservers = list(nameservers)
        self._resolver = dns.resolver.Resolver(configure=False)
        self._resolver.nameservers = list(self._nameservers)
        self._resolver.timeout = timeout
        # Each nameserver gets its own timeout within one try.
        self._resolver.lifetime = timeout * max(1, len(self._nameservers))
        self._tries = max(1, tries)
        self._tcp = tcp

    def lookup(self, hostname: str) -> list[str]:
        for attempt in range(1, self._tries + 1):
            # Start each try at the next nameserver, so a dead first one
            # cannot use up every try.
            shift = (attempt - 1) % max(1, len(self._nameservers))
            self._resolver.nameservers = self._nameservers[shift:] + self._nameservers[:shift]
            try:
                answer = self._resolver.resolve(
                    hostname, "A", tcp=self._tcp, raise_on_no_answer=False
                )
            except dns.resolver.NXDOMAIN as exc:
                logger.debug("Lookup of %s failed: %s", hostname, exc)
                return []
            except (dns.exception.DNSException, OSError) as exc:
                logger.debug(
                    "Lookup of %s failed (try %d/%d): %s",
                    hostname,
                    attempt,
                    self._tries,
                    exc,
                )
                continue
            return ipv4_only(str(rdata) for rdata in answer)
        return []


def ipv4_only(values) -> list[str]:
    """Keep the values that are IPv4 addresses, normalized."""
    result = []
    for value in values:
        try:
            result.append(str(ipaddress.IPv4Address(value.strip())))
        except ValueError:
            continue
    return result
