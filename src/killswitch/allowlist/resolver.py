"""Allow-list resolver: (re-)generate the IP addresses of the VPN provider.

The VPN servers must be explicitly allowed in the firewall so that the
tunnelling traffic itself goes unblocked. Each scope is resolved via DNS into
its own cache file; the aggregate file is the union of all scope files plus
the static provider endpoints, and is the only input to the firewall.

A scope that fails to resolve keeps its previous file. If the resolver loses
connectivity (e.g. it blocked itself), the latest known lists are used. If no
list was ever retrieved, the traffic is blocked without exceptions.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass, field
from pathlib import Path

from killswitch.allowlist.lookup import DnsLookup
from killswitch.allowlist.scopes import Scope, candidate_hostnames, unique_scopes
from killswitch.allowlist.store import read_addresses, sort_addresses, write_addresses
from killswitch.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of one resolver run."""

    resolved: dict[str, list[str]] = field(default_factory=dict)
    failed: list[str] = field(default_factory=list)
    aggregate: list[str] = field(default_factory=list)
    aggregate_published: bool = False
    aggregate_exists: bool = False

    @property
    def ok(self) -> bool:
        """False only if there is no allow-list at all after this run."""
        return self.aggregate_exists


class AllowListResolver:
    """Resolves scopes into per-scope cache files and an aggregate file."""

    def __init__(
        self,
        directory: Path,
        aggregate_file: Path,
        lookup: DnsLookup,
        static_endpoints: list[str] | tuple[str, ...] = (),
    ) -> None:
        self._directory = Path(directory)
        self._aggregate_file = Path(aggregate_file)
        self._lookup = lookup
        self._static_addresses: list[str] = []
        self._static_hosts: list[str] = []
        for endpoint in static_endpoints:
            try:
                self._static_addresses.append(str(ipaddress.IPv4Address(endpoint)))
            except ValueError:
                self._static_hosts.append(endpoint)

    def scope_file(self, scope: Scope) -> Path:
        path = self._directory / f"{scope.name}.txt"
        if path.resolve() == self._aggregate_file.resolve():
            raise ConfigError(
                f"Scope {scope.name!r} would overwrite the aggregate file {path}"
            )
        return path

    def resolve_scope(self, scope: Scope) -> list[str]:
        """Resolve every candidate hostname of a scope and merge the results."""
        addresses: list[str] = []
        for host in candidate_hostnames(scope):
            found = self._lookup.lookup(host)
            if found:
                logger.info("Resolved %s via %s", scope.name, host)
                addresses.extend(found)
        return sort_addresses(addresses)

    def refresh(self, scope_names: list[str] | tuple[str, ...]) -> RefreshResult:
        """Resolve the given scopes (plus static endpoints), then rebuild the aggregate."""
        result = RefreshResult()
        self._directory.mkdir(parents=True, exist_ok=True)

        scopes = unique_scopes([*self._static_hosts, *scope_names])
        for scope in scopes:
            path = self.scope_file(scope)
            addresses = self.resolve_scope(scope)
            if addresses:
                write_addresses(path, addresses)
                result.resolved[scope.name] = addresses
            else:
                logger.warning(
                    "FAILED to resolve %s to any IP addresses. Leaving %s as is.",
                    scope.name,
                    path,
                )
                result.failed.append(scope.name)

        result.aggregate = self.aggregate()
        if result.aggregate:
            write_addresses(self._aggregate_file, result.aggregate)
            result.aggregate_published = True
            logger.info(
                "Allow-list has %d addresses: %s",
                len(result.aggregate),
                self._aggregate_file,
            )
        else:
            logger.warning(
                "FAILED to resolve to any IP addresses. Leaving %s as is.",
                self._aggregate_file,
            )
        result.aggregate_exists = self._aggregate_file.is_file()
        return result

    def aggregate(self) -> list[str]:
        """Union of all scope files on disk plus the static addresses."""
        addresses = list(self._static_addresses)
        aggregate = self._aggregate_file.resolve()
        for path in sorted(self._directory.glob("*.txt")):
            if path.resolve() == aggregate:
                continue
            addresses.extend(read_addresses(path))
        return sort_addresses(addresses)
