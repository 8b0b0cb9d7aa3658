"""Status probes: how the internet sees us, and where our traffic goes.

Every probe is time-capped and returns ``None`` on any failure: a failed probe
is reported as unknown, never raised.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

import dns.exception
import dns.resolver
import httpx
import psutil

from killswitch.publish import atomic_publish

logger = logging.getLogger(__name__)

OPENDNS_RESOLVER = "resolver1.opendns.com"
OPENDNS_MYIP = "myip.opendns.com"

_FAMILY_NAMES = {
    socket.AF_INET: "inet",
    socket.AF_INET6: "inet6",
}


def _query_a(hostname: str, nameserver: str, timeout: float) -> str | None:
    resolver = dns.resolver.Resolver(configure=False)
    resolver.nameservers = [nameserver]
    resolver.timeout = timeout
    resolver.lifetime = timeout
    try:
        answer = resolver.resolve(hostname, "A")
    except (dns.exception.DNSException, OSError) as exc:
        logger.debug("Query of %s at %s failed: %s", hostname, nameserver, exc)
        return None
    for rdata in answer:
        return str(rdata)
    return None


def external_ip(nameserver: str, timeout: float = 1.0) -> str | None:
    """Detect our egress address via OpenDNS's ``myip`` service."""
    resolver_ip = _query_a(OPENDNS_RESOLVER, nameserver, timeout)
    if resolver_ip is None:
        # Fall back to the system resolver for the OpenDNS address.
        try:
            resolver_ip = socket.gethostbyname(OPENDNS_RESOLVER)
        except OSError as exc:
            logger.debug("Cannot resolve %s: %s", OPENDNS_RESOLVER, exc)
            return None
    return _query_a(OPENDNS_MYIP, resolver_ip, timeout)


@dataclass(frozen=True)
class GeoProvider:
    """A JSON geolocation API: URL template and the dotted path to the country."""

    name: str
    url: str
    path: str
    needs_key: bool = False


# ipstack.com's free plan gives 10'000 requests/month; cached for 5-10 mins,
# a 24/7 status page makes ~4320-8640 requests/month.
DEFAULT_PROVIDERS: tuple[GeoProvider, ...] = (
    GeoProvider("ipwho.is", "https://ipwho.is/{ip}", "country"),
    GeoProvider(
        "ipstack",
        "http://api.ipstack.com/{ip}?access_key={key}",
        "country_name",
        needs_key=True,
    ),
)


class CountryLookup:
    """Geolocates an address, caching answers per address for ``ttl`` seconds."""

    def __init__(
        self,
        cache_dir: Path,
        ttl: float = 600.0,
        api_key: str = "",
        timeout: float = 1.0,
        providers: tuple[GeoProvider, ...] = DEFAULT_PROVIDERS,
        client: httpx.Client | None = None,
    ) -> None:
        self._cache_dir = Path(cache_dir)
        self._ttl = ttl
        self._api_key = api_key
        self._timeout = timeout
        self._providers = providers
        self._client = client

    def cache_path(self, ip: str) -> Path:
        return self._cache_dir / f"country-of-{ip}.txt"

    def country(self, ip: str | None) -> str | None:
        if not ip:
            return None
        cached = self._read_cache(ip)
        if cached:
            return cached

        for provider in self._providers:
            if provider.needs_key and not self._api_key:
                continue
            country = self._ask(provider, ip)
            if country:
                try:
                    atomic_publish(self.cache_path(ip), country + "\n")
                except OSError as exc:
                    logger.debug("Cannot cache the country of %s: %s", ip, exc)
                return country
        return None

    def _read_cache(self, ip: str) -> str | None:
        path = self.cache_path(ip)
        try:
            age = time.time() - path.stat().st_mtime
            if age > self._ttl:
                return None
            return path.read_text(encoding="utf-8").strip() or None
        except OSError:
            return None

    def _ask(self, provider: GeoProvider, ip: str) -> str | None:
        url = provider.url.format(ip=ip, key=self._api_key)
        try:
            if self._client is not None:
                response = self._client.get(url, timeout=self._timeout)
            else:
                response = httpx.get(url, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.debug("Geolocation via %s failed: %s", provider.name, exc)
            return None
        return _dig(data, provider.path)


def _dig(data: object, path: str) -> str | None:
    for key in path.split("."):
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    if not isinstance(data, str) or not data.strip() or data == "null":
        return None
    return data.strip()


def next_hop(
    target: str, timeout: float = 1.0, interface: str | None = None, queries: int = 1
) -> str | None:
    """First hop of a routed probe toward ``target``, or None if blocked."""
    cmd = ["traceroute", "-n", "-m1", f"-q{queries}", f"-w{max(1, int(timeout))}"]
    if interface:
        cmd += ["-i", interface]
    cmd.append(target)
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=timeout * queries + 2,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError) as exc:
        logger.debug("traceroute failed: %s", exc)
        return None
    return parse_next_hop(result.stdout)


def parse_next_hop(output: str) -> str | None:
    """Extract the hop address from ``traceroute -n -m1`` output."""
    lines = output.splitlines()
    if len(lines) < 2:
        return None
    parts = lines[1].split()
    if len(parts) < 2:
        return None
    try:
        return str(ipaddress.ip_address(parts[1]))
    except ValueError:
        return None


def interfaces() -> list[tuple[str, str, str]]:
    """Addresses of the local interfaces: (name, family, address)."""
    result = []
    try:
        addrs = psutil.net_if_addrs()
    except OSError as exc:
        logger.debug("Cannot list interfaces: %s", exc)
        return []
    for name, entries in addrs.items():
        for entry in entries:
            family = _FAMILY_NAMES.get(entry.family)
            if family is None:
                continue
            address = entry.address
            if entry.netmask and family == "inet":
                try:
                    prefix = ipaddress.IPv4Network(f"0.0.0.0/{entry.netmask}").prefixlen
                    address = f"{address}/{prefix}"
                except ValueError:
                    pass
            result.append((name, family, address))
    return sorted(result)
