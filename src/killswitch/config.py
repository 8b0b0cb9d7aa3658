"""Global configuration: defaults, optional YAML file, KILLSWITCH_* env vars."""

from __future__ import annotations

import ipaddress
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml

from killswitch.errors import ConfigError

_ENV_PREFIX = "KILLSWITCH_"
_SPLIT_RE = re.compile(r"[\s,]+")


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "killswitch"
    return Path.home() / ".local" / "share" / "killswitch"


def _default_cache_dir() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg:
        return Path(xdg) / "killswitch"
    return Path.home() / ".cache" / "killswitch"


@dataclass
class KillSwitchConfig:
    """Application-wide configuration."""

    # Trusted DNS resolvers, unblocked in the firewall.
    nameservers: list[str] = field(default_factory=lambda: ["8.8.4.4", "8.8.8.8"])
    scopes: list[str] = field(
        default_factory=lambda: (
            "earth europe america asia nl de cz us tauri orion alrai".split()
        )
    )
    # Provider API endpoints, always part of the allow-list.
    static_endpoints: list[str] = field(default_factory=lambda: ["airvpn.org"])
    local_networks: list[str] = field(
        default_factory=lambda: ["192.168.0.0/16", "172.16.0.0/12", "10.0.0.0/8"]
    )
    special_addresses: list[str] = field(default_factory=list)
    tunnel_interfaces: list[str] = field(default_factory=lambda: ["tun+"])
    status_ip: str = "139.130.4.5"

    allowlist_dir: Path = field(default_factory=lambda: _default_data_dir() / "allowlist")
    allowlist_file: Path | None = None
    allowlist_explicit: bool = False
    snapshot_v4: Path = Path("/tmp/iptables.txt")
    snapshot_v6: Path = Path("/tmp/ip6tables.txt")
    status_dir: Path = Path("/tmp")
    cache_dir: Path = field(default_factory=_default_cache_dir)

    geo_api_key: str = ""
    country_cache_ttl: float = 600.0
    forbidden_countries: list[str] = field(default_factory=list)
    tunnel_nexthop_network: str = "10.0.0.0/8"

    dns_timeout: float = 1.0
    dns_tries: int = 3
    probe_timeout: float = 1.0
    poll_interval: float = 1.0

    @property
    def aggregate_file(self) -> Path:
        """The allow-list file consumed by the firewall."""
        return self.allowlist_file or self.allowlist_dir / "all.txt"

    @classmethod
    def load(cls, path: str | Path | None = None) -> KillSwitchConfig:
        """Load config: defaults, then the YAML file, then env variables."""
        config = cls()

        path = path or os.environ.get(f"{_ENV_PREFIX}CONFIG")
        if path:
            config._apply(_read_yaml(Path(path)), source=str(path))

        env_values = {}
        for f in fields(cls):
            raw = os.environ.get(_ENV_PREFIX + f.name.upper())
            if raw is not None:
                env_values[f.name] = raw
        config._apply(env_values, source="environment")

        config.validate()
        return config

    def _apply(self, values: dict, source: str) -> None:
        known = {f.name: f for f in fields(self)}
        for key, raw in values.items():
            if key not in known or key == "allowlist_explicit":
                raise ConfigError(f"Unknown config key {key!r} in {source}")
            current = getattr(self, key)
            try:
                setattr(self, key, _coerce(key, raw, current))
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid value for {key} in {source}: {exc}") from exc
            if key in ("allowlist_dir", "allowlist_file"):
                self.allowlist_explicit = True

    def validate(self) -> None:
        """Raise ConfigError on malformed addresses or numbers."""
        if not self.nameservers:
            raise ConfigError("At least one nameserver is required")
        for addr in self.nameservers:
            _check_ipv4(addr)
        for addr in self.special_addresses:
            _check_ipv4(addr, networks=True)
        if self.status_ip:
            _check_ipv4(self.status_ip, networks=True)
        for net in [*self.local_networks, self.tunnel_nexthop_network]:
            _check_ipv4(net, networks=True)
        if not self.tunnel_interfaces:
            raise ConfigError("At least one tunnel interface pattern is required")
        for name in ("dns_timeout", "probe_timeout", "poll_interval", "country_cache_ttl"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")
        if self.dns_tries < 1:
            raise ConfigError("dns_tries must be at least 1")


def _read_yaml(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config YAML must be a mapping")
    return data


def _coerce(key: str, raw: object, current: object) -> object:
    """Convert a YAML or env value to the type of the field's current value."""
    if isinstance(current, list):
        if isinstance(raw, str):
            return [item for item in _SPLIT_RE.split(raw) if item]
        if isinstance(raw, (list, tuple)):
            return [str(item) for item in raw]
        raise TypeError(f"expected a list, got {type(raw).__name__}")
    if isinstance(current, Path) or key == "allowlist_file":
        if raw:
            return Path(str(raw)).expanduser()
        if key == "allowlist_file":
            return None
        raise ValueError("a path is required")
    if isinstance(current, bool):
        return str(raw).lower() in ("1", "true", "yes", "on")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return "" if raw is None else str(raw)


def _check_ipv4(value: str, networks: bool = False) -> None:
    try:
        if networks:
            ipaddress.IPv4Network(value, strict=False)
        else:
            ipaddress.IPv4Address(value)
    except ValueError as exc:
        raise ConfigError(f"Not an IPv4 address or network: {value!r}") from exc
