"""Firewall data models: immutable dataclasses for compiled packet-filter rules.

BEWARE: INPUT/OUTPUT are not the destinations of the traffic itself, but the
packet filter's internal chains for before/after routing.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class Family(enum.Enum):
    """Protocol family, each with its own packet-filter tables."""

    IPV4 = "ipv4"
    IPV6 = "ipv6"


class Chain(enum.Enum):
    INPUT = "INPUT"
    OUTPUT = "OUTPUT"
    FORWARD = "FORWARD"


class Target(enum.Enum):
    """What happens to a packet matching a rule."""

    ACCEPT = "ACCEPT"
    DROP = "DROP"
    REJECT = "REJECT"
    LOG = "LOG"

    @property
    def is_terminal(self) -> bool:
        return self is not Target.LOG


@dataclass(frozen=True)
class Match:
    """Packet match criteria. Empty fields match anything."""

    in_interface: str = ""
    out_interface: str = ""
    destination: str = ""
    not_destination: str = ""
    state: tuple[str, ...] = ()
    protocol: str = ""
    # (mask, comparison), as in ``--tcp-flags SYN,FIN SYN,FIN``.
    tcp_flags: tuple[str, str] | None = None
    fragment: bool = False

    def to_args(self) -> list[str]:
        """Render as iptables match arguments."""
        args: list[str] = []
        if self.in_interface:
            args += ["-i", self.in_interface]
        if self.out_interface:
            args += ["-o", self.out_interface]
        if self.destination:
            args += ["-d", self.destination]
        if self.not_destination:
            args += ["!", "-d", self.not_destination]
        if self.protocol:
            args += ["-p", self.protocol]
        if self.fragment:
            args += ["-f"]
        if self.state:
            args += ["-m", "state", "--state", ",".join(self.state)]
        if self.tcp_flags is not None:
            args += ["--tcp-flags", self.tcp_flags[0], self.tcp_flags[1]]
        return args


@dataclass(frozen=True)
class FirewallRule:
    """One appended rule of the filter table."""

    family: Family
    chain: Chain
    target: Target
    match: Match = field(default_factory=Match)
    log_prefix: str = ""
    reject_with: str = ""

    def to_args(self) -> list[str]:
        """Render as the arguments following ``iptables -A``."""
        args = [self.chain.value, *self.match.to_args(), "-j", self.target.value]
        if self.log_prefix:
            args += ["--log-prefix", self.log_prefix]
        if self.reject_with:
            args += ["--reject-with", self.reject_with]
        return args


@dataclass(frozen=True)
class CompiledPolicy:
    """The complete ordered rule set, superseded wholesale on each compile."""

    rules: tuple[FirewallRule, ...]
    default_policy: Target = Target.DROP

    def rules_for(self, family: Family, chain: Chain | None = None) -> tuple[FirewallRule, ...]:
        return tuple(
            r
            for r in self.rules
            if r.family is family and (chain is None or r.chain is chain)
        )


@dataclass(frozen=True)
class PolicyConfig:
    """Immutable-per-run inputs of the policy compiler."""

    local_networks: tuple[str, ...] = ()
    nameservers: tuple[str, ...] = ()
    special_addresses: tuple[str, ...] = ()
    tunnel_interfaces: tuple[str, ...] = ("tun+",)
    status_ip: str = ""
