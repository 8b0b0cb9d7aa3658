"""Policy evaluator: simulates packets against a compiled policy.

Mirrors the packet filter's semantics: rules of the packet's family and chain
are checked in order, the first terminal match wins, LOG rules only record
their prefix and fall through, and the chain's default policy applies when
nothing matches.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass

from killswitch.firewall.models import (
    Chain,
    CompiledPolicy,
    Family,
    FirewallRule,
    Match,
    Target,
)

_ALL_FLAGS = frozenset({"SYN", "ACK", "FIN", "RST", "URG", "PSH"})


@dataclass(frozen=True)
class Packet:
    """A simulated packet as seen by one chain."""

    chain: Chain
    destination: str = ""
    family: Family = Family.IPV4
    in_interface: str = ""
    out_interface: str = ""
    protocol: str = "tcp"
    tcp_flags: frozenset[str] = frozenset({"SYN"})
    state: str = "NEW"
    fragment: bool = False


@dataclass(frozen=True)
class Verdict:
    """Result of evaluating a packet against a policy."""

    target: Target
    matched_rule: FirewallRule | None
    is_default: bool
    logged: tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.target is Target.ACCEPT


class PolicyEvaluator:
    """Evaluates packets against a compiled policy. First-match-wins."""

    def __init__(self, policy: CompiledPolicy) -> None:
        self.policy = policy

    def evaluate(self, packet: Packet) -> Verdict:
        logged: list[str] = []
        for rule in self.policy.rules_for(packet.family, packet.chain):
            if not matches(rule.match, packet):
                continue
            if rule.target is Target.LOG:
                logged.append(rule.log_prefix)
                continue
            return Verdict(
                target=rule.target,
                matched_rule=rule,
                is_default=False,
                logged=tuple(logged),
            )

        return Verdict(
            target=self.policy.default_policy,
            matched_rule=None,
            is_default=True,
            logged=tuple(logged),
        )


def matches(match: Match, packet: Packet) -> bool:
    if match.in_interface and not _iface_matches(match.in_interface, packet.in_interface):
        return False
    if match.out_interface and not _iface_matches(match.out_interface, packet.out_interface):
        return False
    if match.destination and not _in_network(packet.destination, match.destination):
        return False
    if match.not_destination and _in_network(packet.destination, match.not_destination):
        return False
    if match.state and packet.state not in match.state:
        return False
    if match.protocol and packet.protocol != match.protocol:
        return False
    if match.fragment and not packet.fragment:
        return False
    if match.tcp_flags is not None:
        mask = _flag_set(match.tcp_flags[0])
        expected = _flag_set(match.tcp_flags[1])
        if packet.tcp_flags & mask != expected:
            return False
    return True


def _iface_matches(pattern: str, name: str) -> bool:
    if not name:
        return False
    if pattern.endswith("+"):
        return name.startswith(pattern[:-1])
    return name == pattern


def _in_network(address: str, network: str) -> bool:
    try:
        return ipaddress.ip_address(address) in ipaddress.ip_network(network, strict=False)
    except (ValueError, TypeError):
        return False


def _flag_set(spec: str) -> frozenset[str]:
    if spec == "ALL":
        return _ALL_FLAGS
    if spec == "NONE":
        return frozenset()
    return frozenset(spec.split(","))
