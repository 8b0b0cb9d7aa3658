"""Policy compiler: block all the traffic except VPN, deterministically.

A few necessary exceptions from blocking:

* Loopback interfaces.
* VPN-tunnelled traffic itself.
* Local network traffic (home WiFi or Docker's bridged network).
* DNS resolvers, to resolve the VPN's hostnames to IP addresses.
* VPN servers (the initial connections), from the resolved allow-list.

IPv6 is blocked entirely; no exceptions are evaluated for it.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Iterable

from killswitch.config import KillSwitchConfig
from killswitch.errors import ConfigError
from killswitch.firewall.models import (
    Chain,
    CompiledPolicy,
    Family,
    FirewallRule,
    Match,
    PolicyConfig,
    Target,
)

V4 = Family.IPV4
V6 = Family.IPV6
INPUT, OUTPUT, FORWARD = Chain.INPUT, Chain.OUTPUT, Chain.FORWARD

BROADCAST = "255.255.255.255"

# Malicious packets: (log prefix, match). Each is logged, then dropped.
_MALFORMED: tuple[tuple[str, Match], ...] = (
    ("Blocked invalid: ", Match(state=("INVALID",))),
    ("Blocked syn-a: ", Match(protocol="tcp", tcp_flags=("ALL", "ACK,RST,SYN,FIN"))),
    ("Blocked syn-b: ", Match(protocol="tcp", tcp_flags=("SYN,FIN", "SYN,FIN"))),
    ("Blocked syn-c: ", Match(protocol="tcp", tcp_flags=("SYN,RST", "SYN,RST"))),
    ("Blocked fragmented: ", Match(fragment=True)),
    ("Blocked xmas: ", Match(protocol="tcp", tcp_flags=("ALL", "ALL"))),
    ("Blocked null: ", Match(protocol="tcp", tcp_flags=("ALL", "NONE"))),
)


def normalize_interface(pattern: str) -> str:
    """Convert a glob like ``tun*`` into the packet filter's ``tun+`` form.

    Only a trailing wildcard is supported by the packet filter.
    """
    pattern = pattern.strip()
    if pattern.endswith("*"):
        pattern = pattern[:-1] + "+"
    body = pattern[:-1] if pattern.endswith("+") else pattern
    if not body or any(c in body for c in "*?[]+! "):
        raise ConfigError(f"Unsupported interface pattern: {pattern!r}")
    return pattern


def policy_config_from(config: KillSwitchConfig) -> PolicyConfig:
    return PolicyConfig(
        local_networks=tuple(config.local_networks),
        nameservers=tuple(config.nameservers),
        special_addresses=tuple(config.special_addresses),
        tunnel_interfaces=tuple(normalize_interface(p) for p in config.tunnel_interfaces),
        status_ip=config.status_ip,
    )


def compile_policy(config: PolicyConfig, addresses: Iterable[str]) -> CompiledPolicy:
    """Compile the full rule set. Identical inputs give identical rule lists."""
    rules: list[FirewallRule] = []

    def add(family: Family, chain: Chain, target: Target, **kwargs) -> None:
        log_prefix = kwargs.pop("log_prefix", "")
        reject_with = kwargs.pop("reject_with", "")
        rules.append(
            FirewallRule(
                family=family,
                chain=chain,
                target=target,
                match=Match(**kwargs),
                log_prefix=log_prefix,
                reject_with=reject_with,
            )
        )

    # 1. Malformed, invalid, spoofed packets.
    for prefix, match in _MALFORMED:
        rules.append(FirewallRule(V4, INPUT, Target.LOG, match, log_prefix=prefix))
        rules.append(FirewallRule(V4, INPUT, Target.DROP, match))

    # 2. System or intra-host traffic.
    add(V4, INPUT, Target.ACCEPT, in_interface="lo")
    add(V4, OUTPUT, Target.ACCEPT, out_interface="lo")

    # 3. VPN-tunnelled traffic.
    for tun in config.tunnel_interfaces:
        add(V4, INPUT, Target.ACCEPT, in_interface=tun)
        add(V4, OUTPUT, Target.ACCEPT, out_interface=tun)

    # 4. Non-VPN traffic coming to us in response to our outgoing traffic.
    add(V4, INPUT, Target.ACCEPT, state=("RELATED", "ESTABLISHED"))

    # 5. Local broadcasting from us or to us.
    add(V4, INPUT, Target.ACCEPT, destination=BROADCAST)
    add(V4, OUTPUT, Target.ACCEPT, destination=BROADCAST)

    # 6. Local and/or Docker bridged networks: to our own addresses there
    # (initiated by others), and to other hosts there (initiated by us).
    for net in _unique(config.local_networks):
        add(V4, INPUT, Target.ACCEPT, destination=net)
        add(V4, OUTPUT, Target.ACCEPT, destination=net)

    # 7. DNS resolvers, special-purpose addresses, VPN servers.
    allowed = [
        *config.nameservers,
        *config.special_addresses,
        *sorted(set(addresses), key=ipaddress.IPv4Address),
    ]
    for ip in _unique(allowed):
        add(V4, OUTPUT, Target.ACCEPT, destination=ip)

    # 8. Log all unwanted traffic, except the probes of the status monitor,
    # which generate the unwanted traffic by design.
    exempt = config.status_ip
    add(V4, INPUT, Target.LOG, not_destination=exempt, log_prefix="Blocked IPv4 input: ")
    add(V4, OUTPUT, Target.LOG, not_destination=exempt, log_prefix="Blocked IPv4 output: ")
    add(V4, FORWARD, Target.LOG, log_prefix="Blocked IPv4 forward: ")
    add(V6, INPUT, Target.LOG, log_prefix="Blocked IPv6 input: ")
    add(V6, OUTPUT, Target.LOG, log_prefix="Blocked IPv6 output: ")
    add(V6, FORWARD, Target.LOG, log_prefix="Blocked IPv6 forward: ")

    # 9 & 10. Block all other traffic; forwarding is rejected explicitly.
    add(V4, INPUT, Target.DROP)
    add(V4, OUTPUT, Target.DROP)
    add(V4, FORWARD, Target.REJECT, reject_with="icmp-admin-prohibited")
    add(V6, INPUT, Target.DROP)
    add(V6, OUTPUT, Target.REJECT)
    add(V6, FORWARD, Target.REJECT)

    return CompiledPolicy(rules=tuple(rules))


def render_restore(policy: CompiledPolicy, family: Family) -> str:
    """Render the filter table of one family in ``iptables-restore`` format."""
    lines = ["*filter"]
    for chain in Chain:
        lines.append(f":{chain.value} {policy.default_policy.value} [0:0]")
    for rule in policy.rules_for(family):
        lines.append(" ".join(["-A", *(_quote(a) for a in rule.to_args())]))
    lines.append("COMMIT")
    lines.append("*mangle")
    for chain in ("PREROUTING", "INPUT", "FORWARD", "OUTPUT", "POSTROUTING"):
        lines.append(f":{chain} ACCEPT [0:0]")
    lines.append("COMMIT")
    return "\n".join(lines) + "\n"


def _quote(arg: str) -> str:
    if not arg or any(c.isspace() for c in arg):
        return '"' + arg.replace('"', '\\"') + '"'
    return arg


def _unique(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            result.append(item)
    return result
