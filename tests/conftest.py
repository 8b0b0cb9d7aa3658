"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from killswitch.errors import FirewallError
from killswitch.firewall.models import Chain, Family, FirewallRule, PolicyConfig, Target


class FakeLookup:
    """DnsLookup answering from a dict; unknown hosts resolve to nothing."""

    def __init__(self, answers: dict[str, list[str]] | None = None) -> None:
        self.answers = answers or {}
        self.queries: list[str] = []

    def lookup(self, hostname: str) -> list[str]:
        self.queries.append(hostname)
        return list(self.answers.get(hostname, []))


class FakeController:
    """In-memory PacketFilterController that records every call in order."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.policies: dict[tuple[Family, Chain], str] = {
            (family, chain): "ACCEPT" for family in Family for chain in Chain
        }
        self.rules: list[FirewallRule] = []
        self.calls: list[tuple] = []
        self.restored: dict[Family, str] = {}
        self.fail_on = fail_on

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise FirewallError(f"{name} failed")

    def get_policy(self, family: Family, chain: Chain) -> str:
        self._record("get_policy", family, chain)
        return self.policies[(family, chain)]

    def set_policy(self, family: Family, chain: Chain, target: Target) -> None:
        self._record("set_policy", family, chain, target)
        self.policies[(family, chain)] = target.value

    def flush(self, family: Family, table: str = "filter") -> None:
        self._record("flush", family, table)
        if table == "filter":
            self.rules = [r for r in self.rules if r.family is not family]

    def delete_chains(self, family: Family, table: str = "filter") -> None:
        self._record("delete_chains", family, table)

    def append(self, rule: FirewallRule) -> None:
        self._record("append", rule)
        self.rules.append(rule)

    def dump(self, family: Family, table: str = "filter") -> str:
        self._record("dump", family, table)
        lines = [f"*{table}"]
        if table == "filter":
            lines += ["-A " + " ".join(r.to_args()) for r in self.rules if r.family is family]
        lines.append("COMMIT")
        return "\n".join(lines) + "\n"

    def restore(self, family: Family, text: str) -> None:
        self._record("restore", family)
        self.restored[family] = text


@pytest.fixture
def fake_controller() -> FakeController:
    return FakeController()


@pytest.fixture
def fake_lookup() -> FakeLookup:
    return FakeLookup()


@pytest.fixture
def policy_config() -> PolicyConfig:
    return PolicyConfig(
        local_networks=("10.0.0.0/8",),
        nameservers=("8.8.4.4",),
        special_addresses=(),
        tunnel_interfaces=("tun+",),
        status_ip="139.130.4.5",
    )


@pytest.fixture
def snapshot_paths(tmp_path: Path) -> dict[Family, Path]:
    return {
        Family.IPV4: tmp_path / "iptables.txt",
        Family.IPV6: tmp_path / "ip6tables.txt",
    }
