"""Packet-filter control: the only seam through which live rules are touched."""

from __future__ import annotations

import logging
import os
import re
import subprocess
from typing import Protocol, runtime_checkable

from killswitch.errors import FirewallError
from killswitch.firewall.models import Chain, Family, FirewallRule, Target

logger = logging.getLogger(__name__)

_POLICY_RE = re.compile(r"^Chain (\S+) \(policy (\S+)")

_BINARIES = {
    Family.IPV4: ("iptables", "iptables-save", "iptables-restore"),
    Family.IPV6: ("ip6tables", "ip6tables-save", "ip6tables-restore"),
}


@runtime_checkable
class PacketFilterController(Protocol):
    """Capability to query and modify the live packet filter."""

    def get_policy(self, family: Family, chain: Chain) -> str:
        """Return the default policy of a chain, e.g. ``"DROP"``."""
        ...

    def set_policy(self, family: Family, chain: Chain, target: Target) -> None:
        ...

    def flush(self, family: Family, table: str = "filter") -> None:
        ...

    def delete_chains(self, family: Family, table: str = "filter") -> None:
        ...

    def append(self, rule: FirewallRule) -> None:
        ...

    def dump(self, family: Family, table: str = "filter") -> str:
        """Return the serialized rules of one table."""
        ...

    def restore(self, family: Family, text: str) -> None:
        """Atomically replace the tables given in ``text``."""
        ...


class IptablesController:
    """PacketFilterController backed by the iptables/ip6tables binaries."""

    def __init__(self, timeout: float = 10.0, lock_wait: int = 5) -> None:
        self._timeout = timeout
        self._lock_wait = lock_wait

    def get_policy(self, family: Family, chain: Chain) -> str:
        output = self._iptables(family, "-n", "-L", chain.value)
        for line in output.splitlines():
            m = _POLICY_RE.match(line)
            if m and m.group(1) == chain.value:
                return m.group(2)
        raise FirewallError(f"Cannot find the policy of chain {chain.value}")

    def set_policy(self, family: Family, chain: Chain, target: Target) -> None:
        self._iptables(family, "-P", chain.value, target.value)

    def flush(self, family: Family, table: str = "filter") -> None:
        self._iptables(family, "-t", table, "-F")

    def delete_chains(self, family: Family, table: str = "filter") -> None:
        self._iptables(family, "-t", table, "-X")

    def append(self, rule: FirewallRule) -> None:
        self._iptables(rule.family, "-A", *rule.to_args())

    def dump(self, family: Family, table: str = "filter") -> str:
        return self._run([_BINARIES[family][1], "-t", table])

    def restore(self, family: Family, text: str) -> None:
        self._run([_BINARIES[family][2], "-w", str(self._lock_wait)], stdin=text)

    def _iptables(self, family: Family, *args: str) -> str:
        return self._run([_BINARIES[family][0], "-w", str(self._lock_wait), *args])

    def _run(self, cmd: list[str], stdin: str | None = None) -> str:
        logger.debug("Running: %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                check=True,
                timeout=self._timeout,
            )
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            raise FirewallError(f"{' '.join(cmd)} failed: {stderr or e}") from e
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise FirewallError(f"{cmd[0]} is not usable: {e}") from e
        return result.stdout


def require_root() -> None:
    """For obvious reasons, only root can modify the packet filter."""
    if os.geteuid() != 0:
        raise FirewallError("This command must be executed as root (sudo)!")
