"""Policy enforcer: apply a compiled policy to the live filter and snapshot it.

Two modes are supported:

* In-place (default): policies are set to DROP before anything is flushed, so
  a flush never opens a permissive gap. Between the flush and the last
  appended rule, however, the exceptions are only partially installed and the
  VPN client and applications lose connectivity for that time.

* Atomic: the compiled policy is rendered and swapped in with a single
  ``iptables-restore`` per family. This is also how a snapshot generated in a
  standalone networking context is applied to the real VPN-secured context.

The snapshot is published only after the policy has been applied completely.
On any failure it is left untouched, so the previous fully-applied snapshot
remains the last known truth.
"""

from __future__ import annotations

import logging
from pathlib import Path

from killswitch.errors import FirewallError
from killswitch.firewall.compiler import render_restore
from killswitch.firewall.controller import PacketFilterController
from killswitch.firewall.models import Chain, CompiledPolicy, Family, Target
from killswitch.publish import atomic_publish

logger = logging.getLogger(__name__)

SNAPSHOT_TABLES = ("filter", "mangle")


class PolicyEnforcer:
    """Applies compiled policies through a PacketFilterController."""

    def __init__(self, controller: PacketFilterController) -> None:
        self._controller = controller

    def apply(self, policy: CompiledPolicy) -> None:
        """Reset to deny, flush, and install all rules in order."""
        ctl = self._controller

        # Block anything by default, even if there is no single rule.
        for family in Family:
            for chain in Chain:
                ctl.set_policy(family, chain, Target.DROP)

        # Start from scratch each time.
        for family in Family:
            for table in SNAPSHOT_TABLES:
                ctl.flush(family, table)
                ctl.delete_chains(family, table)

        for rule in policy.rules:
            ctl.append(rule)
        logger.info("The firewall is configured (%d rules).", len(policy.rules))

    def apply_atomic(self, policy: CompiledPolicy) -> None:
        """Swap in the whole rendered policy, one family at a time."""
        for family in Family:
            self._controller.restore(family, render_restore(policy, family))
        logger.info("The firewall is configured atomically (%d rules).", len(policy.rules))

    def snapshot(self, family: Family) -> str:
        """Dump the live tables of one family."""
        return "".join(self._controller.dump(family, table) for table in SNAPSHOT_TABLES)

    def publish_snapshot(self, paths: dict[Family, Path]) -> None:
        # Dump everything before publishing anything.
        dumps = {family: self.snapshot(family) for family in paths}
        for family, path in paths.items():
            atomic_publish(path, dumps[family])
        logger.info(
            "The firewall is saved: %s",
            ", ".join(str(p) for p in paths.values()),
        )

    def enforce(
        self,
        policy: CompiledPolicy,
        paths: dict[Family, Path],
        atomic: bool = False,
    ) -> None:
        """Apply the policy, then publish the snapshot. Any error skips the publish."""
        if atomic:
            self.apply_atomic(policy)
        else:
            self.apply(policy)
        self.publish_snapshot(paths)

    def restore(self, paths: dict[Family, Path]) -> None:
        """Atomically apply previously published snapshots."""
        texts = {}
        for family, path in paths.items():
            try:
                texts[family] = Path(path).read_text(encoding="utf-8")
            except OSError as e:
                raise FirewallError(f"Cannot read the snapshot {path}: {e}") from e
            if not texts[family].strip():
                raise FirewallError(f"The snapshot {path} is empty")
        for family, text in texts.items():
            self._controller.restore(family, text)
        logger.info("The firewall is restored from the snapshots.")
