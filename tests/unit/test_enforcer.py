"""Tests for applying compiled policies and publishing snapshots."""

from __future__ import annotations

from pathlib import Path

import pytest

from killswitch.errors import FirewallError
from killswitch.firewall.compiler import compile_policy
from killswitch.firewall.enforcer import PolicyEnforcer
from killswitch.firewall.models import Chain, Family, PolicyConfig, Target


def _names(calls) -> list[str]:
    return [c[0] for c in calls]


def test_policies_denied_before_any_flush(fake_controller, policy_config):
    PolicyEnforcer(fake_controller).apply(compile_policy(policy_config, []))

    names = _names(fake_controller.calls)
    first_flush = names.index("flush")
    assert names[:first_flush] == ["set_policy"] * 6
    assert all(c[3] is Target.DROP for c in fake_controller.calls[:first_flush])
    for family in Family:
        for chain in Chain:
            assert fake_controller.policies[(family, chain)] == "DROP"


def test_rules_appended_in_compiled_order(fake_controller, policy_config):
    policy = compile_policy(policy_config, ["5.5.5.5"])
    PolicyEnforcer(fake_controller).apply(policy)
    assert tuple(fake_controller.rules) == policy.rules


def test_flushes_filter_and_mangle(fake_controller, policy_config):
    PolicyEnforcer(fake_controller).apply(compile_policy(policy_config, []))
    flushed = {(c[1], c[2]) for c in fake_controller.calls if c[0] == "flush"}
    deleted = {(c[1], c[2]) for c in fake_controller.calls if c[0] == "delete_chains"}
    expected = {(f, t) for f in Family for t in ("filter", "mangle")}
    assert flushed == expected
    assert deleted == expected


def test_enforce_publishes_snapshot(fake_controller, policy_config, snapshot_paths):
    PolicyEnforcer(fake_controller).enforce(
        compile_policy(policy_config, ["5.5.5.5"]), snapshot_paths
    )
    v4 = snapshot_paths[Family.IPV4].read_text()
    v6 = snapshot_paths[Family.IPV6].read_text()
    assert "*filter" in v4 and "*mangle" in v4
    assert "-A OUTPUT -d 5.5.5.5 -j ACCEPT" in v4
    assert "5.5.5.5" not in v6
    assert _names(fake_controller.calls)[-4:] == ["dump"] * 4


@pytest.mark.parametrize("step", ["set_policy", "flush", "append", "dump"])
def test_failure_withholds_snapshot(fake_controller, policy_config, snapshot_paths, step):
    for path in snapshot_paths.values():
        path.write_text("previous good snapshot\n")
    fake_controller.fail_on = step

    with pytest.raises(FirewallError):
        PolicyEnforcer(fake_controller).enforce(
            compile_policy(policy_config, []), snapshot_paths
        )

    for path in snapshot_paths.values():
        assert path.read_text() == "previous good snapshot\n"


def test_atomic_mode_uses_restore(fake_controller, policy_config, snapshot_paths):
    PolicyEnforcer(fake_controller).enforce(
        compile_policy(policy_config, []), snapshot_paths, atomic=True
    )
    assert set(fake_controller.restored) == {Family.IPV4, Family.IPV6}
    assert fake_controller.restored[Family.IPV4].startswith("*filter\n:INPUT DROP")
    assert "flush" not in _names(fake_controller.calls)


def test_restore_from_snapshots(fake_controller, snapshot_paths):
    snapshot_paths[Family.IPV4].write_text("*filter\nCOMMIT\n")
    snapshot_paths[Family.IPV6].write_text("*filter\nCOMMIT\n")
    PolicyEnforcer(fake_controller).restore(snapshot_paths)
    assert fake_controller.restored[Family.IPV4] == "*filter\nCOMMIT\n"


def test_restore_missing_snapshot_is_fatal(fake_controller, tmp_path: Path):
    with pytest.raises(FirewallError):
        PolicyEnforcer(fake_controller).restore({Family.IPV4: tmp_path / "nope.txt"})
    assert fake_controller.restored == {}


def test_empty_allowlist_still_fully_applied(fake_controller, snapshot_paths):
    PolicyEnforcer(fake_controller).enforce(compile_policy(PolicyConfig(), []), snapshot_paths)
    assert snapshot_paths[Family.IPV4].exists()
    assert fake_controller.rules[-1].target is Target.REJECT
