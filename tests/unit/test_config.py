"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from killswitch.config import KillSwitchConfig
from killswitch.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    import os

    for key in list(os.environ):
        if key.startswith("KILLSWITCH_"):
            monkeypatch.delenv(key)


def test_defaults():
    config = KillSwitchConfig.load()
    assert config.nameservers == ["8.8.4.4", "8.8.8.8"]
    assert "earth" in config.scopes
    assert config.tunnel_interfaces == ["tun+"]
    assert config.aggregate_file == config.allowlist_dir / "all.txt"
    assert not config.allowlist_explicit


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    monkeypatch.setenv("KILLSWITCH_LOCAL_NETWORKS", "10.0.0.0/8, 192.168.1.0/24")
    monkeypatch.setenv("KILLSWITCH_COUNTRY_CACHE_TTL", "300")
    monkeypatch.setenv("KILLSWITCH_ALLOWLIST_FILE", str(tmp_path / "ips.txt"))
    config = KillSwitchConfig.load()
    assert config.local_networks == ["10.0.0.0/8", "192.168.1.0/24"]
    assert config.country_cache_ttl == 300.0
    assert config.aggregate_file == tmp_path / "ips.txt"
    assert config.allowlist_explicit


def test_yaml_then_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    path = tmp_path / "killswitch.yaml"
    path.write_text(
        "scopes: [nl, de]\n"
        "status_ip: 1.1.1.1\n"
        "dns_tries: 2\n"
    )
    monkeypatch.setenv("KILLSWITCH_STATUS_IP", "9.9.9.9")
    config = KillSwitchConfig.load(path)
    assert config.scopes == ["nl", "de"]
    assert config.dns_tries == 2
    assert config.status_ip == "9.9.9.9"


def test_config_path_from_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    path = tmp_path / "killswitch.yaml"
    path.write_text("forbidden_countries: [Germany]\n")
    monkeypatch.setenv("KILLSWITCH_CONFIG", str(path))
    assert KillSwitchConfig.load().forbidden_countries == ["Germany"]


def test_empty_yaml_is_fine(tmp_path: Path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert KillSwitchConfig.load(path).status_ip == "139.130.4.5"


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("KILLSWITCH_NAMESERVERS", "dns.google"),
        ("KILLSWITCH_LOCAL_NETWORKS", "10.0.0.0/33"),
        ("KILLSWITCH_DNS_TRIES", "0"),
        ("KILLSWITCH_PROBE_TIMEOUT", "soon"),
        ("KILLSWITCH_SPECIAL_ADDRESSES", "1.2.3"),
    ],
)
def test_invalid_values(monkeypatch: pytest.MonkeyPatch, key: str, value: str):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigError):
        KillSwitchConfig.load()


def test_unknown_yaml_key(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("nope: 1\n")
    with pytest.raises(ConfigError, match="nope"):
        KillSwitchConfig.load(path)


def test_non_mapping_yaml(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("- a\n- b\n")
    with pytest.raises(ConfigError):
        KillSwitchConfig.load(path)


def test_empty_path_is_rejected(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("KILLSWITCH_SNAPSHOT_V4", "")
    with pytest.raises(ConfigError, match="snapshot_v4"):
        KillSwitchConfig.load()


def test_null_allowlist_dir_is_rejected(tmp_path: Path):
    path = tmp_path / "killswitch.yaml"
    path.write_text("allowlist_dir: null\n")
    with pytest.raises(ConfigError, match="allowlist_dir"):
        KillSwitchConfig.load(path)


def test_null_allowlist_file_means_default(tmp_path: Path):
    path = tmp_path / "killswitch.yaml"
    path.write_text("allowlist_file: null\n")
    config = KillSwitchConfig.load(path)
    assert config.aggregate_file == config.allowlist_dir / "all.txt"
