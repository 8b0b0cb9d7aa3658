"""Tests for the atomic file publish utility."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from killswitch.publish import atomic_publish


def test_writes_new_file(tmp_path: Path):
    target = tmp_path / "sub" / "all.txt"
    atomic_publish(target, "1.2.3.4\n")
    assert target.read_text() == "1.2.3.4\n"


def test_replaces_existing_file(tmp_path: Path):
    target = tmp_path / "all.txt"
    target.write_text("old\n")
    atomic_publish(target, "new\n")
    assert target.read_text() == "new\n"


def test_accepts_bytes(tmp_path: Path):
    target = tmp_path / "blob"
    atomic_publish(target, b"\x00\x01")
    assert target.read_bytes() == b"\x00\x01"


def test_no_temp_files_left_behind(tmp_path: Path):
    atomic_publish(tmp_path / "all.txt", "x\n")
    assert [p.name for p in tmp_path.iterdir()] == ["all.txt"]


def test_uses_rename_into_final_path(tmp_path: Path):
    target = tmp_path / "all.txt"
    with patch("killswitch.publish.os.replace", wraps=os.replace) as mock_replace:
        atomic_publish(target, "x\n")
    src, dst = mock_replace.call_args.args
    assert Path(src).parent == tmp_path
    assert Path(src) != target
    assert Path(dst) == target


def test_failed_rename_keeps_previous_version(tmp_path: Path):
    target = tmp_path / "all.txt"
    target.write_text("previous\n")
    with patch("killswitch.publish.os.replace", side_effect=OSError("disk gone")):
        with pytest.raises(OSError):
            atomic_publish(target, "partial")
    assert target.read_text() == "previous\n"
    assert [p.name for p in tmp_path.iterdir()] == ["all.txt"]
