"""Tests for store ownership inference and application."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from ModelVault.RegistryDownload import ownership
from ModelVault.RegistryDownload.ownership import (
    Ownership,
    ensure_ownership,
    ensure_ownership_for_tree,
    infer_store_ownership,
)
from ModelVault.RegistryDownload.settings import OwnershipOverride


def test_override_wins(tmp_path: Path) -> None:
    assert infer_store_ownership(tmp_path, OwnershipOverride(uid=10, gid=20)) == Ownership(10, 20)
    assert Ownership(10, 20).spec == "10:20"


def test_unprivileged_process_infers_nothing(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(ownership, "is_running_as_root", lambda: False)
    assert infer_store_ownership(tmp_path) is None


@pytest.mark.skipif(not hasattr(os, "geteuid"), reason="POSIX ownership only")
def test_root_infers_store_owner(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(ownership, "is_running_as_root", lambda: True)
    stat = tmp_path.stat()
    assert infer_store_ownership(tmp_path) == Ownership(stat.st_uid, stat.st_gid)


def test_ensure_ownership_skips_matching_paths(tmp_path: Path, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(ownership, "_apply_ownership", lambda path, owner: calls.append(path))
    target = tmp_path / "file"
    target.write_text("x")
    stat = target.stat()

    ensure_ownership(target, Ownership(stat.st_uid, stat.st_gid))
    ensure_ownership(target, None)
    assert calls == []

    ensure_ownership(target, Ownership(stat.st_uid + 1, stat.st_gid))
    assert calls == [target]


def test_ensure_ownership_for_tree_walks_from_root(tmp_path: Path, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(ownership, "_apply_ownership", lambda path, owner: calls.append(path))
    leaf = tmp_path / "manifests" / "host" / "library"
    leaf.mkdir(parents=True)
    stranger = Ownership(tmp_path.stat().st_uid + 1, 0)

    ensure_ownership_for_tree(tmp_path, leaf, stranger)

    assert calls == [
        tmp_path,
        tmp_path / "manifests",
        tmp_path / "manifests" / "host",
        leaf,
    ]
