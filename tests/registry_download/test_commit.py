# === NAVMAP v1 ===
# {
#   "module": "tests.registry_download.test_commit",
#   "purpose": "Tests for committing verified blobs and manifests into the store.",
#   "sections": [
#     {"id": "helpers", "name": "Helpers", "anchor": "HLP", "kind": "helpers"},
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Tests for committing verified blobs and manifests into the store."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from ModelVault.RegistryDownload.commit import CommitEngine
from ModelVault.RegistryDownload.errors import DigestMismatchError, StoreLayoutError
from ModelVault.RegistryDownload.rollback import RollbackLedger
from ModelVault.RegistryDownload.staging import StagedBlob, StagingArea
from tests.registry_download._support import blob

# --- Helpers ---


def _stage(staging: StagingArea, digest: str, content: bytes) -> StagedBlob:
    path, handle = staging.open()
    with handle:
        handle.write(content)
    return StagedBlob(
        path=path,
        named_digest=digest,
        computed_digest=hashlib.sha256(content).hexdigest(),
        size=len(content),
    )


def _store_files(root: Path) -> set:
    return {p.relative_to(root) for p in root.rglob("*") if p.is_file()}


@pytest.fixture
def ledger() -> RollbackLedger:
    return RollbackLedger()


@pytest.fixture
def staging(tmp_path: Path, ledger: RollbackLedger) -> StagingArea:
    return StagingArea(ledger, tmp_path / "staging")


# --- Test Cases ---


def test_save_blob_commits_under_digest_name(store_root, ledger, staging) -> None:
    digest, content = blob(b"layer bytes")
    staged = _stage(staging, digest, content)
    engine = CommitEngine(store_root, ledger)

    target = engine.save_blob(staged, digest)

    assert target == store_root / "blobs" / digest.replace(":", "-")
    assert target.read_bytes() == content
    assert target in ledger
    assert staged.path not in ledger
    assert [p for p in target.parent.iterdir() if p.name.endswith(".tmp")] == []


def test_digest_mismatch_leaves_store_untouched(store_root, ledger, staging) -> None:
    digest, _ = blob(b"expected")
    staged = _stage(staging, digest, b"tampered")
    engine = CommitEngine(store_root, ledger)

    with pytest.raises(DigestMismatchError) as excinfo:
        engine.save_blob(staged, digest)

    assert excinfo.value.computed == hashlib.sha256(b"tampered").hexdigest()
    assert list((store_root / "blobs").iterdir()) == []
    assert staged.path in ledger


def test_missing_blobs_directory_is_a_layout_error(tmp_path, ledger, staging) -> None:
    digest, content = blob(b"x")
    engine = CommitEngine(tmp_path / "empty-store", ledger)

    with pytest.raises(StoreLayoutError, match="does not exist"):
        engine.save_blob(_stage(staging, digest, content), digest)


def test_blobs_path_that_is_a_file_is_a_layout_error(tmp_path, ledger, staging) -> None:
    root = tmp_path / "store"
    root.mkdir()
    (root / "blobs").write_text("not a directory")
    digest, content = blob(b"x")

    with pytest.raises(StoreLayoutError, match="is not a directory"):
        CommitEngine(root, ledger).save_blob(_stage(staging, digest, content), digest)


def test_pre_existing_blob_is_not_claimed_by_the_session(store_root, ledger, staging) -> None:
    digest, content = blob(b"shared layer")
    existing = store_root / "blobs" / digest.replace(":", "-")
    existing.write_bytes(content)
    engine = CommitEngine(store_root, ledger)

    engine.save_blob(_stage(staging, digest, content), digest)
    ledger.rollback()

    assert existing.read_bytes() == content


def test_save_manifest_records_created_directories(store_root, ledger) -> None:
    engine = CommitEngine(store_root, ledger)
    manifest_dir = store_root / "manifests" / "registry.example.test" / "library" / "demo"

    target = engine.save_manifest('{"schemaVersion": 2}', manifest_dir, "latest")

    assert target.read_text() == '{"schemaVersion": 2}'
    for directory in (
        store_root / "manifests",
        store_root / "manifests" / "registry.example.test",
        store_root / "manifests" / "registry.example.test" / "library",
        manifest_dir,
    ):
        assert directory in ledger
    assert target in ledger

    ledger.rollback()
    assert not (store_root / "manifests").exists()
    assert (store_root / "blobs").exists()


def test_save_manifest_overwrites_existing_tag_without_claiming_it(store_root, ledger) -> None:
    manifest_dir = store_root / "manifests" / "host" / "library" / "demo"
    manifest_dir.mkdir(parents=True)
    (manifest_dir / "latest").write_text("old")
    engine = CommitEngine(store_root, ledger)

    target = engine.save_manifest(b"new", manifest_dir, "latest")

    assert target.read_bytes() == b"new"
    assert len(ledger) == 0
    assert list(ledger.restores) == [target]

    ledger.clear()
    assert sorted(p.name for p in manifest_dir.iterdir()) == ["latest"]
    assert target.read_bytes() == b"new"


def test_rollback_restores_overwritten_manifest(store_root, ledger) -> None:
    manifest_dir = store_root / "manifests" / "host" / "library" / "demo"
    manifest_dir.mkdir(parents=True)
    (manifest_dir / "latest").write_text("old")
    engine = CommitEngine(store_root, ledger)

    engine.save_manifest(b"first", manifest_dir, "latest")
    engine.save_manifest(b"second", manifest_dir, "latest")
    ledger.rollback()

    assert sorted(p.name for p in manifest_dir.iterdir()) == ["latest"]
    assert (manifest_dir / "latest").read_text() == "old"


def test_pre_existing_blob_with_matching_content_is_not_rewritten(
    store_root, ledger, staging
) -> None:
    digest, content = blob(b"shared layer")
    existing = store_root / "blobs" / digest.replace(":", "-")
    existing.write_bytes(content)
    before = existing.stat().st_ino
    staged = _stage(staging, digest, content)

    target = CommitEngine(store_root, ledger).save_blob(staged, digest)

    assert target == existing
    assert existing.stat().st_ino == before
    assert staged.path not in ledger


def test_corrupt_pre_existing_blob_is_replaced(store_root, ledger, staging) -> None:
    digest, content = blob(b"shared layer")
    existing = store_root / "blobs" / digest.replace(":", "-")
    existing.write_bytes(b"bit rot")

    CommitEngine(store_root, ledger).save_blob(_stage(staging, digest, content), digest)

    assert existing.read_bytes() == content
    assert existing not in ledger


def test_commit_writes_no_files_outside_expected_paths(store_root, ledger, staging) -> None:
    config = blob(b"config")
    layer = blob(b"layer")
    engine = CommitEngine(store_root, ledger)
    for digest, content in (config, layer):
        staged = _stage(staging, digest, content)
        engine.save_blob(staged, digest)
        staging.discard(staged.path)
    engine.save_manifest("{}", store_root / "manifests" / "h" / "library" / "m", "t")

    assert _store_files(store_root) == {
        Path("blobs") / config[0].replace(":", "-"),
        Path("blobs") / layer[0].replace(":", "-"),
        Path("manifests/h/library/m/t"),
    }
