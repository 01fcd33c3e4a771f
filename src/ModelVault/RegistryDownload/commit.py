# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.commit",
#   "purpose": "Commit verified blobs and manifests into the content-addressed store",
#   "sections": [
#     {"id": "helpers", "name": "Write helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "engine", "name": "CommitEngine", "anchor": "ENG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Commit engine for the local model store.

Store layout::

    <store_root>/blobs/<algo>-<hex>
    <store_root>/manifests/<registry-host>/<namespace...>/<model>/<tag>

A blob is visible under its digest-derived name only after its computed
digest matched the declared one.  Bytes are copied (the staging directory
may live on another filesystem) into a sibling temporary name and then
renamed into place, so a reader never observes a partially copied blob or
manifest.  Every path created here is recorded in the session ledger;
a blob that already existed before the session is left out of it so a
failed re-pull never deletes content another model may reference.  A
manifest overwritten by the session is backed up first and restored on
rollback.
"""

from __future__ import annotations

import logging
import os
import shutil
import uuid
from pathlib import Path
from typing import List, Optional, Union

from .digest import digest_to_filename, sha256_file, split_digest
from .errors import DigestMismatchError, StoreLayoutError
from .ownership import Ownership, ensure_ownership, ensure_ownership_for_tree
from .rollback import RollbackLedger
from .settings import LOGGER_NAME
from .staging import StagedBlob

BLOBS_DIRNAME = "blobs"
MANIFESTS_DIRNAME = "manifests"

# --- Write helpers --------------------------------------------------------------


def _sibling_temp(target: Path, suffix: str = "tmp") -> Path:
    return target.with_name(f".{target.name}.{uuid.uuid4().hex}.{suffix}")


def _fsync(handle) -> None:
    try:
        os.fsync(handle.fileno())
    except (AttributeError, OSError):
        pass


# --- CommitEngine ---------------------------------------------------------------


class CommitEngine:
    """Moves verified content into canonical store paths for one session."""

    def __init__(
        self,
        store_root: Path,
        ledger: RollbackLedger,
        *,
        owner: Optional[Ownership] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store_root = Path(store_root)
        self.ledger = ledger
        self.owner = owner
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    @property
    def blobs_dir(self) -> Path:
        return self.store_root / BLOBS_DIRNAME

    @property
    def manifests_root(self) -> Path:
        return self.store_root / MANIFESTS_DIRNAME

    def blob_path(self, digest: str) -> Path:
        return self.blobs_dir / digest_to_filename(digest)

    def save_blob(self, staged: StagedBlob, expected_digest: str) -> Path:
        """Verify ``staged`` against ``expected_digest`` and copy it into the store.

        On a digest mismatch nothing in the store is touched and the staging
        file stays in the ledger for the caller's rollback.

        Raises:
            DigestMismatchError: If the computed digest differs.
            StoreLayoutError: If ``<store>/blobs`` is missing or not a directory.
        """

        try:
            _, expected_hex = split_digest(expected_digest)
        except ValueError as exc:
            raise DigestMismatchError(expected_digest, expected_digest, staged.computed_digest) from exc
        if staged.computed_digest != expected_hex:
            self.logger.error(
                "digest mismatch",
                extra={
                    "stage": "verify",
                    "digest": expected_digest,
                    "expected": expected_hex,
                    "computed": staged.computed_digest,
                },
            )
            raise DigestMismatchError(expected_digest, expected_hex, staged.computed_digest)
        self.logger.info(
            "blob digest verified",
            extra={"stage": "verify", "digest": expected_digest},
        )

        blobs_dir = self.blobs_dir
        if not blobs_dir.exists():
            raise StoreLayoutError(f"BLOBS directory {blobs_dir} does not exist")
        if not blobs_dir.is_dir():
            raise StoreLayoutError(f"BLOBS path {blobs_dir} is not a directory")

        target = self.blob_path(expected_digest)
        pre_existing = target.exists()
        if pre_existing and target.is_file() and sha256_file(target) == expected_hex:
            self.ledger.discard(staged.path)
            self.logger.info(
                "blob already present in store",
                extra={"stage": "commit", "target": str(target)},
            )
            return target
        temp = _sibling_temp(target)
        self.ledger.add(temp)
        shutil.copyfile(staged.path, temp)
        os.replace(temp, target)
        if pre_existing:
            self.ledger.discard(temp)
        else:
            self.ledger.transfer(temp, target)
        self.ledger.discard(staged.path)

        ensure_ownership(target, self.owner)
        ensure_ownership(blobs_dir, self.owner)
        self.logger.info(
            "committed blob",
            extra={"stage": "commit", "source": str(staged.path), "target": str(target)},
        )
        return target

    def _create_missing_dirs(self, directory: Path) -> List[Path]:
        missing: List[Path] = []
        current = directory
        while not current.exists():
            missing.append(current)
            if current.parent == current:
                break
            current = current.parent
        created: List[Path] = []
        for path in reversed(missing):
            self.ledger.add(path)
            path.mkdir(exist_ok=True)
            created.append(path)
        if created:
            self.logger.warning(
                "manifests path did not exist; created it",
                extra={"stage": "commit", "path": str(directory)},
            )
        return created

    def save_manifest(self, data: Union[str, bytes], manifest_dir: Path, tag: str) -> Path:
        """Write ``data`` to ``<manifest_dir>/<tag>`` with a single write.

        ``manifest_dir`` and any missing ancestors are created and recorded
        in the ledger.  The manifest becomes visible only through the final
        rename, so no partially written manifest is ever exposed.  A manifest
        already at the target is copied aside and registered for restore.
        """

        manifest_dir = Path(manifest_dir)
        self._create_missing_dirs(manifest_dir)

        payload = data.encode("utf-8") if isinstance(data, str) else data
        target = manifest_dir / tag
        pre_existing = target.exists()
        if pre_existing:
            backup = _sibling_temp(target, "bak")
            self.ledger.add(backup)
            shutil.copy2(target, backup)
            self.ledger.add_restore(target, backup)
        temp = _sibling_temp(target)
        self.ledger.add(temp)
        with temp.open("wb") as handle:
            handle.write(payload)
            handle.flush()
            _fsync(handle)
        os.replace(temp, target)
        if pre_existing:
            self.ledger.discard(temp)
        else:
            self.ledger.transfer(temp, target)

        ensure_ownership_for_tree(self.store_root, manifest_dir, self.owner)
        ensure_ownership(target, self.owner)
        self.logger.info(
            "saved manifest",
            extra={"stage": "commit", "path": str(target)},
        )
        return target


__all__ = ["CommitEngine", "BLOBS_DIRNAME", "MANIFESTS_DIRNAME"]
