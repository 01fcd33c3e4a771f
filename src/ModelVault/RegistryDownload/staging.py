# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.staging",
#   "purpose": "Create and track temporary files for in-flight blob transfers",
#   "sections": [
#     {"id": "stagedblob", "name": "StagedBlob", "anchor": "class-stagedblob", "kind": "class"},
#     {"id": "stagingarea", "name": "StagingArea", "anchor": "class-stagingarea", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Staging area for blob transfers.

Blob bytes are written to uniquely named files outside the store and only
copied under a digest-derived name once verified.  Each staging path is
recorded in the session's :class:`~ModelVault.RegistryDownload.rollback.RollbackLedger`
before the file is created, so an abrupt termination never leaves an
untracked orphan.
"""

from __future__ import annotations

import logging
import tempfile
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Set, Tuple

from .rollback import RollbackLedger
from .settings import LOGGER_NAME

_STAGING_PREFIX = "modelvault-"
_STAGING_SUFFIX = ".partial"


@dataclass(slots=True)
class StagedBlob:
    """Downloaded blob awaiting verification and commit.

    Attributes:
        path: Staging file holding the downloaded bytes.
        named_digest: Digest declared by the manifest (``sha256:<hex>``).
        computed_digest: Hex digest computed while streaming the bytes.
        size: Number of bytes written.
    """

    path: Path
    named_digest: str
    computed_digest: str
    size: int = 0


class StagingArea:
    """Allocates staging files and registers them with a rollback ledger."""

    def __init__(
        self,
        ledger: RollbackLedger,
        directory: Optional[Path] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.ledger = ledger
        self.directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self._allocated: Set[Path] = set()

    @property
    def allocated(self) -> Set[Path]:
        """Staging paths handed out and not yet discarded."""

        return set(self._allocated)

    def allocate(self) -> Path:
        """Return a fresh staging path that is already tracked by the ledger."""

        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{_STAGING_PREFIX}{uuid.uuid4().hex}{_STAGING_SUFFIX}"
        self.ledger.add(path)
        self._allocated.add(path)
        return path

    def open(self) -> Tuple[Path, BinaryIO]:
        """Allocate a staging path and open it for exclusive binary writing."""

        path = self.allocate()
        handle = path.open("xb")
        self.logger.debug(
            "created staging file",
            extra={"stage": "fetch", "path": str(path)},
        )
        return path, handle

    def discard(self, path: Path) -> None:
        """Delete a staging file and drop it from the ledger."""

        path = Path(path)
        path.unlink(missing_ok=True)
        self.ledger.discard(path)
        self._allocated.discard(path)

    def cleanup(self) -> None:
        """Discard every staging file that is still outstanding.

        Used when a failure keeps committed artifacts in place: staged bytes
        are never reachable from the store, so they are dropped regardless.
        """

        for path in sorted(self._allocated):
            self.discard(path)


__all__ = ["StagedBlob", "StagingArea"]
