# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.rollback",
#   "purpose": "Track filesystem side effects of a download session and undo them on failure",
#   "sections": [
#     {"id": "ledger", "name": "RollbackLedger", "anchor": "LED", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Rollback ledger for download sessions.

Every path a session creates (staging files, committed blobs, manifest files
and freshly created manifest directories) is recorded here until the session
finishes.  On success the ledger is cleared and the paths become permanent;
on any failure :meth:`RollbackLedger.rollback` removes them again.

Files the session overwrites are handled through backups registered with
:meth:`RollbackLedger.add_restore`: rollback moves the backup back over the
target, while clearing the ledger deletes the backup.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Set

from .settings import LOGGER_NAME


class RollbackLedger:
    """Append-until-cleared set of not-yet-permanent filesystem paths."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._paths: Set[Path] = set()
        self._restores: Dict[Path, Path] = {}
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def add(self, path: Path) -> None:
        """Record ``path`` as a side effect that rollback must undo."""

        self._paths.add(Path(path))

    def discard(self, path: Path) -> None:
        """Forget ``path``; a no-op when it was never recorded."""

        self._paths.discard(Path(path))

    def transfer(self, source: Path, target: Path) -> None:
        """Move cleanup responsibility from ``source`` to ``target``."""

        self.discard(source)
        self.add(target)

    def add_restore(self, target: Path, backup: Path) -> None:
        """Record that rollback must move ``backup`` back over ``target``.

        The first backup registered for a target wins; later overwrites in
        the same session must not replace the pre-session content.
        """

        target = Path(target)
        backup = Path(backup)
        self._paths.discard(backup)
        if target in self._restores:
            backup.unlink(missing_ok=True)
            return
        self._restores[target] = backup

    def clear(self) -> None:
        """Make every recorded path permanent and drop pending backups."""

        for backup in self._restores.values():
            try:
                backup.unlink(missing_ok=True)
            except OSError as exc:
                self.logger.warning(
                    "failed to remove backup file",
                    extra={"stage": "rollback", "path": str(backup), "error": str(exc)},
                )
        self._restores.clear()
        self._paths.clear()

    @property
    def paths(self) -> Set[Path]:
        return set(self._paths)

    @property
    def restores(self) -> Dict[Path, Path]:
        return dict(self._restores)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, (str, Path)) and Path(path) in self._paths

    def __len__(self) -> int:
        return len(self._paths)

    def __iter__(self) -> Iterator[Path]:
        return iter(sorted(self._paths))

    def _restore_backups(self) -> None:
        for target, backup in list(self._restores.items()):
            if not backup.exists():
                del self._restores[target]
                continue
            try:
                os.replace(backup, target)
            except OSError as exc:
                self.logger.warning(
                    "failed to restore overwritten file during rollback",
                    extra={
                        "stage": "rollback",
                        "path": str(target),
                        "backup": str(backup),
                        "error": str(exc),
                    },
                )
                continue
            del self._restores[target]
            self._paths.discard(target)
            self.logger.info(
                "restored overwritten file",
                extra={"stage": "rollback", "path": str(target)},
            )

    def rollback(self) -> List[Path]:
        """Restore overwritten files, then remove recorded files and empty directories.

        Backups go back over their targets first.  Files go next, then
        directories deepest-first so that nested directories created by one
        session collapse in a single pass.  Directories that still hold
        foreign content stay in place.  Paths that no longer exist are
        dropped, which makes repeated calls harmless.

        Returns:
            Paths that were actually removed by this call.
        """

        self._restore_backups()
        removed: List[Path] = []
        ordered = sorted(self._paths, key=lambda p: (p.is_dir(), -len(p.parts)))
        for path in ordered:
            if path.is_dir() and not path.is_symlink():
                try:
                    path.rmdir()
                except OSError as exc:
                    self.logger.warning(
                        "rollback left non-empty directory in place",
                        extra={"stage": "rollback", "path": str(path), "error": str(exc)},
                    )
                    continue
            elif path.exists() or path.is_symlink():
                try:
                    path.unlink()
                except OSError as exc:
                    self.logger.warning(
                        "failed to remove file during rollback",
                        extra={"stage": "rollback", "path": str(path), "error": str(exc)},
                    )
                    continue
            else:
                self._paths.discard(path)
                continue
            self._paths.discard(path)
            removed.append(path)
            self.logger.info(
                "removed unnecessary path",
                extra={"stage": "rollback", "path": str(path)},
            )
        return removed


__all__ = ["RollbackLedger"]
