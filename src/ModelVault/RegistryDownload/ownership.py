# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.ownership",
#   "purpose": "Infer and apply store ownership to paths created by download sessions",
#   "sections": [
#     {"id": "ownership", "name": "Ownership", "anchor": "OWN", "kind": "api"},
#     {"id": "inference", "name": "Inference", "anchor": "INF", "kind": "api"},
#     {"id": "apply", "name": "Application", "anchor": "APP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Ownership reconciliation for the local store.

A store under a service account (e.g. ``/usr/share/ollama/.ollama/models``)
is typically written by a privileged invocation.  When running as root the
session infers the ``(uid, gid)`` of the pre-existing store root once and
applies it to every path it creates, so the model server keeps access to
the files afterwards.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .settings import LOGGER_NAME, OwnershipOverride

LOGGER = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class Ownership:
    """``(uid, gid)`` pair applied to created paths."""

    uid: int
    gid: int

    @property
    def spec(self) -> str:
        return f"{self.uid}:{self.gid}"


def is_running_as_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def infer_store_ownership(
    store_root: Path,
    override: Optional[OwnershipOverride] = None,
) -> Optional[Ownership]:
    """Return the ownership to apply to created paths, or ``None`` to leave defaults.

    An explicit ``override`` wins.  Otherwise ownership is inferred from the
    store root, and only when running as root, since an unprivileged process
    cannot change owners anyway.
    """

    if override is not None:
        pair = override.as_pair()
        if pair is not None:
            return Ownership(*pair)
    if not is_running_as_root():
        return None
    try:
        stat = store_root.stat()
    except OSError as exc:
        LOGGER.warning(
            "failed to infer store ownership",
            extra={"stage": "commit", "path": str(store_root), "error": str(exc)},
        )
        return None
    return Ownership(uid=stat.st_uid, gid=stat.st_gid)


def warn_if_store_requires_root(store_root: Path) -> bool:
    """Warn when an unprivileged user targets a store owned by someone else.

    Returns:
        ``True`` when a warning was emitted.
    """

    geteuid = getattr(os, "geteuid", None)
    if geteuid is None or geteuid() == 0:
        return False
    try:
        owner = store_root.stat().st_uid
    except OSError as exc:
        LOGGER.warning(
            "cannot verify ownership of models path; run this command with superuser rights",
            extra={"stage": "config", "path": str(store_root), "error": str(exc)},
        )
        return True
    if owner != geteuid():
        LOGGER.warning(
            "models path is not owned by the current user; run this command with superuser rights",
            extra={"stage": "config", "path": str(store_root)},
        )
        return True
    return False


def _apply_ownership(path: Path, owner: Ownership) -> None:
    chown = getattr(os, "chown", None)
    if chown is not None:
        try:
            chown(path, owner.uid, owner.gid)
        except OSError as exc:
            LOGGER.warning(
                "failed to chown path",
                extra={"stage": "commit", "path": str(path), "owner": owner.spec, "error": str(exc)},
            )
        return

    executable = shutil.which("chown")
    if executable is None:
        return
    try:
        completed = subprocess.run(
            [executable, owner.spec, str(path)],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.warning(
            "failed to chown path",
            extra={"stage": "commit", "path": str(path), "owner": owner.spec, "error": str(exc)},
        )
        return
    if completed.returncode != 0:
        LOGGER.warning(
            "failed to chown path",
            extra={
                "stage": "commit",
                "path": str(path),
                "owner": owner.spec,
                "error": (completed.stderr or "").strip() or f"exit code {completed.returncode}",
            },
        )


def ensure_ownership(path: Path, owner: Optional[Ownership]) -> None:
    """Apply ``owner`` to ``path`` unless it already matches."""

    if owner is None:
        return
    try:
        stat = path.stat()
    except OSError as exc:
        LOGGER.warning(
            "failed to read ownership",
            extra={"stage": "commit", "path": str(path), "error": str(exc)},
        )
        return
    if stat.st_uid != owner.uid or stat.st_gid != owner.gid:
        _apply_ownership(path, owner)


def ensure_ownership_for_tree(root: Path, leaf: Path, owner: Optional[Ownership]) -> None:
    """Apply ``owner`` to ``leaf`` and every ancestor up to and including ``root``.

    Nothing happens when ``leaf`` does not live under ``root``.
    """

    if owner is None:
        return
    try:
        relative = leaf.relative_to(root)
    except ValueError:
        return
    current = root
    ensure_ownership(current, owner)
    for part in relative.parts:
        current = current / part
        ensure_ownership(current, owner)


__all__ = [
    "Ownership",
    "is_running_as_root",
    "infer_store_ownership",
    "warn_if_store_requires_root",
    "ensure_ownership",
    "ensure_ownership_for_tree",
]
