# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.errors",
#   "purpose": "Define the exception hierarchy and exit-code mapping for registry downloads",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "session", "name": "Session Failures", "anchor": "SES", "kind": "api"},
#     {"id": "collaborator", "name": "Collaborator Errors", "anchor": "COL", "kind": "api"},
#     {"id": "exit-codes", "name": "Exit Codes", "anchor": "EXT", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across manifest retrieval, blob transfer, and commit.

A download session touches the network, the local content-addressed store,
and the terminal (for interrupt confirmation).  This module groups those
failure modes so the session orchestrator can decide which ones roll back
the ledger unconditionally (digest mismatch, parse errors, cancellation) and
which ones depend on the remove-on-error policy (network and presence-check
failures).  :func:`exit_code_for` turns any of them into a process exit code.
"""

from __future__ import annotations

import signal
from typing import Optional

__all__ = [
    "RegistryDownloadError",
    "NetworkError",
    "ManifestParseError",
    "DigestMismatchError",
    "PresenceCheckFailed",
    "UserCancelled",
    "StoreLayoutError",
    "InvalidIdentifierError",
    "UserConfigError",
    "CatalogLimitError",
    "EXIT_SUCCESS",
    "EXIT_INTERRUPTED",
    "EXIT_TERMINATED",
    "exit_code_for",
]

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NETWORK = 3
EXIT_PARSE = 4
EXIT_DIGEST = 5
EXIT_PRESENCE = 6
EXIT_STORE = 7
EXIT_INTERRUPTED = 128 + int(signal.SIGINT)
EXIT_TERMINATED = 128 + int(signal.SIGTERM)


class RegistryDownloadError(RuntimeError):
    """Base exception for manifest, blob, and store failures."""


class NetworkError(RegistryDownloadError):
    """Raised when a request fails in transport or returns a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ManifestParseError(RegistryDownloadError):
    """Raised when a manifest document is malformed or fails validation."""


class DigestMismatchError(RegistryDownloadError):
    """Raised when downloaded content does not hash to its declared digest."""

    def __init__(self, named_digest: str, expected: str, computed: str) -> None:
        super().__init__(f"Digest mismatch for {named_digest}")
        self.named_digest = named_digest
        self.expected = expected
        self.computed = computed


class PresenceCheckFailed(RegistryDownloadError):
    """Raised when the model server cannot confirm the downloaded model."""


class UserCancelled(RegistryDownloadError):
    """Raised when the user confirmed an interrupt or termination request."""

    def __init__(
        self,
        message: str = "Download interrupted by user",
        *,
        signum: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.signum = signum if signum is not None else int(signal.SIGINT)

    @property
    def exit_code(self) -> int:
        """Conventional shell exit code for the originating signal."""

        return 128 + self.signum


class StoreLayoutError(RegistryDownloadError):
    """Raised when the local store is missing required directories."""


class InvalidIdentifierError(RegistryDownloadError):
    """Raised when a model identifier does not have the expected shape."""


class UserConfigError(RuntimeError):
    """Raised when settings or environment overrides are invalid."""


class CatalogLimitError(RuntimeError):
    """Raised when a catalog page request exceeds the remote listing ceiling.

    This belongs to the catalog collaborator and deliberately sits outside
    :class:`RegistryDownloadError`.
    """


def exit_code_for(exc: Optional[BaseException]) -> int:
    """Map ``exc`` to a distinguishable process exit code.

    Args:
        exc: Failure raised by a session or collaborator, or ``None`` on success.

    Returns:
        ``0`` for success, ``130``/``143`` for user cancellation, and a
        kind-specific non-zero code otherwise.
    """

    if exc is None:
        return EXIT_SUCCESS
    if isinstance(exc, UserCancelled):
        return exc.exit_code
    if isinstance(exc, NetworkError):
        return EXIT_NETWORK
    if isinstance(exc, ManifestParseError):
        return EXIT_PARSE
    if isinstance(exc, DigestMismatchError):
        return EXIT_DIGEST
    if isinstance(exc, PresenceCheckFailed):
        return EXIT_PRESENCE
    if isinstance(exc, (StoreLayoutError, OSError)):
        return EXIT_STORE
    if isinstance(exc, (InvalidIdentifierError, UserConfigError)):
        return EXIT_USAGE
    return EXIT_FAILURE
