# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.digest",
#   "purpose": "Streaming digest verification and digest string helpers",
#   "sections": [
#     {"id": "parsing", "name": "Digest Parsing", "anchor": "PAR", "kind": "helpers"},
#     {"id": "verifier", "name": "DigestVerifier", "anchor": "VER", "kind": "api"},
#     {"id": "files", "name": "File Hashing", "anchor": "FIL", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Digest parsing and streaming verification.

Blobs are addressed by ``"<algorithm>:<hex>"`` digests.  The downloader feeds
every received chunk into a :class:`DigestVerifier` so that multi-gigabyte
layers are hashed without ever being held in memory, and the commit engine
compares the result against the manifest-declared digest before a blob is
allowed under its digest-derived name.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Tuple

SUPPORTED_ALGORITHM = "sha256"
DIGEST_PATTERN = re.compile(r"^(?P<algorithm>sha256):(?P<hex>[0-9a-f]{64})$")
_FILE_CHUNK_SIZE = 1 << 20


def split_digest(digest: str) -> Tuple[str, str]:
    """Split ``digest`` into ``(algorithm, hex)``.

    Raises:
        ValueError: If ``digest`` is not a well-formed sha256 digest string.
    """

    match = DIGEST_PATTERN.match(digest)
    if not match:
        raise ValueError(f"Malformed digest {digest!r}; expected 'sha256:<64 hex characters>'")
    return match.group("algorithm"), match.group("hex")


def is_valid_digest(digest: str) -> bool:
    """Return ``True`` when ``digest`` matches ``sha256:<hex>``."""

    return DIGEST_PATTERN.match(digest) is not None


def digest_to_filename(digest: str) -> str:
    """Return the store filename for ``digest`` (``:`` replaced by ``-``)."""

    return digest.replace(":", "-")


class DigestVerifier:
    """Running hash over a stream of byte chunks.

    Examples:
        >>> verifier = DigestVerifier()
        >>> verifier.feed(b"hello ")
        >>> verifier.feed(b"world")
        >>> verifier.finalize()[:12]
        'b94d27b9934d'
    """

    def __init__(self, algorithm: str = SUPPORTED_ALGORITHM) -> None:
        if algorithm != SUPPORTED_ALGORITHM:
            raise ValueError(f"Unsupported digest algorithm {algorithm!r}")
        self.algorithm = algorithm
        self._hasher = hashlib.new(algorithm)
        self.bytes_fed = 0

    def feed(self, data: bytes) -> None:
        """Fold ``data`` into the running hash."""

        self._hasher.update(data)
        self.bytes_fed += len(data)

    def finalize(self) -> str:
        """Return the lower-case hexadecimal digest of everything fed so far."""

        return self._hasher.hexdigest()


def sha256_file(path: Path) -> str:
    """Compute the SHA-256 digest for the provided file.

    Args:
        path: Path to the file whose digest should be calculated.

    Returns:
        Hexadecimal SHA-256 checksum string.
    """
    verifier = DigestVerifier()
    with path.open("rb") as stream:
        for chunk in iter(lambda: stream.read(_FILE_CHUNK_SIZE), b""):
            verifier.feed(chunk)
    return verifier.finalize()


__all__ = [
    "SUPPORTED_ALGORITHM",
    "DIGEST_PATTERN",
    "DigestVerifier",
    "split_digest",
    "is_valid_digest",
    "digest_to_filename",
    "sha256_file",
]
