"""Tests for digest parsing and streaming verification."""

from __future__ import annotations

import hashlib

import pytest

from ModelVault.RegistryDownload.digest import (
    DigestVerifier,
    digest_to_filename,
    is_valid_digest,
    sha256_file,
    split_digest,
)

HEX = "a" * 64


def test_split_digest_returns_algorithm_and_hex() -> None:
    assert split_digest(f"sha256:{HEX}") == ("sha256", HEX)


@pytest.mark.parametrize(
    "value",
    [
        HEX,
        f"md5:{HEX}",
        f"sha256:{HEX[:-1]}",
        f"sha256:{HEX.upper()}",
        f"sha256-{HEX}",
    ],
)
def test_split_digest_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValueError):
        split_digest(value)
    assert not is_valid_digest(value)


def test_digest_to_filename_replaces_colon() -> None:
    assert digest_to_filename(f"sha256:{HEX}") == f"sha256-{HEX}"


def test_verifier_matches_hashlib_across_chunk_boundaries() -> None:
    payload = bytes(range(256)) * 1000
    verifier = DigestVerifier()
    for offset in range(0, len(payload), 8192):
        verifier.feed(payload[offset : offset + 8192])

    assert verifier.finalize() == hashlib.sha256(payload).hexdigest()
    assert verifier.bytes_fed == len(payload)


def test_verifier_of_empty_stream() -> None:
    assert DigestVerifier().finalize() == hashlib.sha256(b"").hexdigest()


def test_verifier_rejects_unsupported_algorithm() -> None:
    with pytest.raises(ValueError):
        DigestVerifier("md5")


def test_sha256_file(tmp_path) -> None:
    path = tmp_path / "blob.bin"
    path.write_bytes(b"model weights")
    assert sha256_file(path) == hashlib.sha256(b"model weights").hexdigest()
