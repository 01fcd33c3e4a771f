# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.fetcher",
#   "purpose": "Stream remote blobs into staging while hashing and honouring cancellation",
#   "sections": [
#     {"id": "helpers", "name": "Stream helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "fetcher", "name": "BlobFetcher", "anchor": "FET", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Blob fetcher.

Blobs are streamed in 8 KiB chunks.  Each chunk is fed to a
:class:`~ModelVault.RegistryDownload.digest.DigestVerifier`, appended to a
staging file and reported to the progress sink.  The cancellation
coordinator is consulted before the request is issued and after every chunk,
never by interrupting a read that is already in flight.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import httpx

from .cancellation import CancellationCoordinator
from .digest import DigestVerifier
from .errors import NetworkError, UserCancelled
from .net import ensure_success
from .progress import NullProgressSink, ProgressSink
from .settings import LOGGER_NAME
from .staging import StagedBlob, StagingArea

CHUNK_SIZE = 8 * 1024
PROGRESS_LOG_STEP = 0.25

# --- Stream helpers -------------------------------------------------------------


def _content_length(response: httpx.Response) -> Optional[int]:
    header = response.headers.get("Content-Length")
    if not header:
        return None
    try:
        return int(header)
    except (TypeError, ValueError):
        return None


def _log_stream_progress(
    logger: logging.Logger,
    named_digest: str,
    received: int,
    total: Optional[int],
    state: Dict[str, float],
) -> None:
    if not total:
        return
    fraction = received / total
    if fraction + 1e-9 < state["next"]:
        return
    logger.debug(
        "download progress",
        extra={
            "stage": "fetch",
            "digest": named_digest,
            "percent": round(min(fraction, 1.0) * 100, 1),
            "bytes_downloaded": received,
            "total_bytes": total,
        },
    )
    while state["next"] <= fraction:
        state["next"] += PROGRESS_LOG_STEP


# --- BlobFetcher ----------------------------------------------------------------


class BlobFetcher:
    """Download blobs for one session into its staging area.

    Attributes:
        client: HTTP client used for blob requests.
        staging: Staging area whose ledger tracks every temp file.
        coordinator: Cancellation coordinator consulted between chunks.
        progress: Sink receiving per-chunk byte counts.
    """

    def __init__(
        self,
        client: httpx.Client,
        staging: StagingArea,
        coordinator: CancellationCoordinator,
        *,
        progress: Optional[ProgressSink] = None,
        chunk_size: int = CHUNK_SIZE,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.staging = staging
        self.coordinator = coordinator
        self.progress: ProgressSink = progress or NullProgressSink(coordinator.state)
        self.chunk_size = chunk_size
        self.logger = logger or logging.getLogger(LOGGER_NAME)

    def download(self, url: str, named_digest: str) -> StagedBlob:
        """Stream ``url`` into a new staging file.

        Args:
            url: Blob location.
            named_digest: Digest declared by the manifest, used for messages.

        Returns:
            The staged blob with its computed hex digest.

        Raises:
            NetworkError: On transport failure or a non-2xx status.
            UserCancelled: When cancellation is confirmed before or during the transfer.
        """

        self.coordinator.checkpoint()

        path, handle = self.staging.open()
        verifier = DigestVerifier()
        started = False
        try:
            with handle:
                try:
                    with self.client.stream("GET", url) as response:
                        ensure_success(response, f"download BLOB {named_digest}")
                        total = _content_length(response)
                        # a prompt opened since the last checkpoint must be
                        # answered before the bar takes the terminal
                        self.coordinator.checkpoint()
                        self.progress.start(total, f"Downloading BLOB {named_digest}")
                        started = True
                        state = {"next": PROGRESS_LOG_STEP}
                        for chunk in response.iter_bytes(self.chunk_size):
                            self.coordinator.checkpoint(self.progress)
                            if not chunk:
                                continue
                            verifier.feed(chunk)
                            handle.write(chunk)
                            self.progress.advance(len(chunk))
                            _log_stream_progress(
                                self.logger, named_digest, verifier.bytes_fed, total, state
                            )
                except httpx.HTTPError as exc:
                    raise NetworkError(
                        f"Failed to download BLOB {named_digest}: {exc}", url=url
                    ) from exc
        except UserCancelled:
            if started:
                self.progress.abort()
            self.logger.warning(
                "download interrupted by user while downloading BLOB",
                extra={"stage": "fetch", "digest": named_digest, "path": str(path)},
            )
            raise
        except BaseException:
            if started:
                self.progress.abort()
            raise

        self.progress.finish()
        computed = verifier.finalize()
        self.logger.debug(
            "downloaded blob",
            extra={
                "stage": "fetch",
                "url": url,
                "path": str(path),
                "computed_digest": computed,
                "size": verifier.bytes_fed,
            },
        )
        return StagedBlob(
            path=path,
            named_digest=named_digest,
            computed_digest=computed,
            size=verifier.bytes_fed,
        )


__all__ = ["BlobFetcher", "CHUNK_SIZE"]
