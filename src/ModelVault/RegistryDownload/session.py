# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.session",
#   "purpose": "Orchestrate one model pull as a transaction over fetch, verify and commit",
#   "sections": [
#     {"id": "result", "name": "PullResult", "anchor": "RES", "kind": "api"},
#     {"id": "session", "name": "DownloadSession", "anchor": "SES", "kind": "api"},
#     {"id": "policy", "name": "Failure policy", "anchor": "POL", "kind": "helpers"}
#   ]
# }
# === /NAVMAP ===

"""Download session orchestration.

One session pulls one model identifier::

    checkpoint -> fetch manifest -> parse
      -> for config, then each layer in declared order:
           fetch + verify (staging) -> commit blob -> checkpoint
      -> save manifest -> optional presence check -> clear ledger

The session owns its rollback ledger, staging area and commit engine for
its whole lifetime.  Any failure unwinds through the ledger according to
the remove-on-error policy: parse errors, digest mismatches, cancellation
and store errors always roll back; network and presence-check failures
roll back only when ``remove_downloaded_on_error`` is enabled.  No step is
retried here; re-running a session converges on the same store state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import httpx

from .cancellation import CancellationCoordinator
from .commit import CommitEngine
from .errors import NetworkError, PresenceCheckFailed
from .fetcher import BlobFetcher
from .logging_config import generate_correlation_id
from .manifests import ParsedManifest, parse_manifest
from .net import get_checked
from .ownership import Ownership, infer_store_ownership
from .presence import is_model_present
from .progress import NullProgressSink, ProgressSink
from .registry import ModelRegistry
from .rollback import RollbackLedger
from .settings import LOGGER_NAME, AppSettings
from .staging import StagingArea

_POLICY_GOVERNED_ERRORS = (NetworkError, PresenceCheckFailed)


@dataclass
class PullResult:
    """Outcome of a successful pull.

    Attributes:
        model: Display name of the pulled model.
        manifest_path: Committed manifest file.
        blob_paths: Committed blob files in manifest order (config first).
        presence_confirmed: ``True`` when the server listed the model,
            ``None`` when the check was disabled.
    """

    model: str
    manifest_path: Path
    blob_paths: List[Path] = field(default_factory=list)
    presence_confirmed: Optional[bool] = None


class DownloadSession:
    """Transactional pull of one model into the local store."""

    def __init__(
        self,
        registry: ModelRegistry,
        settings: AppSettings,
        client: httpx.Client,
        coordinator: CancellationCoordinator,
        *,
        progress: Optional[ProgressSink] = None,
        staging_dir: Optional[Path] = None,
        owner: Optional[Ownership] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.registry = registry
        self.settings = settings
        self.client = client
        self.coordinator = coordinator
        self.logger = logger or logging.getLogger(LOGGER_NAME)
        self.correlation_id = generate_correlation_id()
        self.store_root = settings.store_root
        self.owner = owner if owner is not None else infer_store_ownership(
            self.store_root, settings.ownership
        )
        self.ledger = RollbackLedger(self.logger)
        self.staging = StagingArea(self.ledger, staging_dir, logger=self.logger)
        self.commit = CommitEngine(self.store_root, self.ledger, owner=self.owner, logger=self.logger)
        self.fetcher = BlobFetcher(
            client,
            self.staging,
            coordinator,
            progress=progress or NullProgressSink(coordinator.state),
            logger=self.logger,
        )

    def _extra(self, **fields: object) -> dict:
        payload = {"correlation_id": self.correlation_id, "model": self.registry.display_name}
        payload.update(fields)
        return payload

    # --- steps ----------------------------------------------------------------

    def fetch_manifest(self) -> ParsedManifest:
        """Download and validate the manifest for the session's model."""

        url = self.registry.manifest_url()
        self.logger.info("downloading manifest", extra=self._extra(stage="fetch", url=url))
        response = get_checked(self.client, url, "download manifest")
        self.logger.info("validating manifest", extra=self._extra(stage="verify"))
        return parse_manifest(response.content)

    def _check_presence(self) -> bool:
        names = self.registry.presence_names()
        self.logger.info(
            "verifying model is present on model server",
            extra=self._extra(stage="presence", server=self.settings.server.url),
        )
        present = is_model_present(
            self.client,
            self.settings.server.url,
            names,
            api_key=self.settings.server.api_key,
        )
        if not present:
            raise PresenceCheckFailed(
                f"Model {self.registry.display_name} not found in model server after download"
            )
        self.logger.info("model verified on model server", extra=self._extra(stage="presence"))
        return True

    def _run(self) -> PullResult:
        self.coordinator.checkpoint()
        parsed = self.fetch_manifest()
        manifest = parsed.manifest
        self.logger.info(
            "manifest validated",
            extra=self._extra(
                stage="verify",
                blob_count=1 + len(manifest.layers),
                total_size=manifest.total_size,
            ),
        )
        self.coordinator.checkpoint()

        blob_paths: List[Path] = []
        for entry in manifest.blobs():
            self.logger.info(
                "downloading blob",
                extra=self._extra(
                    stage="fetch",
                    media_type=entry.media_type,
                    digest=entry.digest,
                    size=entry.size,
                ),
            )
            staged = self.fetcher.download(self.registry.blob_url(entry.digest), entry.digest)
            self.coordinator.checkpoint()
            blob_paths.append(self.commit.save_blob(staged, entry.digest))
            self.staging.discard(staged.path)
            self.coordinator.checkpoint()

        manifest_path = self.commit.save_manifest(
            parsed.raw,
            self.registry.manifest_dir(self.store_root),
            self.registry.tag,
        )
        self.coordinator.checkpoint()

        presence: Optional[bool] = None
        if self.settings.server.check_model_presence:
            presence = self._check_presence()
            self.coordinator.checkpoint()
        else:
            self.logger.debug("model presence check disabled", extra=self._extra(stage="presence"))

        return PullResult(
            model=self.registry.display_name,
            manifest_path=manifest_path,
            blob_paths=blob_paths,
            presence_confirmed=presence,
        )

    # --- transaction ------------------------------------------------------------

    def pull(self) -> PullResult:
        """Run the session; on failure unwind according to the remove-on-error policy.

        Raises:
            RegistryDownloadError: Any failure from the steps above, after cleanup.
            OSError: Store write failures, after rollback.
        """

        try:
            result = self._run()
        except BaseException as exc:
            self._handle_failure(exc)
            raise
        self.ledger.clear()
        self.logger.info(
            "model successfully downloaded",
            extra=self._extra(stage="commit", manifest=str(result.manifest_path)),
        )
        return result

    def _handle_failure(self, exc: BaseException) -> None:
        self.logger.error(
            "download failed",
            extra=self._extra(stage="rollback", error=str(exc), error_type=type(exc).__name__),
        )
        keep_artifacts = not self.settings.server.remove_downloaded_on_error
        if keep_artifacts and isinstance(exc, _POLICY_GOVERNED_ERRORS):
            self.staging.cleanup()
            self.ledger.clear()
            self.logger.warning(
                "keeping downloaded files because remove-on-error is disabled",
                extra=self._extra(stage="rollback"),
            )
            return
        removed = self.ledger.rollback()
        self.logger.info(
            "rolled back session",
            extra=self._extra(stage="rollback", removed=len(removed)),
        )


__all__ = ["DownloadSession", "PullResult"]
