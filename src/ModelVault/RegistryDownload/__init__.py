# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload",
#   "purpose": "Package initialization for ModelVault.RegistryDownload",
#   "sections": [
#     {"id": "getattr", "name": "__getattr__", "anchor": "function-getattr", "kind": "function"},
#     {"id": "dir", "name": "__dir__", "anchor": "function-dir", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Public API for the ModelVault registry downloader.

Pulls a manifest and its content-addressed blobs from a remote registry,
verifies every blob against its declared digest, commits verified content
into a local model store and rolls back all partial effects on failure or
confirmed user cancellation.
"""

from __future__ import annotations

from importlib import import_module
from typing import Any, Dict, Tuple

_EXPORTS: Dict[str, Tuple[str, str]] = {
    "__version__": (".net", "PACKAGE_VERSION"),
    "AppSettings": (".settings", "AppSettings"),
    "get_default_settings": (".settings", "get_default_settings"),
    "CancellationCoordinator": (".cancellation", "CancellationCoordinator"),
    "CancellationState": (".cancellation", "CancellationState"),
    "DownloadSession": (".session", "DownloadSession"),
    "PullResult": (".session", "PullResult"),
    "LibraryRegistry": (".registry", "LibraryRegistry"),
    "HuggingFaceRegistry": (".registry", "HuggingFaceRegistry"),
    "build_http_client": (".net", "build_http_client"),
    "setup_logging": (".logging_config", "setup_logging"),
    "RegistryDownloadError": (".errors", "RegistryDownloadError"),
    "NetworkError": (".errors", "NetworkError"),
    "ManifestParseError": (".errors", "ManifestParseError"),
    "DigestMismatchError": (".errors", "DigestMismatchError"),
    "PresenceCheckFailed": (".errors", "PresenceCheckFailed"),
    "UserCancelled": (".errors", "UserCancelled"),
    "exit_code_for": (".errors", "exit_code_for"),
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import exports so importing the package stays cheap."""

    target = _EXPORTS.get(name)
    if target is None:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")
    module = import_module(target[0], __name__)
    value = getattr(module, target[1])
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    """Expose lazily-populated attributes in ``dir()`` results."""

    return sorted(set(globals()) | set(__all__))
