# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.net",
#   "purpose": "Build the HTTPX client shared by manifest, blob, presence and catalog requests",
#   "sections": [
#     {"id": "constants", "name": "Constants & globals", "anchor": "CONST", "kind": "constants"},
#     {"id": "helpers", "name": "Client construction helpers", "anchor": "HELP", "kind": "helpers"},
#     {"id": "api", "name": "Public API", "anchor": "API", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""HTTPX client construction for registry downloads."""

from __future__ import annotations

import logging
import platform
import ssl
import time
from importlib import metadata as importlib_metadata
from typing import Dict, Optional

import certifi
import httpx

from .errors import NetworkError
from .settings import LOGGER_NAME, AppSettings

LOGGER = logging.getLogger(LOGGER_NAME)

# --- Constants & globals -------------------------------------------------------

try:
    PACKAGE_VERSION = importlib_metadata.version("modelvault")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - local source tree
    PACKAGE_VERSION = "0.1.0"

USER_AGENT_TEMPLATE = "modelvault/{version} ({system}-{machine})"

# --- Client construction helpers ----------------------------------------------


def user_agent() -> str:
    return USER_AGENT_TEMPLATE.format(
        version=PACKAGE_VERSION,
        system=platform.system().lower() or "unknown",
        machine=platform.machine().lower() or "unknown",
    )


def _build_ssl_context() -> ssl.SSLContext:
    context = ssl.create_default_context()
    context.load_verify_locations(certifi.where())
    return context


def _request_hook(request: httpx.Request) -> None:
    request.extensions["modelvault_start"] = time.perf_counter()


def _response_hook(response: httpx.Response) -> None:
    start = response.request.extensions.get("modelvault_start")
    elapsed = time.perf_counter() - start if isinstance(start, float) else None
    LOGGER.debug(
        "http response",
        extra={
            "stage": "http",
            "method": response.request.method,
            "url": str(response.request.url),
            "status": response.status_code,
            "elapsed_sec": elapsed,
        },
    )


# --- Public API ----------------------------------------------------------------


def build_http_client(
    settings: AppSettings,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> httpx.Client:
    """Return an :class:`httpx.Client` configured from ``settings``.

    Every request shares one fixed timeout.  Redirects are followed because
    registries hand blob downloads off to CDN hosts.  ``transport`` lets tests
    plug in :class:`httpx.MockTransport`.
    """

    verify: object
    if settings.library.verify_ssl:
        verify = _build_ssl_context()
    else:
        LOGGER.warning("TLS certificate verification disabled", extra={"stage": "config"})
        verify = False

    headers: Dict[str, str] = {"User-Agent": user_agent()}
    return httpx.Client(
        transport=transport,
        timeout=httpx.Timeout(settings.library.timeout),
        verify=verify,  # type: ignore[arg-type]
        follow_redirects=True,
        trust_env=True,
        headers=headers,
        event_hooks={"request": [_request_hook], "response": [_response_hook]},
    )


def bearer_headers(api_key: Optional[str]) -> Dict[str, str]:
    """Return an ``Authorization`` header for ``api_key`` (empty when unset)."""

    if not api_key:
        return {}
    return {"Authorization": f"Bearer {api_key}"}


def ensure_success(response: httpx.Response, what: str) -> httpx.Response:
    """Raise :class:`NetworkError` unless ``response`` carries a 2xx status."""

    if not response.is_success:
        raise NetworkError(
            f"Failed to {what}: HTTP {response.status_code} from {response.request.url}",
            status_code=response.status_code,
            url=str(response.request.url),
        )
    return response


def get_checked(
    client: httpx.Client,
    url: str,
    what: str,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> httpx.Response:
    """GET ``url`` and return the response, wrapping every failure in :class:`NetworkError`."""

    try:
        response = client.get(url, headers=headers)
    except httpx.HTTPError as exc:
        raise NetworkError(f"Failed to {what}: {exc}", url=url) from exc
    return ensure_success(response, what)


__all__ = [
    "PACKAGE_VERSION",
    "build_http_client",
    "bearer_headers",
    "ensure_success",
    "get_checked",
    "user_agent",
]
