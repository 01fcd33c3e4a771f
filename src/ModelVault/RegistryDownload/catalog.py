# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.catalog",
#   "purpose": "List Hugging Face models and quantisation tags usable by the model server",
#   "sections": [
#     {"id": "constants", "name": "Constants", "anchor": "CONST", "kind": "constants"},
#     {"id": "models", "name": "list_hf_models", "anchor": "MOD", "kind": "api"},
#     {"id": "tags", "name": "list_hf_model_tags", "anchor": "TAG", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Hugging Face catalog queries.

The public model API caps pagination at the first 999 results; requests
beyond that fail fast with :class:`~ModelVault.RegistryDownload.errors.CatalogLimitError`
instead of walking pages that the service will never return.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from .errors import CatalogLimitError, NetworkError, RegistryDownloadError
from .net import ensure_success, get_checked
from .registry import parse_hf_identifier
from .settings import LOGGER_NAME

LOGGER = logging.getLogger(LOGGER_NAME)

# --- Constants -------------------------------------------------------------------

HF_API_URL = "https://huggingface.co/api/models"
CATALOG_RESULT_CEILING = 999
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 25

# --- list_hf_models --------------------------------------------------------------


def models_api_url(page_size: int) -> str:
    return f"{HF_API_URL}?apps=ollama&gated=false&limit={page_size}&sort=trendingScore"


def _next_link(response: httpx.Response) -> Optional[str]:
    return response.links.get("next", {}).get("url")


def list_hf_models(
    client: httpx.Client,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[str]:
    """Return the model ids on ``page`` of the trending GGUF listing.

    Earlier pages are skipped with ``HEAD`` requests that only follow the
    ``Link: <...>; rel="next"`` header.  Results are sorted case-insensitively
    within the requested page.

    Raises:
        CatalogLimitError: If the page lies beyond the service's result ceiling.
        RegistryDownloadError: If the listing ends before ``page``.
        NetworkError: On transport failure or a non-2xx status.
    """

    if page < 1:
        raise ValueError("page must be at least 1")
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    page_size = min(page_size, MAX_PAGE_SIZE)

    if page_size * (page + 1) > CATALOG_RESULT_CEILING:
        overflow = (page + 1) * page_size - CATALOG_RESULT_CEILING
        LOGGER.warning(
            "catalog does not allow paging beyond the first 999 models",
            extra={"stage": "catalog", "page": page, "page_size": page_size},
        )
        raise CatalogLimitError(
            "Hugging Face currently does not allow obtaining information beyond the first "
            f"{CATALOG_RESULT_CEILING} models. Your requested page {page} with page size "
            f"{page_size} exceeds this limit by {overflow} model(s)."
        )

    next_url: Optional[str] = models_api_url(page_size)
    current_page = 1
    while current_page < page and next_url is not None:
        LOGGER.debug("checking pagination", extra={"stage": "catalog", "page": current_page})
        try:
            response = client.head(next_url)
        except httpx.HTTPError as exc:
            raise NetworkError(f"Failed to page model listing: {exc}", url=next_url) from exc
        next_url = _next_link(ensure_success(response, "page model listing"))
        current_page += 1

    if next_url is None:
        raise RegistryDownloadError(f"Requested page {page} is beyond available data")

    if current_page > 1:
        LOGGER.info("requesting page", extra={"stage": "catalog", "page": current_page, "url": next_url})
    response = get_checked(client, next_url, "list models")
    try:
        payload = response.json()
    except ValueError as exc:
        raise RegistryDownloadError(f"Failed to parse model listing: {exc}") from exc
    if not isinstance(payload, list):
        raise RegistryDownloadError("Failed to parse model listing: expected a JSON array")

    model_ids = [item["modelId"] for item in payload if isinstance(item, dict) and "modelId" in item]
    LOGGER.warning(
        "models are sorted in the context of the selected page only",
        extra={"stage": "catalog"},
    )
    return sorted(model_ids, key=str.lower)


# --- list_hf_model_tags ----------------------------------------------------------


def list_hf_model_tags(client: httpx.Client, model: str) -> List[str]:
    """Return ``<model>:<QUANT>`` tags derived from the repository's ``.gguf`` files.

    Raises:
        InvalidIdentifierError: If ``model`` is not ``user/repository``.
        RegistryDownloadError: If the repository holds no ``.gguf`` files.
        NetworkError: On transport failure or a non-2xx status.
    """

    user, repo, _ = parse_hf_identifier(model)
    repo_path = f"{user}/{repo}"
    url = f"{HF_API_URL}/{repo_path}?blobs=true"
    LOGGER.debug("fetching model tags", extra={"stage": "catalog", "model": repo_path})
    response = get_checked(client, url, "list model tags")
    try:
        payload = response.json()
    except ValueError as exc:
        raise RegistryDownloadError(f"Failed to parse model info: {exc}") from exc

    siblings = payload.get("siblings") if isinstance(payload, dict) else None
    if not isinstance(siblings, list):
        raise RegistryDownloadError("Failed to parse model info: missing 'siblings'")

    tags = set()
    for sibling in siblings:
        filename = sibling.get("rfilename") if isinstance(sibling, dict) else None
        if isinstance(filename, str) and filename.endswith(".gguf"):
            quant = filename[: -len(".gguf")].rsplit("-", 1)[-1]
            tags.add(f"{repo_path}:{quant}")

    if not tags:
        raise RegistryDownloadError(
            f"The model {repo_path} has no support for Ollama (no .gguf files found)"
        )
    return sorted(tags, key=str.lower)


__all__ = [
    "CATALOG_RESULT_CEILING",
    "MAX_PAGE_SIZE",
    "list_hf_models",
    "list_hf_model_tags",
    "models_api_url",
]
