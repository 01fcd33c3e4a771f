"""Ask the local model server whether a downloaded model is listed."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from .errors import PresenceCheckFailed
from .net import bearer_headers, get_checked
from .settings import LOGGER_NAME

LOGGER = logging.getLogger(LOGGER_NAME)


def tags_url(server_url: str) -> str:
    return f"{server_url.rstrip('/')}/api/tags"


def is_model_present(
    client: httpx.Client,
    server_url: str,
    names: Sequence[str],
    *,
    api_key: Optional[str] = None,
) -> bool:
    """Return whether any model listed by ``<server_url>/api/tags`` matches one of ``names``.

    Raises:
        NetworkError: On transport failure or a non-2xx status.
        PresenceCheckFailed: If the response body is not a ``{"models": [...]}`` document.
    """

    url = tags_url(server_url)
    LOGGER.debug(
        "checking model server for model",
        extra={"stage": "presence", "url": url, "names": ", ".join(names)},
    )
    response = get_checked(client, url, "query model server tags", headers=bearer_headers(api_key))
    try:
        payload = response.json()
    except ValueError as exc:
        raise PresenceCheckFailed(f"Failed to parse model server tags response: {exc}") from exc

    models = payload.get("models") if isinstance(payload, dict) else None
    if not isinstance(models, list):
        LOGGER.error("failed to parse model server tags response", extra={"stage": "presence"})
        raise PresenceCheckFailed("Failed to parse model server tags response")

    wanted = set(names)
    for entry in models:
        name = entry.get("name") if isinstance(entry, dict) else None
        if isinstance(name, str) and name in wanted:
            LOGGER.debug("model found on server", extra={"stage": "presence", "model_name": name})
            return True
    LOGGER.debug("model not found on server", extra={"stage": "presence"})
    return False


__all__ = ["is_model_present", "tags_url"]
