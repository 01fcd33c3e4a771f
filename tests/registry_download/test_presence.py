"""Tests for the model server presence check."""

from __future__ import annotations

import httpx
import pytest

from ModelVault.RegistryDownload.errors import NetworkError, PresenceCheckFailed
from ModelVault.RegistryDownload.presence import is_model_present, tags_url

SERVER = "http://models.example.test:11434"


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


def test_tags_url_normalises_trailing_slash() -> None:
    assert tags_url(SERVER + "/") == tags_url(SERVER) == f"{SERVER}/api/tags"


def test_model_found_by_any_candidate_name() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"models": [{"name": "hf.co/u/r:Q4_K_M"}]})

    with _client(handler) as client:
        assert is_model_present(client, SERVER, ["u/r:Q4_K_M", "hf.co/u/r:Q4_K_M"], api_key="k")

    assert seen[0].headers["Authorization"] == "Bearer k"


def test_model_absent() -> None:
    with _client(lambda request: httpx.Response(200, json={"models": []})) as client:
        assert not is_model_present(client, SERVER, ["demo:latest"])


def test_no_authorization_header_without_api_key() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"models": []})

    with _client(handler) as client:
        is_model_present(client, SERVER, ["demo:latest"])

    assert "Authorization" not in seen[0].headers


@pytest.mark.parametrize("body", [b"not json", b"[]", b'{"models": "nope"}', b"{}"])
def test_unexpected_body_is_presence_failure(body) -> None:
    with _client(lambda request: httpx.Response(200, content=body)) as client:
        with pytest.raises(PresenceCheckFailed):
            is_model_present(client, SERVER, ["demo:latest"])


def test_server_error_is_network_error() -> None:
    with _client(lambda request: httpx.Response(503)) as client:
        with pytest.raises(NetworkError) as excinfo:
            is_model_present(client, SERVER, ["demo:latest"])
    assert excinfo.value.status_code == 503
