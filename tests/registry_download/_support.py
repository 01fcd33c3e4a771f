"""Test doubles shared by the registry_download suite."""

from __future__ import annotations

import hashlib
import json
from typing import Dict, List, Optional, Tuple

import httpx

from ModelVault.RegistryDownload.cancellation import SignalKind

REGISTRY_BASE = "https://registry.example.test/v2/library/"
SERVER_URL = "http://models.example.test:11434/"


def blob(content: bytes) -> Tuple[str, bytes]:
    """Return ``(digest, content)`` for ``content``."""

    return f"sha256:{hashlib.sha256(content).hexdigest()}", content


def manifest_for(config: Tuple[str, bytes], layers: List[Tuple[str, bytes]]) -> str:
    def entry(item: Tuple[str, bytes], media_type: str) -> Dict[str, object]:
        return {"mediaType": media_type, "size": len(item[1]), "digest": item[0]}

    return json.dumps(
        {
            "schemaVersion": 2,
            "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
            "config": entry(config, "application/vnd.docker.container.image.v1+json"),
            "layers": [entry(layer, "application/vnd.ollama.image.model") for layer in layers],
        }
    )


class FakeRegistry:
    """MockTransport handler serving manifests, blobs and the model server tag list."""

    def __init__(self) -> None:
        self.routes: Dict[str, Tuple[int, bytes]] = {}
        self.requests: List[httpx.Request] = []
        self.server_models: Optional[List[str]] = []

    def add(self, url: str, content: bytes, status: int = 200) -> None:
        self.routes[url] = (status, content)

    def add_library_model(
        self,
        model: str,
        tag: str,
        manifest: str,
        blobs: List[Tuple[str, bytes]],
    ) -> None:
        self.add(f"{REGISTRY_BASE}{model}/manifests/{tag}", manifest.encode("utf-8"))
        for digest, content in blobs:
            self.add(f"{REGISTRY_BASE}{model}/blobs/{digest.replace(':', '-')}", content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == f"{SERVER_URL}api/tags":
            if self.server_models is None:
                return httpx.Response(500, json={"error": "down"})
            return httpx.Response(200, json={"models": [{"name": n} for n in self.server_models]})
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404, text="not found")
        status, content = route
        return httpx.Response(status, content=content)

    def urls(self) -> List[str]:
        return [str(request.url) for request in self.requests]


class PromptRecorder:
    """Scripted confirmation prompt."""

    def __init__(self, answers: Optional[List[bool]] = None) -> None:
        self.answers = list(answers or [])
        self.asked: List[SignalKind] = []

    def __call__(self, kind: SignalKind) -> bool:
        self.asked.append(kind)
        return self.answers.pop(0) if self.answers else False

