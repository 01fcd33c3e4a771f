# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.registry",
#   "purpose": "Resolve model identifiers into registry URLs, store paths and server names",
#   "sections": [
#     {"id": "identifiers", "name": "Identifier parsing", "anchor": "IDS", "kind": "helpers"},
#     {"id": "protocol", "name": "ModelRegistry", "anchor": "PRO", "kind": "api"},
#     {"id": "library", "name": "LibraryRegistry", "anchor": "LIB", "kind": "api"},
#     {"id": "huggingface", "name": "HuggingFaceRegistry", "anchor": "HFR", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Registry addressing for library and Hugging Face models."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol, Tuple
from urllib.parse import urlparse

from .errors import InvalidIdentifierError

DEFAULT_TAG = "latest"
DEFAULT_LIBRARY_HOST = "registry.ollama.ai"
HF_BASE_URL = "https://hf.co/v2/"
DEFAULT_HF_HOST = "hf.co"


def _host_of(url: str, fallback: str) -> str:
    return urlparse(url).netloc or fallback


def _split_tag(identifier: str) -> Tuple[str, str]:
    name, sep, tag = identifier.strip().partition(":")
    if not name:
        raise InvalidIdentifierError(f"Invalid model identifier {identifier!r}")
    if sep and (not tag or ":" in tag):
        raise InvalidIdentifierError(f"Invalid tag in model identifier {identifier!r}")
    return name, tag or DEFAULT_TAG


def parse_library_identifier(identifier: str) -> Tuple[str, str]:
    """Split ``model[:tag]`` into ``(model, tag)``, defaulting the tag to ``latest``.

    Examples:
        >>> parse_library_identifier("all-minilm:22m")
        ('all-minilm', '22m')
        >>> parse_library_identifier("llama3")
        ('llama3', 'latest')
    """

    model, tag = _split_tag(identifier)
    if "/" in model:
        raise InvalidIdentifierError(
            f"Library model identifier {identifier!r} must not contain a namespace"
        )
    return model, tag


def parse_hf_identifier(identifier: str) -> Tuple[str, str, str]:
    """Split ``user/repo[:quant]`` into ``(user, repo, quant)``."""

    repo_path, tag = _split_tag(identifier)
    parts = repo_path.split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidIdentifierError(
            "HuggingFace model identifier must be in format 'user/repository:quantization'"
        )
    return parts[0], parts[1], tag


class ModelRegistry(Protocol):
    """Addresses one model in one remote registry."""

    @property
    def display_name(self) -> str: ...

    @property
    def tag(self) -> str: ...

    def manifest_url(self) -> str: ...

    def blob_url(self, digest: str) -> str: ...

    def manifest_dir(self, store_root: Path) -> Path: ...

    def presence_names(self) -> List[str]: ...


@dataclass(frozen=True)
class LibraryRegistry:
    """Model from the public library registry, e.g. ``llama3:8b``."""

    model: str
    tag: str
    registry_base_url: str

    @classmethod
    def from_identifier(cls, identifier: str, registry_base_url: str) -> "LibraryRegistry":
        model, tag = parse_library_identifier(identifier)
        return cls(model=model, tag=tag, registry_base_url=registry_base_url)

    @property
    def host(self) -> str:
        return _host_of(self.registry_base_url, DEFAULT_LIBRARY_HOST)

    @property
    def display_name(self) -> str:
        return f"{self.model}:{self.tag}"

    def manifest_url(self) -> str:
        return f"{self.registry_base_url}{self.model}/manifests/{self.tag}"

    def blob_url(self, digest: str) -> str:
        return f"{self.registry_base_url}{self.model}/blobs/{digest.replace(':', '-')}"

    def manifest_dir(self, store_root: Path) -> Path:
        return store_root / "manifests" / self.host / "library" / self.model

    def presence_names(self) -> List[str]:
        name = self.display_name
        return [name, f"library/{name}", f"{self.host}/library/{name}"]


@dataclass(frozen=True)
class HuggingFaceRegistry:
    """GGUF model hosted on Hugging Face, e.g. ``unsloth/SmolLM2-135M-Instruct-GGUF:Q4_K_M``."""

    user: str
    repo: str
    tag: str
    base_url: str = HF_BASE_URL

    @classmethod
    def from_identifier(cls, identifier: str, base_url: str = HF_BASE_URL) -> "HuggingFaceRegistry":
        user, repo, tag = parse_hf_identifier(identifier)
        return cls(user=user, repo=repo, tag=tag, base_url=base_url)

    @property
    def host(self) -> str:
        return _host_of(self.base_url, DEFAULT_HF_HOST)

    @property
    def repo_path(self) -> str:
        return f"{self.user}/{self.repo}"

    @property
    def display_name(self) -> str:
        return f"{self.repo_path}:{self.tag}"

    def manifest_url(self) -> str:
        return f"{self.base_url}{self.repo_path}/manifests/{self.tag}"

    def blob_url(self, digest: str) -> str:
        return f"{self.base_url}{self.repo_path}/blobs/{digest}"

    def manifest_dir(self, store_root: Path) -> Path:
        return store_root / "manifests" / self.host / self.user / self.repo

    def presence_names(self) -> List[str]:
        name = self.display_name
        return [f"{self.host}/{name}", f"huggingface.co/{name}", name]


__all__ = [
    "DEFAULT_TAG",
    "HF_BASE_URL",
    "ModelRegistry",
    "LibraryRegistry",
    "HuggingFaceRegistry",
    "parse_library_identifier",
    "parse_hf_identifier",
]
