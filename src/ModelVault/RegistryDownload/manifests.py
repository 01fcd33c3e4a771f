"""Manifest models for registry image manifests.

Documents follow the distribution image-manifest v2 shape used by model
registries: a config entry plus an ordered list of layer entries, each
addressed by a ``sha256:<hex>`` digest.  The raw manifest text is kept
alongside the parsed model because the store persists it byte-for-byte.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .digest import is_valid_digest
from .errors import ManifestParseError

__all__ = [
    "ManifestEntry",
    "Manifest",
    "ParsedManifest",
    "parse_manifest",
]


class ManifestEntry(BaseModel):
    """Config or layer descriptor referencing one blob."""

    media_type: str = Field(alias="mediaType")
    size: int = Field(ge=0)
    digest: str
    urls: Optional[List[str]] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("digest")
    @classmethod
    def validate_digest(cls, value: str) -> str:
        if not is_valid_digest(value):
            raise ValueError(f"digest must look like 'sha256:<64 hex characters>', got {value!r}")
        return value


class Manifest(BaseModel):
    """Image manifest naming a config blob and ordered layers."""

    schema_version: int = Field(alias="schemaVersion", ge=0)
    media_type: str = Field(alias="mediaType")
    config: ManifestEntry
    layers: List[ManifestEntry] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("layers", mode="before")
    @classmethod
    def default_layers(cls, value: object) -> object:
        return [] if value is None else value

    def blobs(self) -> Iterator[ManifestEntry]:
        """Yield the config entry followed by the layers in declared order."""

        yield self.config
        yield from self.layers

    @property
    def total_size(self) -> int:
        return sum(entry.size for entry in self.blobs())


@dataclass(frozen=True)
class ParsedManifest:
    """Validated manifest together with the exact text it was parsed from."""

    manifest: Manifest
    raw: Union[str, bytes]


def parse_manifest(raw: Union[str, bytes]) -> ParsedManifest:
    """Parse and validate manifest text.

    Raises:
        ManifestParseError: If ``raw`` is not JSON or does not describe a valid manifest.
    """

    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ManifestParseError(f"Failed to parse manifest: {exc}") from exc
    if not isinstance(payload, dict):
        raise ManifestParseError("Failed to parse manifest: top-level value is not an object")
    try:
        manifest = Manifest.model_validate(payload)
    except ValidationError as exc:
        raise ManifestParseError(f"Failed to parse manifest: {exc}") from exc
    return ParsedManifest(manifest=manifest, raw=raw)
