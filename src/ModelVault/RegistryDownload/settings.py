# === NAVMAP v1 ===
# {
#   "module": "ModelVault.RegistryDownload.settings",
#   "purpose": "Define configuration models and environment overrides for registry downloads",
#   "sections": [
#     {"id": "loggingconfiguration", "name": "LoggingConfiguration", "anchor": "class-loggingconfiguration", "kind": "class"},
#     {"id": "librarysettings", "name": "LibrarySettings", "anchor": "class-librarysettings", "kind": "class"},
#     {"id": "serversettings", "name": "ServerSettings", "anchor": "class-serversettings", "kind": "class"},
#     {"id": "ownershipoverride", "name": "OwnershipOverride", "anchor": "class-ownershipoverride", "kind": "class"},
#     {"id": "appsettings", "name": "AppSettings", "anchor": "class-appsettings", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "get-default-settings", "name": "get_default_settings", "anchor": "function-get-default-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models for the registry downloader.

The download core consumes a typed :class:`AppSettings` object instead of
reading the environment directly.  Defaults mirror the upstream registry
client (``~/.ollama/models`` store, public library registry, local model
server), and ``MODELVAULT_*`` environment variables override individual
fields through :class:`EnvironmentOverrides`.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import UserConfigError

__all__ = [
    "LoggingConfiguration",
    "LibrarySettings",
    "ServerSettings",
    "OwnershipOverride",
    "AppSettings",
    "EnvironmentOverrides",
    "get_default_settings",
    "invalidate_default_settings_cache",
    "validate_http_url",
]

LOGGER_NAME = "ModelVault.RegistryDownload"


def validate_http_url(value: str) -> str:
    """Return ``value`` when it parses as an http(s) URL with a host."""

    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError(f"URL scheme should either be http or https, got: {parsed.scheme!r}")
    if not parsed.netloc:
        raise ValueError(f"URL {value!r} does not include a host")
    return value


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for registry downloads."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    max_log_size_mb: int = Field(default=20, gt=0, description="Maximum size of rotated log files")
    retention_days: int = Field(default=14, ge=1, description="Retention period for log files")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSON log files")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class LibrarySettings(BaseModel):
    """Remote registry endpoints and the local store location."""

    models_path: str = Field(default="~/.ollama/models", description="Root of the local model store")
    registry_base_url: str = Field(default="https://registry.ollama.ai/v2/library/")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")
    timeout: float = Field(default=120.0, gt=0.0, le=3600.0, description="Per-request timeout in seconds")

    @field_validator("registry_base_url")
    @classmethod
    def validate_urls(cls, value: str) -> str:
        return validate_http_url(value)

    model_config = {"validate_assignment": True, "extra": "ignore"}


class ServerSettings(BaseModel):
    """Local model server used for the post-download presence check."""

    url: str = Field(default="http://localhost:11434/")
    api_key: Optional[str] = Field(default=None)
    remove_downloaded_on_error: bool = Field(
        default=True,
        description="Roll back downloaded files when network or presence checks fail",
    )
    check_model_presence: bool = Field(
        default=True,
        description="Ask the model server whether the model is listed after download",
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        return validate_http_url(value)

    model_config = {"validate_assignment": True, "extra": "ignore"}


class OwnershipOverride(BaseModel):
    """Explicit ``uid``/``gid`` applied to created paths instead of the inferred owner."""

    uid: Optional[int] = Field(default=None, ge=0)
    gid: Optional[int] = Field(default=None, ge=0)

    def as_pair(self) -> Optional[tuple[int, int]]:
        """Return ``(uid, gid)`` when both halves are configured."""

        if self.uid is None or self.gid is None:
            return None
        return self.uid, self.gid

    model_config = {"validate_assignment": True}


class AppSettings(BaseModel):
    """Validated settings consumed by download sessions."""

    library: LibrarySettings = Field(default_factory=LibrarySettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    ownership: OwnershipOverride = Field(default_factory=OwnershipOverride)
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    model_config = {"validate_assignment": True}

    @property
    def store_root(self) -> Path:
        """Return the expanded store root path."""

        return Path(self.library.models_path).expanduser()

    @classmethod
    def from_defaults(cls) -> "AppSettings":
        """Build settings from defaults plus ``MODELVAULT_*`` environment overrides."""

        settings = cls()
        _apply_env_overrides(settings)
        return settings


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    models_path: Optional[str] = Field(default=None, alias="MODELVAULT_MODELS_PATH")
    registry_base_url: Optional[str] = Field(default=None, alias="MODELVAULT_REGISTRY_BASE_URL")
    server_url: Optional[str] = Field(default=None, alias="MODELVAULT_SERVER_URL")
    timeout: Optional[float] = Field(default=None, alias="MODELVAULT_TIMEOUT")
    verify_ssl: Optional[bool] = Field(default=None, alias="MODELVAULT_VERIFY_SSL")
    check_model_presence: Optional[bool] = Field(
        default=None, alias="MODELVAULT_CHECK_MODEL_PRESENCE"
    )
    remove_downloaded_on_error: Optional[bool] = Field(
        default=None, alias="MODELVAULT_REMOVE_DOWNLOADED_ON_ERROR"
    )
    log_level: Optional[str] = Field(default=None, alias="MODELVAULT_LOG_LEVEL")
    owner_uid: Optional[int] = Field(default=None, alias="MODELVAULT_OWNER_UID")
    owner_gid: Optional[int] = Field(default=None, alias="MODELVAULT_OWNER_GID")

    model_config = SettingsConfigDict(
        env_prefix="MODELVAULT_", case_sensitive=False, extra="ignore"
    )


_OVERRIDE_TARGETS = {
    "models_path": ("library", "models_path"),
    "registry_base_url": ("library", "registry_base_url"),
    "server_url": ("server", "url"),
    "timeout": ("library", "timeout"),
    "verify_ssl": ("library", "verify_ssl"),
    "check_model_presence": ("server", "check_model_presence"),
    "remove_downloaded_on_error": ("server", "remove_downloaded_on_error"),
    "log_level": ("logging", "level"),
    "owner_uid": ("ownership", "uid"),
    "owner_gid": ("ownership", "gid"),
}


def _apply_env_overrides(settings: AppSettings) -> None:
    """Mutate ``settings`` in-place using values from :class:`EnvironmentOverrides`."""

    logger = logging.getLogger(LOGGER_NAME)
    try:
        env = EnvironmentOverrides()
    except PydanticValidationError as exc:
        raise UserConfigError(f"Invalid MODELVAULT_* environment override: {exc}") from exc

    for key, value in env.model_dump(exclude_none=True).items():
        section_name, field_name = _OVERRIDE_TARGETS[key]
        section = getattr(settings, section_name)
        try:
            setattr(section, field_name, value)
        except PydanticValidationError as exc:
            raise UserConfigError(f"Invalid value for {key}: {value!r}") from exc
        logger.info("Config overridden: %s=%s", key, value, extra={"stage": "config"})


_DEFAULT_SETTINGS_LOCK = threading.Lock()
_DEFAULT_SETTINGS_CACHE: Optional[AppSettings] = None


def get_default_settings(*, copy: bool = False) -> AppSettings:
    """Return memoised :class:`AppSettings` constructed from defaults and environment."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        if _DEFAULT_SETTINGS_CACHE is None:
            _DEFAULT_SETTINGS_CACHE = AppSettings.from_defaults()
        cached = _DEFAULT_SETTINGS_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_settings_cache() -> None:
    """Invalidate the cached default settings."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        _DEFAULT_SETTINGS_CACHE = None
