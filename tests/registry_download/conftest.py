"""Shared fixtures for the registry_download test suite."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, List

import httpx
import pytest

from ModelVault.RegistryDownload.cancellation import (
    CancellationCoordinator,
    CancellationState,
    QueueSignalSource,
)
from ModelVault.RegistryDownload.settings import (
    AppSettings,
    LibrarySettings,
    ServerSettings,
    invalidate_default_settings_cache,
)
from tests.registry_download._support import (
    REGISTRY_BASE,
    SERVER_URL,
    FakeRegistry,
    PromptRecorder,
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep MODELVAULT_* variables from the host out of every test."""

    for key in list(os.environ):
        if key.startswith("MODELVAULT_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("MODELVAULT_LOG_DIR", str(tmp_path / "logs"))
    invalidate_default_settings_cache()
    yield
    invalidate_default_settings_cache()


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    root = tmp_path / "models"
    (root / "blobs").mkdir(parents=True)
    return root


@pytest.fixture
def settings(store_root: Path) -> AppSettings:
    return AppSettings(
        library=LibrarySettings(models_path=str(store_root), registry_base_url=REGISTRY_BASE),
        server=ServerSettings(url=SERVER_URL, check_model_presence=False),
    )


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def client(fake_registry: FakeRegistry):
    with httpx.Client(transport=httpx.MockTransport(fake_registry), follow_redirects=True) as http:
        yield http


@pytest.fixture
def prompt() -> PromptRecorder:
    return PromptRecorder()


@pytest.fixture
def exit_codes() -> List[int]:
    return []


@pytest.fixture
def make_coordinator(
    prompt: PromptRecorder, exit_codes: List[int]
) -> Callable[..., CancellationCoordinator]:
    def factory(**overrides) -> CancellationCoordinator:
        options = dict(
            state=CancellationState(),
            signal_source=QueueSignalSource(register_os_handlers=False),
            prompt=prompt,
            exit_func=exit_codes.append,
            cleanup_wait_limit=0.05,
            poll_interval=0.01,
        )
        options.update(overrides)
        coordinator = CancellationCoordinator(**options)
        coordinator.state.set_confirmation_required(True)
        return coordinator

    return factory


@pytest.fixture
def coordinator(make_coordinator) -> CancellationCoordinator:
    return make_coordinator()
