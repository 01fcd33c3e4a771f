# === NAVMAP v1 ===
# {
#   "module": "tests.registry_download.test_cli",
#   "purpose": "Typer CLI tests using CliRunner and an in-memory registry.",
#   "sections": [
#     {"id": "fixtures", "name": "Fixtures", "anchor": "FIX", "kind": "fixtures"},
#     {"id": "tests", "name": "Test Cases", "anchor": "TST", "kind": "tests"}
#   ]
# }
# === /NAVMAP ===

"""Typer CLI tests using CliRunner and an in-memory registry."""

from __future__ import annotations

import json
import logging

import httpx
import pytest
from typer.testing import CliRunner

from ModelVault.RegistryDownload import cli
from ModelVault.RegistryDownload.cancellation import SignalKind
from ModelVault.RegistryDownload.net import PACKAGE_VERSION
from ModelVault.RegistryDownload.settings import LOGGER_NAME
from tests.registry_download._support import REGISTRY_BASE, blob, manifest_for

CONFIG = blob(b'{"model_format":"gguf"}')
LAYER = blob(b"weights" * 100)

# --- Fixtures ---


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _drop_cli_log_handlers():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_modelvault_managed", False):
            logger.removeHandler(handler)
            handler.close()


@pytest.fixture
def cli_env(monkeypatch, store_root, fake_registry, make_coordinator):
    monkeypatch.setenv("MODELVAULT_MODELS_PATH", str(store_root))
    monkeypatch.setenv("MODELVAULT_REGISTRY_BASE_URL", REGISTRY_BASE)
    monkeypatch.setenv("MODELVAULT_CHECK_MODEL_PRESENCE", "false")
    coordinators = []

    def build_coordinator():
        coordinator = make_coordinator()
        coordinators.append(coordinator)
        return coordinator

    monkeypatch.setattr(
        cli,
        "_build_client",
        lambda settings: httpx.Client(transport=httpx.MockTransport(fake_registry)),
    )
    monkeypatch.setattr(cli, "_build_coordinator", build_coordinator)
    return coordinators


# --- Test Cases ---


def test_version(runner) -> None:
    result = runner.invoke(cli.app, ["version"])

    assert result.exit_code == 0
    assert result.output.strip() == f"modelvault {PACKAGE_VERSION}"


def test_show_config_reflects_environment(runner, cli_env, store_root) -> None:
    result = runner.invoke(cli.app, ["show-config"])

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["library"]["models_path"] == str(store_root)
    assert payload["server"]["check_model_presence"] is False


def test_invalid_environment_is_usage_error(runner, monkeypatch) -> None:
    monkeypatch.setenv("MODELVAULT_TIMEOUT", "not-a-number")

    result = runner.invoke(cli.app, ["show-config"])

    assert result.exit_code == 2
    assert "Error loading settings" in result.output


def test_pull_success(runner, cli_env, fake_registry, store_root) -> None:
    fake_registry.add_library_model("demo", "1b", manifest_for(CONFIG, [LAYER]), [CONFIG, LAYER])

    result = runner.invoke(cli.app, ["--quiet", "pull", "demo:1b"])

    assert result.exit_code == 0, result.output
    assert "Model demo:1b successfully downloaded" in result.output
    assert (store_root / "manifests" / "registry.example.test" / "library" / "demo" / "1b").exists()
    assert cli_env[0].state.cleanup_done


def test_pull_digest_mismatch_exit_code(runner, cli_env, fake_registry, store_root) -> None:
    fake_registry.add_library_model("demo", "1b", manifest_for(CONFIG, [LAYER]), [CONFIG, LAYER])
    fake_registry.add(f"{REGISTRY_BASE}demo/blobs/{LAYER[0].replace(':', '-')}", b"tampered")

    result = runner.invoke(cli.app, ["--quiet", "pull", "demo:1b"])

    assert result.exit_code == 5
    assert "Digest mismatch" in result.output
    assert list((store_root / "blobs").iterdir()) == []


def test_pull_missing_model_exit_code(runner, cli_env) -> None:
    result = runner.invoke(cli.app, ["--quiet", "pull", "missing:latest"])

    assert result.exit_code == 3
    assert "HTTP 404" in result.output


def test_pull_cancelled_exit_code(runner, cli_env, fake_registry, make_coordinator, monkeypatch) -> None:
    fake_registry.add_library_model("demo", "1b", manifest_for(CONFIG, [LAYER]), [CONFIG, LAYER])
    cancelled = make_coordinator()
    cancelled.state.set_interrupted(SignalKind.TERM)
    monkeypatch.setattr(cli, "_build_coordinator", lambda: cancelled)

    result = runner.invoke(cli.app, ["--quiet", "pull", "demo:1b"])

    assert result.exit_code == 143
    assert fake_registry.requests == []


def test_invalid_library_identifier(runner, cli_env) -> None:
    result = runner.invoke(cli.app, ["pull", "someone/model:tag"])

    assert result.exit_code == 2


def test_hf_pull_rejects_malformed_identifier(runner, cli_env) -> None:
    result = runner.invoke(cli.app, ["hf-pull", "no-namespace"])

    assert result.exit_code == 2
    assert "user/repository:quantization" in result.output


def test_hf_list_past_ceiling(runner, cli_env, fake_registry) -> None:
    result = runner.invoke(cli.app, ["hf-list", "--page", "9", "--page-size", "100"])

    assert result.exit_code == 1
    assert "999" in result.output
    assert fake_registry.requests == []
    assert cli_env[0].state.confirmation_required is False


def test_hf_tags_lists_quantisations(runner, cli_env, monkeypatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"siblings": [{"rfilename": "m-Q4_K_M.gguf"}]})

    monkeypatch.setattr(
        cli, "_build_client", lambda settings: httpx.Client(transport=httpx.MockTransport(handler))
    )

    result = runner.invoke(cli.app, ["hf-tags", "org/m-GGUF"])

    assert result.exit_code == 0
    assert result.stdout.strip().splitlines() == ["org/m-GGUF:Q4_K_M"]
