# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides triggers, in-memory backends, a scripted command executor and a
source tree with a built artifact. No external services: registry, config
repository and run store all live in memory.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from shipflow.build.runner import CommandResult
from shipflow.config.settings import Settings
from shipflow.config_repo.memory_store import InMemoryConfigStore
from shipflow.core.models import ImageArtifact, TriggerEvent
from shipflow.core.retry import RetryPolicy
from shipflow.registry.memory_registry import InMemoryImageRegistry
from shipflow.storage.memory_run_store import InMemoryRunStore

VALUES_FILE = "charts/myapp/values.yaml"

SAMPLE_VALUES = """\
replicaCount: 2
image:
  repository: registry.example.com/myapp
  tag: 0ld7a9
  pullPolicy: IfNotPresent
service:
  port: 8080
"""

FAST_RETRY = RetryPolicy(max_attempts=3, base_delay_s=0.0, jitter=False)


class ScriptedExecutor:
    """Command executor returning canned results keyed by argv[0:2].

    Records every call so tests can assert what ran.
    """

    def __init__(self, results: dict[str, CommandResult] | None = None) -> None:
        self.results = results or {}
        self.calls: list[list[str]] = []

    async def __call__(self, argv: list[str], cwd: Path, timeout_s: float) -> CommandResult:
        self.calls.append(list(argv))
        key = " ".join(argv)
        if key in self.results:
            return self.results[key]
        return CommandResult(argv=argv, exit_code=0, output=f"ok: {key}\n", duration_ms=1)


# === FIXTURES: Sample data ===


@pytest.fixture
def trigger(tmp_path: Path) -> TriggerEvent:
    """Trigger for revision abc123 pointing at a temp source tree."""
    source = tmp_path / "src"
    source.mkdir()
    return TriggerEvent(revision="abc123", branch="main", source_path=str(source))


@pytest.fixture
def source_tree(trigger: TriggerEvent) -> Path:
    """Source tree with a pre-built dist/ artifact."""
    root = Path(trigger.source_path)
    dist = root / "dist"
    dist.mkdir()
    (dist / "app.bin").write_bytes(b"\x7fELF fake binary")
    (dist / "config.json").write_text('{"port": 8080}', encoding="utf-8")
    return root


@pytest.fixture
def image_artifact() -> ImageArtifact:
    return ImageArtifact(
        repository="myapp",
        tag="abc123",
        digest="sha256:" + "a" * 64,
    )


# === FIXTURES: Backends ===


@pytest.fixture
def registry() -> InMemoryImageRegistry:
    return InMemoryImageRegistry()


@pytest.fixture
def config_store() -> InMemoryConfigStore:
    """Config repository seeded with one values file."""
    return InMemoryConfigStore(files={VALUES_FILE: SAMPLE_VALUES})


@pytest.fixture
def run_store() -> InMemoryRunStore:
    return InMemoryRunStore()


@pytest.fixture
def executor() -> ScriptedExecutor:
    return ScriptedExecutor()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings wired to in-memory backends, isolated from any .env file."""
    return Settings(
        _env_file=None,
        build_command="make build",
        test_command="make test",
        artifact_path="dist",
        image_repository="myapp",
        registry_backend="memory",
        config_store_backend="memory",
        config_values_file=VALUES_FILE,
        run_store_backend="memory",
        run_store_root=tmp_path / "runs",
        publish_retry_delay_s=0.0,
        config_retry_delay_s=0.0,
    )


@pytest.fixture
def values_file() -> str:
    return VALUES_FILE
