# src/config_repo/store_factory.py — v1
"""Factory for configuration store instantiation."""

from __future__ import annotations

from shipflow.config.settings import Settings
from shipflow.config_repo.base_store import BaseConfigStore


def create_config_store(settings: Settings | None = None) -> BaseConfigStore:
    """Instantiate the configured configuration repository backend.

    Args:
        settings: Application settings. Defaults to an empty in-memory store.

    Raises:
        ValueError: If the backend is not supported or misconfigured.
    """
    backend = "memory" if settings is None else settings.config_store_backend

    if backend == "memory":
        from shipflow.config_repo.memory_store import InMemoryConfigStore
        return InMemoryConfigStore()

    if backend == "git":
        from shipflow.config_repo.git_store import GitConfigStore
        if not settings.config_repo_url:  # type: ignore[union-attr]
            raise ValueError(
                "CONFIG_REPO_URL must be set when CONFIG_STORE_BACKEND=git"
            )
        return GitConfigStore(
            url=settings.config_repo_url,  # type: ignore[union-attr]
            workdir=settings.config_repo_workdir,  # type: ignore[union-attr]
            branch=settings.config_repo_branch,  # type: ignore[union-attr]
            author=settings.config_commit_author,  # type: ignore[union-attr]
        )

    raise ValueError(f"Unsupported config store backend: {backend!r}")
