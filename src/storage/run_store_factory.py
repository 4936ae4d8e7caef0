# src/storage/run_store_factory.py — v1
"""Factory: instantiate run store from configuration."""

from __future__ import annotations

from shipflow.config.settings import Settings
from shipflow.storage.base_run_store import BaseRunStore


def create_run_store(settings: Settings | None = None) -> BaseRunStore:
    """Create the run store backend named by RUN_STORE_BACKEND.

    Raises:
        ValueError: If the backend is not supported.
    """
    backend = "memory" if settings is None else settings.run_store_backend

    if backend == "memory":
        from shipflow.storage.memory_run_store import InMemoryRunStore
        return InMemoryRunStore()

    if backend == "json":
        from shipflow.storage.json_run_store import JsonRunStore
        return JsonRunStore(root=settings.run_store_root)  # type: ignore[union-attr]

    raise ValueError(f"Unsupported run store backend: {backend!r}")
