# src/registry/registry_factory.py — v1
"""Factory: instantiate the image registry backend from configuration."""

from __future__ import annotations

from shipflow.config.settings import Settings
from shipflow.registry.base_registry import BaseImageRegistry


def create_registry(settings: Settings | None = None) -> BaseImageRegistry:
    """Instantiate the configured registry backend.

    Args:
        settings: Application settings. Defaults to an in-memory registry.

    Raises:
        ValueError: If the backend is not supported or misconfigured.
    """
    backend = "memory" if settings is None else settings.registry_backend

    if backend == "memory":
        from shipflow.registry.memory_registry import InMemoryImageRegistry
        return InMemoryImageRegistry()

    if backend == "local":
        from shipflow.registry.local_registry import LocalImageRegistry
        return LocalImageRegistry(root=settings.registry_root)  # type: ignore[union-attr]

    if backend == "oci":
        from shipflow.registry.oci_registry import OCIRegistry
        if not settings.registry_url:  # type: ignore[union-attr]
            raise ValueError("REGISTRY_URL must be set when REGISTRY_BACKEND=oci")
        return OCIRegistry(
            url=settings.registry_url,  # type: ignore[union-attr]
            username=settings.registry_username,  # type: ignore[union-attr]
            password=settings.registry_password,  # type: ignore[union-attr]
            token=settings.registry_token,  # type: ignore[union-attr]
        )

    raise ValueError(f"Unsupported registry backend: {backend!r}")
