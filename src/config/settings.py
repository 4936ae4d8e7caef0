# src/config/settings.py — v1
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for deployment-specific settings. Every field can be
set through a SHIPFLOW_-prefixed environment variable, e.g.
SHIPFLOW_REGISTRY_BACKEND=oci.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="SHIPFLOW_",
        extra="ignore",
    )

    # === Build and test ===
    build_command: str = "make build"
    test_command: str = "make test"
    artifact_path: str = "dist"
    junit_report: str = ""
    stage_timeout_s: float = 1800.0

    # === Image ===
    image_repository: str = "myapp"
    tag_rule: Literal["sha", "semver"] = "sha"
    tag_length: int = 12

    # === Registry ===
    registry_backend: Literal["memory", "local", "oci"] = "local"
    registry_root: Path = Path("~/.shipflow/registry")
    registry_url: str = ""
    registry_username: str = ""
    registry_password: str = ""
    registry_token: str = ""
    publish_max_attempts: int = 3
    publish_retry_delay_s: float = 1.0

    # === Configuration repository ===
    config_store_backend: Literal["memory", "git"] = "git"
    config_repo_url: str = ""
    config_repo_branch: str = "main"
    config_repo_workdir: Path = Path("~/.shipflow/config-repo")
    config_values_file: str = "charts/myapp/values.yaml"
    config_image_key: str = "image.tag"
    config_commit_author: str = "shipflow <shipflow@localhost>"
    config_max_attempts: int = 5
    config_retry_delay_s: float = 0.5

    # === Reconciliation ===
    reconcile_enabled: bool = False
    reconcile_url: str = ""
    reconcile_token: str = ""
    reconcile_application: str = "myapp"
    reconcile_timeout_s: float = 300.0
    reconcile_poll_interval_s: float = 5.0
    reconcile_verify_tls: bool = True

    # === Runs ===
    run_store_backend: Literal["memory", "json"] = "json"
    run_store_root: Path = Path("~/.shipflow/runs")
    watched_branches: str = "main"

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("tag_length")
    @classmethod
    def validate_tag_length(cls, v: int) -> int:  # noqa: N805
        if not 6 <= v <= 40:
            raise ValueError("tag_length must be between 6 and 40")
        return v

    @field_validator("publish_max_attempts", "config_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("attempt counts must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.registry_backend == "oci" and not self.registry_url:
            errors.append("REGISTRY_BACKEND=oci requires REGISTRY_URL")

        if self.config_store_backend == "git" and not self.config_repo_url:
            errors.append("CONFIG_STORE_BACKEND=git requires CONFIG_REPO_URL")

        if self.reconcile_enabled and not self.reconcile_url:
            errors.append("RECONCILE_ENABLED requires RECONCILE_URL")

        if self.registry_token and self.registry_username:
            errors.append("REGISTRY_TOKEN and REGISTRY_USERNAME are mutually exclusive")

        if self.stage_timeout_s <= 0:
            errors.append("STAGE_TIMEOUT_S must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def watched_branches_list(self) -> list[str]:
        """Parse comma-separated watched branches."""
        return [b.strip() for b in self.watched_branches.split(",") if b.strip()]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
