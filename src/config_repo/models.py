# src/config_repo/models.py — v1
"""Configuration repository types: ConfigSnapshot, ConfigCommit."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ConfigSnapshot(BaseModel):
    """Content of one file at a given repository revision."""

    file: str
    content: str | None
    revision: str | None

    @property
    def exists(self) -> bool:
        return self.content is not None


class ConfigCommit(BaseModel):
    """One entry of the configuration repository history."""

    revision: str
    parent: str | None = None
    message: str
    author: str = ""
    committed_at: datetime | None = None
    files: list[str] = []
