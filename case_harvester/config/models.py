"""Pydantic models used across the case-harvester configuration flow."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ItemKind(str, Enum):
    """Kinds of related records collected for a primary record."""

    NOTE = "note"
    EMAIL = "email"


class KindSettings(BaseModel):
    """Per-kind injection and correlation settings."""

    message_kind: str
    list_message_kind: str = "list-result"
    # Extraction scripts injected into the worker page (detail and listing views)
    script: Path | None = None
    list_script: Path | None = None

    @field_validator("message_kind", "list_message_kind")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("message kind cannot be empty")
        return value.strip()


def _default_kinds() -> dict[ItemKind, KindSettings]:
    return {
        ItemKind.NOTE: KindSettings(message_kind="note-result"),
        ItemKind.EMAIL: KindSettings(message_kind="email-result"),
    }


class BrowserSettings(BaseModel):
    """How to reach the already-authenticated browser session."""

    cdp_url: str | None = None
    user_data_dir: Path | None = None
    headless: bool = True
    navigation_timeout: int = 30000  # ms
    binding_name: str = "__harvestReport"

    @model_validator(mode="after")
    def _validate_target(self) -> "BrowserSettings":
        if self.cdp_url and self.user_data_dir:
            raise ValueError("cdp_url and user_data_dir are mutually exclusive")
        if self.navigation_timeout <= 0:
            raise ValueError("navigation_timeout must be > 0")
        return self


class HarvestSettings(BaseModel):
    """Global controls shared by every batch."""

    concurrency_limit: int = 4
    ready_timeout: float = 12.0
    correlation_timeout: float = 12.0
    list_timeout: float = 30.0
    # Batches totalling at most this many items run side by side
    concurrent_threshold: int = 5
    log_level: Literal["ERROR", "WARNING", "INFO", "DEBUG"] = "INFO"
    output_format: Literal["json", "csv", "txt"] = "json"
    outputs_dir: Path = Field(default=Path("data/outputs"))
    enable_progress_bar: bool = True
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    kinds: dict[ItemKind, KindSettings] = Field(default_factory=_default_kinds)

    @field_validator("log_level", mode="before")
    @classmethod
    def _coerce_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().upper()
            if value == "WARN":
                return "WARNING"
        return value

    @field_validator("outputs_dir", mode="before")
    @classmethod
    def _coerce_dir(cls, value: Any) -> Path:
        return Path(value)

    @model_validator(mode="after")
    def _validate_limits(self) -> "HarvestSettings":
        if self.concurrency_limit < 1:
            raise ValueError("concurrency_limit must be >= 1")
        if self.concurrent_threshold < 0:
            raise ValueError("concurrent_threshold must be >= 0")
        for name in ("ready_timeout", "correlation_timeout", "list_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")
        for kind, default in _default_kinds().items():
            self.kinds.setdefault(kind, default)
        return self

    def kind_settings(self, kind: ItemKind) -> KindSettings:
        return self.kinds[kind]

    def message_kind(self, kind: ItemKind) -> str:
        return self.kinds[kind].message_kind


class ManifestItem(BaseModel):
    """One related record listed in a manifest."""

    url: str
    date: str = ""

    @field_validator("url")
    @classmethod
    def _non_empty_url(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("item url cannot be empty")
        return value.strip()


class BatchSpec(BaseModel):
    """Either an explicit list of items or a listing view to enumerate."""

    items: list[ManifestItem] | None = None
    listing: str | None = None

    @model_validator(mode="after")
    def _validate_source(self) -> "BatchSpec":
        if self.items is not None and self.listing:
            raise ValueError("batch accepts either items or listing, not both")
        if self.items is None and not self.listing:
            raise ValueError("batch requires items or a listing url")
        return self


class HarvestManifest(BaseModel):
    """What to collect for one primary record."""

    record: str | None = None
    batches: dict[ItemKind, BatchSpec] = Field(default_factory=dict)


__all__ = [
    "BatchSpec",
    "BrowserSettings",
    "HarvestManifest",
    "HarvestSettings",
    "ItemKind",
    "KindSettings",
    "ManifestItem",
]
