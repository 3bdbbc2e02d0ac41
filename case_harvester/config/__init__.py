"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BatchSpec,
    BrowserSettings,
    HarvestManifest,
    HarvestSettings,
    ItemKind,
    KindSettings,
    ManifestItem,
)

__all__ = [
    "BatchSpec",
    "BrowserSettings",
    "ConfigLocator",
    "ConfigRepository",
    "HarvestManifest",
    "HarvestSettings",
    "ItemKind",
    "KindSettings",
    "ManifestItem",
]
