"""Configuration loading helpers for case-harvester."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .models import HarvestManifest, HarvestSettings

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
SETTINGS_FILENAME = "settings.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    outputs_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("CASE_HARVESTER_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.outputs_dir = (self.data_dir / "outputs").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.outputs_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def settings_path(self) -> Path:
        return self.data_dir / SETTINGS_FILENAME

    def resolve(self, path: Path) -> Path:
        """Resolve ``path`` against the project root when relative."""

        if path.is_absolute():
            return path
        return (self.project_root / path).resolve()


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._settings_cache: HarvestSettings | None = None

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------
    def load_settings(self) -> HarvestSettings:
        if self._settings_cache is not None:
            return self._settings_cache
        path = self.locator.settings_path()
        if path.exists():
            settings = HarvestSettings.model_validate(_read_file(path))
        else:
            settings = HarvestSettings()
            self.save_settings(settings)
        self._settings_cache = settings
        return settings

    def save_settings(self, settings: HarvestSettings) -> Path:
        path = self.locator.settings_path()
        _write_file(path, settings.model_dump(mode="json"))
        self._settings_cache = settings
        return path

    def outputs_dir(self, settings: HarvestSettings) -> Path:
        return self.locator.resolve(settings.outputs_dir)

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------
    def load_manifest(self, path: Path) -> HarvestManifest:
        if not path.exists():
            raise FileNotFoundError(f"Manifest not found: {path}")
        if path.suffix not in CONFIG_EXTENSIONS:
            raise ValueError(f"Unsupported manifest format: {path.suffix}")
        return HarvestManifest.model_validate(_read_file(path))


__all__ = ["ConfigLocator", "ConfigRepository", "CONFIG_EXTENSIONS"]
