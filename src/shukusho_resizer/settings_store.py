"""GUI設定の永続化ストア。"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
_SETTINGS_FILENAME = "settings.json"
_APP_DIR_NAME = "Shukusho"


def default_settings() -> dict[str, Any]:
    """GUI設定のデフォルト値を返す。"""
    return {
        "schema_version": SCHEMA_VERSION,
        "output_format": "png",
        "appearance_mode": "system",
        "window_geometry": "720x760",
        "last_input_dir": "",
        "last_output_dir": "",
    }


class SettingsStore:
    """GUI設定のロード/保存を行う。"""

    def __init__(self, settings_path: Optional[Path] = None) -> None:
        self.settings_path = settings_path or self._build_default_settings_path()

    def load(self) -> dict[str, Any]:
        """設定を読み込む。壊れたファイルは無視してデフォルトを返す。"""
        defaults = default_settings()
        loaded = self._read_json(self.settings_path)
        if loaded is not None:
            defaults.update(loaded)
        defaults["schema_version"] = SCHEMA_VERSION
        return defaults

    def save(self, settings: Mapping[str, Any]) -> None:
        """設定を保存する。"""
        payload = default_settings()
        payload.update(dict(settings))
        payload["schema_version"] = SCHEMA_VERSION

        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.settings_path.with_suffix(f"{self.settings_path.suffix}.tmp")
        with tmp_path.open("w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        tmp_path.replace(self.settings_path)

    @staticmethod
    def _read_json(path: Path) -> Optional[dict[str, Any]]:
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable settings file: %s", path)
            return None
        if not isinstance(data, dict):
            return None
        return data

    @staticmethod
    def _build_default_settings_path() -> Path:
        if os.name == "nt":
            app_data = os.environ.get("APPDATA")
            if app_data:
                return Path(app_data) / _APP_DIR_NAME / _SETTINGS_FILENAME
            return Path.home() / ".shukusho" / _SETTINGS_FILENAME

        config_home = os.environ.get("XDG_CONFIG_HOME")
        if config_home:
            return Path(config_home) / "shukusho" / _SETTINGS_FILENAME
        return Path.home() / ".config" / "shukusho" / _SETTINGS_FILENAME
