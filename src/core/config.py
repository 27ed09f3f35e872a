from typing import Any, Optional
import json
import os
from pydantic import BaseModel, Field
from loguru import logger
from .events import Signal

# --- Settings Models ---
class GeneralSettings(BaseModel):
    debug_mode: bool = True
    log_dir: str = "logs"
    log_to_file: bool = False

class FolderSyncSettings(BaseModel):
    # Snapshot caches (all folders / valid move targets)
    cache_ttl_ms: int = 5000
    # Grace period before a tracked folder missing from a refetch is evicted
    stale_ttl_ms: int = 5000
    debounce_ms: int = 50
    temp_id_prefix: str = "tmp-"

    # Backing store rules
    max_depth: int = 2
    max_name_length: int = 32
    move_target_max_depth: int = 1
    storage_key: str = "rg.folders.v1"
    legacy_storage_key: str = "folders"
    migration_flag_key: str = "folders_migration_v1_complete"

    # Optimistic create watchdog
    create_watchdog_refetch_ms: int = 2500
    create_watchdog_timeout_ms: int = 3500

class AppConfig(BaseModel):
    general: GeneralSettings = Field(default_factory=GeneralSettings)
    folders: FolderSyncSettings = Field(default_factory=FolderSyncSettings)

# --- Manager ---
class ConfigManager:
    """
    Manages application configuration with persistence and reactivity.

    Pass ``filepath=None`` to keep the configuration in memory only.
    """
    def __init__(self, filepath: Optional[str] = "config.json"):
        self.filepath = filepath
        self._data = AppConfig()
        self.on_changed = Signal("ConfigChanged")
        self._load()

    @property
    def data(self) -> AppConfig:
        return self._data

    def update(self, section: str, key: str, value: Any):
        """Update a setting, validate via Pydantic, autosave, and emit change event."""
        if not hasattr(self._data, section):
            raise ValueError(f"Invalid section: {section}")

        section_obj = getattr(self._data, section)
        if not hasattr(section_obj, key):
            raise ValueError(f"Invalid key: {key} in section {section}")

        validated = section_obj.model_validate({**section_obj.model_dump(), key: value})
        setattr(self._data, section, validated)
        self._save()
        self.on_changed.emit(section, key, getattr(validated, key))

    def get(self, section: str, key: str) -> Any:
        section_obj = getattr(self._data, section)
        return getattr(section_obj, key)

    def _load(self):
        """Load settings from JSON or TOML file if present; otherwise keep defaults."""
        if self.filepath is None:
            return
        if os.path.isfile(self.filepath):
            try:
                if self.filepath.endswith('.toml'):
                    import tomllib
                    with open(self.filepath, "rb") as f:
                        raw = tomllib.load(f)
                else:
                    with open(self.filepath, "r", encoding="utf-8") as f:
                        raw = json.load(f)
                self._data = AppConfig.model_validate(raw)
            except Exception as e:
                logger.error(f"Failed to load config from {self.filepath}: {e}")
                self._save()
        else:
            self._save()

    def _save(self):
        """Persist current config to JSON file."""
        if self.filepath is None or self.filepath.endswith('.toml'):
            return
        try:
            dirname = os.path.dirname(self.filepath)
            if dirname:
                os.makedirs(dirname, exist_ok=True)
            with open(self.filepath, "w", encoding="utf-8") as f:
                json.dump(self._data.model_dump(), f, indent=4)
        except Exception as e:
            logger.error(f"Failed to save config to {self.filepath}: {e}")
