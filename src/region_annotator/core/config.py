"""Configuration management for Region Annotator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .models import DEFAULT_COLOR

logger = logging.getLogger(__name__)

# Default configuration file path
DEFAULT_CONFIG_PATH = Path("config.yaml")


@dataclass
class AppConfig:
    """
    Application configuration settings.

    Stores user preferences and application state.
    """

    default_directory: str = ""
    export_directory: str = ""
    line_thickness: int = 2
    font_size: int = 10
    default_color: str = DEFAULT_COLOR
    autosave: bool = True
    autosave_delay_ms: int = 250  # Debounce between a change and the session write
    session_path: str = "session.json"
    undo_keys: List[str] = field(default_factory=lambda: ["Ctrl+Z"])
    redo_keys: List[str] = field(default_factory=lambda: ["Ctrl+Shift+Z", "Ctrl+Y"])
    delete_keys: List[str] = field(default_factory=lambda: ["Delete", "Backspace"])
    clear_label_keys: List[str] = field(default_factory=lambda: ["Escape"])
    finish_polygon_keys: List[str] = field(default_factory=lambda: ["Return", "Enter"])

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for serialization."""
        return {
            "defaultDirectory": self.default_directory,
            "exportDirectory": self.export_directory,
            "lineThickness": self.line_thickness,
            "fontSize": self.font_size,
            "defaultColor": self.default_color,
            "autosave": self.autosave,
            "autosaveDelayMs": self.autosave_delay_ms,
            "sessionPath": self.session_path,
            "undoKeys": self.undo_keys,
            "redoKeys": self.redo_keys,
            "deleteKeys": self.delete_keys,
            "clearLabelKeys": self.clear_label_keys,
            "finishPolygonKeys": self.finish_polygon_keys,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AppConfig:
        """Create config from dictionary."""
        defaults = cls()
        return cls(
            default_directory=data.get("defaultDirectory", ""),
            export_directory=data.get("exportDirectory", ""),
            line_thickness=data.get("lineThickness", 2),
            font_size=data.get("fontSize", 10),
            default_color=data.get("defaultColor", DEFAULT_COLOR),
            autosave=data.get("autosave", True),
            autosave_delay_ms=data.get("autosaveDelayMs", 250),
            session_path=data.get("sessionPath", "session.json"),
            undo_keys=data.get("undoKeys", defaults.undo_keys),
            redo_keys=data.get("redoKeys", defaults.redo_keys),
            delete_keys=data.get("deleteKeys", defaults.delete_keys),
            clear_label_keys=data.get("clearLabelKeys", defaults.clear_label_keys),
            finish_polygon_keys=data.get("finishPolygonKeys", defaults.finish_polygon_keys),
        )


@dataclass
class YOLODatasetConfig:
    """
    YOLO dataset manifest (dataset.yaml) written into exported archives.

    Images and labels sit side by side in the archive, so train and val
    both point at the same folder.
    """

    path: str = "."
    train_path: str = "images"
    val_path: str = "images"
    class_names: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for YAML serialization."""
        return {
            "path": self.path,
            "train": self.train_path,
            "val": self.val_path,
            "names": {i: name for i, name in enumerate(self.class_names)},
        }


class ConfigManager:
    """
    Manager for loading and saving application configuration.

    Handles YAML serialization and provides a clean interface
    for configuration access.
    """

    def __init__(self, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        """Get the current configuration, loading if necessary."""
        if self._config is None:
            self._config = self.load()
        return self._config

    def load(self) -> AppConfig:
        """
        Load configuration from file.

        Returns:
            AppConfig instance with loaded or default values
        """
        if not self.config_path.exists():
            logger.info(f"Config file not found at {self.config_path}, using defaults")
            return AppConfig()

        try:
            with open(self.config_path, "r") as f:
                data = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {self.config_path}")
            return AppConfig.from_dict(data)
        except yaml.YAMLError as e:
            logger.error(f"Error parsing config file: {e}")
            return AppConfig()
        except Exception as e:
            logger.error(f"Error loading config: {e}")
            return AppConfig()

    def save(self, config: Optional[AppConfig] = None) -> bool:
        """
        Save configuration to file.

        Args:
            config: Configuration to save, or use current config

        Returns:
            True if save was successful
        """
        if config is not None:
            self._config = config

        if self._config is None:
            logger.warning("No configuration to save")
            return False

        try:
            with open(self.config_path, "w") as f:
                yaml.dump(self._config.to_dict(), f, default_flow_style=False)
            logger.info(f"Saved configuration to {self.config_path}")
            return True
        except Exception as e:
            logger.error(f"Error saving config: {e}")
            return False

    def update(self, **kwargs: Any) -> None:
        """
        Update configuration with new values.

        Args:
            **kwargs: Key-value pairs to update
        """
        config = self.config
        for key, value in kwargs.items():
            if hasattr(config, key):
                setattr(config, key, value)
            else:
                logger.warning(f"Unknown config key: {key}")
        self.save()
