"""
Editor configuration.

Loads map style settings and editor tuning values from a JSON file and
resolves the generator API key from the environment (a .env file is picked
up with python-dotenv).
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

DEFAULT_CONFIG_FILENAME = "map_canvas.json"

DEFAULT_MODEL_ID = "gemini-2.5-flash-image"
DEFAULT_API_KEY_ENV = "GEMINI_API_KEY"


@dataclass
class MapSettings:
  """Art direction shared by every generation prompt."""

  art_style: str = "Professional 2D RPG game art, semi-realistic with hand-painted details"
  projection: str = "Top-down orthographic (Bird's eye view)"
  sun_direction: str = "Top-Left"

  @property
  def is_sidescroller(self) -> bool:
    return "sidescroller" in self.projection.lower()

  def to_dict(self) -> dict[str, Any]:
    return {
      "art_style": self.art_style,
      "projection": self.projection,
      "sun_direction": self.sun_direction,
    }

  @classmethod
  def from_dict(cls, data: dict[str, Any]) -> "MapSettings":
    defaults = cls()
    return cls(
      art_style=data.get("art_style", defaults.art_style),
      projection=data.get("projection", defaults.projection),
      sun_direction=data.get("sun_direction", defaults.sun_direction),
    )


@dataclass
class EditorConfig:
  """Tuning values for the editor, the stitcher and the isolator."""

  model_id: str = DEFAULT_MODEL_ID
  api_key_env: str = DEFAULT_API_KEY_ENV  # Environment variable name for the API key

  # Grid
  tile_size: int = 1024
  strip_size: int = 256
  neighbor_epsilon: float = 100
  base_exists_tolerance: float = 50  # navigate() treats a base this close as present
  base_replace_tolerance: float = 10  # generate_base() replaces a base this close

  # Isolation thresholds (Manhattan RGB distance, 0-765)
  chroma_threshold: int = 100
  difference_threshold: int = 35

  # Object generation
  generation_size: int = 512  # Context crops are resampled to this square size
  brush_padding: int = 20
  isolated_asset_size: int = 256

  # Viewport and tools
  viewport_width: int = 1024
  viewport_height: int = 1024
  tool_size: int = 30

  default_base_prompt: str = "grassland"

  map_settings: MapSettings = field(default_factory=MapSettings)

  @property
  def api_key(self) -> str | None:
    """Get the API key from environment variables (after loading .env)."""
    load_dotenv()
    return os.getenv(self.api_key_env) if self.api_key_env else None

  def to_dict(self) -> dict[str, Any]:
    """Convert to dictionary for JSON serialization (without API key)."""
    result = {
      f.name: getattr(self, f.name) for f in fields(self) if f.name != "map_settings"
    }
    result["map_settings"] = self.map_settings.to_dict()
    return result

  @classmethod
  def from_dict(cls, data: dict[str, Any]) -> "EditorConfig":
    known = {f.name for f in fields(cls)} - {"map_settings"}
    values = {key: value for key, value in data.items() if key in known}
    return cls(
      map_settings=MapSettings.from_dict(data.get("map_settings", {})),
      **values,
    )


def load_editor_config(config_path: Path | None = None) -> EditorConfig:
  """
  Load the editor configuration from a JSON file.

  Args:
    config_path: Path to the config file. If None, looks for
      map_canvas.json in the current directory.

  Returns:
    EditorConfig; missing keys (or a missing file) fall back to defaults
  """
  if config_path is None:
    config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

  if not config_path.exists():
    return EditorConfig()

  with open(config_path) as f:
    data = json.load(f)

  return EditorConfig.from_dict(data)


def save_editor_config(config: EditorConfig, config_path: Path | None = None) -> None:
  """
  Save the editor configuration to a JSON file.

  Note: This does NOT save API keys - those should remain in environment variables.
  """
  if config_path is None:
    config_path = Path.cwd() / DEFAULT_CONFIG_FILENAME

  with open(config_path, "w") as f:
    json.dump(config.to_dict(), f, indent=2)
