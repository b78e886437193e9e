"""
Records of what was sent to the image generator.

One DebugRecord is appended per generator dispatch. Records can be written to
disk for inspection (prompt.txt and input.png per record).
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from map_canvas.pixels import PixelBuffer

logger = logging.getLogger(__name__)


class DebugCategory(str, Enum):
  SEAMLESS_TILE = "seamless-tile"
  OBJECT = "object"
  BASE_TEXTURE = "base-texture"


@dataclass(frozen=True)
class DebugRecord:
  category: DebugCategory
  prompt: str
  input_image: PixelBuffer | None = None
  timestamp: float = field(default_factory=time.time)

  def to_dict(self) -> dict:
    return {
      "timestamp": self.timestamp,
      "category": self.category.value,
      "prompt": self.prompt,
      "has_input_image": self.input_image is not None,
    }


class DebugLog:
  """Append-only list of generator dispatches for the current session."""

  def __init__(self):
    self._records: list[DebugRecord] = []

  def __len__(self) -> int:
    return len(self._records)

  @property
  def records(self) -> tuple[DebugRecord, ...]:
    return tuple(self._records)

  @property
  def latest(self) -> DebugRecord | None:
    return self._records[-1] if self._records else None

  def append(self, record: DebugRecord) -> DebugRecord:
    self._records.append(record)
    logger.debug(f"Dispatch [{record.category.value}]: {len(record.prompt)} prompt chars")
    return record

  def save(self, debug_dir: Path) -> list[Path]:
    """
    Write every record to its own numbered subdirectory.

    Args:
      debug_dir: Directory to write into (created if needed)

    Returns:
      The record directories, in dispatch order
    """
    debug_dir.mkdir(parents=True, exist_ok=True)
    written = []
    for index, record in enumerate(self._records):
      record_dir = debug_dir / f"{index:03d}_{record.category.value}"
      record_dir.mkdir(parents=True, exist_ok=True)
      (record_dir / "prompt.txt").write_text(record.prompt)
      if record.input_image is not None:
        record.input_image.to_image().save(record_dir / "input.png")
      written.append(record_dir)
    logger.info(f"Saved {len(written)} debug records to {debug_dir}")
    return written
