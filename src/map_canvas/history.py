"""
Linear undo/redo over complete Scene snapshots.

Scenes are immutable, so a snapshot is just a reference. Committing after an
undo discards the redo branch.
"""

from __future__ import annotations

import logging

from map_canvas.layers import Scene

logger = logging.getLogger(__name__)


class History:
  """Append-only stack of scenes with a cursor."""

  def __init__(self, initial: Scene | None = None):
    self._entries: list[Scene] = []
    self._cursor = -1
    if initial is not None:
      self.commit(initial)

  def __len__(self) -> int:
    return len(self._entries)

  @property
  def cursor(self) -> int:
    return self._cursor

  @property
  def entries(self) -> tuple[Scene, ...]:
    return tuple(self._entries)

  @property
  def current(self) -> Scene:
    """The scene under the cursor, or an empty scene before the first commit."""
    if self._cursor < 0:
      return Scene()
    return self._entries[self._cursor]

  @property
  def can_undo(self) -> bool:
    return self._cursor > 0

  @property
  def can_redo(self) -> bool:
    return self._cursor < len(self._entries) - 1

  def commit(self, scene: Scene) -> Scene:
    """Truncate everything after the cursor, append, and advance."""
    del self._entries[self._cursor + 1 :]
    self._entries.append(scene)
    self._cursor = len(self._entries) - 1
    logger.debug(f"Committed scene #{self._cursor} ({len(scene)} layers)")
    return scene

  def undo(self) -> Scene:
    if self.can_undo:
      self._cursor -= 1
    return self.current

  def redo(self) -> Scene:
    if self.can_redo:
      self._cursor += 1
    return self.current
