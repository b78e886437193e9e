"""
Viewport mapping between world space and screen space.

Screen coordinates are relative to the visible window's top-left corner:
  screen = world - view
  world = screen + view
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from map_canvas.geometry import Point, Rect

# Arrow-key pan steps in world units
PAN_STEP = 32
PAN_STEP_FAST = 128

# Unit vectors for the four cardinal directions (y grows downward)
DIRECTION_VECTORS: dict[str, tuple[int, int]] = {
  "left": (-1, 0),
  "right": (1, 0),
  "top": (0, -1),
  "bottom": (0, 1),
}


def direction_vector(direction: str) -> tuple[int, int]:
  direction = direction.lower().strip()
  if direction not in DIRECTION_VECTORS:
    valid = ", ".join(DIRECTION_VECTORS.keys())
    raise ValueError(f"Invalid direction '{direction}'. Must be one of: {valid}")
  return DIRECTION_VECTORS[direction]


@dataclass(frozen=True)
class ViewState:
  """World-space offset of the viewport's top-left corner."""

  x: float = 0.0
  y: float = 0.0

  @property
  def offset(self) -> Point:
    return Point(self.x, self.y)

  def pan(self, dx: float, dy: float) -> ViewState:
    """Scroll by a delta (mouse wheel deltas map 1:1 to world units)."""
    return ViewState(self.x + dx, self.y + dy)

  def pan_by_key(self, direction: str, fast: bool = False) -> ViewState:
    step = PAN_STEP_FAST if fast else PAN_STEP
    vx, vy = direction_vector(direction)
    return self.pan(vx * step, vy * step)

  def moved_to(self, x: float, y: float) -> ViewState:
    return ViewState(x, y)


def world_to_screen(p: Point, view: ViewState) -> Point:
  return Point(p.x - view.x, p.y - view.y)


def screen_to_world(p: Point, view: ViewState) -> Point:
  return Point(p.x + view.x, p.y + view.y)


def rect_world_to_screen(rect: Rect, view: ViewState) -> Rect:
  return rect.translate(-view.x, -view.y)


def rect_screen_to_world(rect: Rect, view: ViewState) -> Rect:
  return rect.translate(view.x, view.y)


def viewport_rect(view: ViewState, width: float, height: float) -> Rect:
  """The world rectangle currently visible through the viewport."""
  return Rect(view.x, view.y, width, height)


def grid_cell(view: ViewState, tile_width: float, tile_height: float) -> tuple[int, int]:
  """The grid cell the view is snapped to (nearest tile origin, halves round up)."""
  return (
    math.floor(view.x / tile_width + 0.5),
    math.floor(view.y / tile_height + 0.5),
  )


def grid_origin(gx: int, gy: int, tile_width: float, tile_height: float) -> Point:
  return Point(gx * tile_width, gy * tile_height)
