"""
Axis-aligned rectangle geometry.

Coordinates are in "world" units unless a caller documents screen space:
- x increases to the right
- y increases downward
- a Rect's (x, y) is its top-left corner

All functions here are pure and total.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class Point:
  """A 2D point."""

  x: float
  y: float

  def __add__(self, other: Point) -> Point:
    return Point(self.x + other.x, self.y + other.y)

  def __sub__(self, other: Point) -> Point:
    return Point(self.x - other.x, self.y - other.y)

  def to_tuple(self) -> tuple[float, float]:
    return (self.x, self.y)


@dataclass(frozen=True)
class Rect:
  """An axis-aligned rectangle. Width and height are never negative."""

  x: float
  y: float
  width: float
  height: float

  def __post_init__(self):
    if self.width < 0 or self.height < 0:
      raise ValueError(
        f"Rect dimensions must be non-negative, got {self.width}x{self.height}"
      )

  @classmethod
  def from_corners(cls, a: Point, b: Point) -> Rect:
    """Build the rectangle spanned by two corners given in any order."""
    return cls(
      x=min(a.x, b.x),
      y=min(a.y, b.y),
      width=abs(b.x - a.x),
      height=abs(b.y - a.y),
    )

  @classmethod
  def square_around(cls, center: Point, size: float) -> Rect:
    """A size x size square centered on a point."""
    return cls(center.x - size / 2, center.y - size / 2, size, size)

  @property
  def right(self) -> float:
    return self.x + self.width

  @property
  def bottom(self) -> float:
    return self.y + self.height

  @property
  def area(self) -> float:
    return self.width * self.height

  @property
  def center(self) -> Point:
    return Point(self.x + self.width / 2, self.y + self.height / 2)

  @property
  def origin(self) -> Point:
    return Point(self.x, self.y)

  def is_empty(self) -> bool:
    """Zero-area rectangles denote "nothing" (e.g. a disjoint intersection)."""
    return self.width <= 0 or self.height <= 0

  def contains_point(self, p: Point) -> bool:
    """Edge-inclusive containment, matching pointer hit-testing."""
    return self.x <= p.x <= self.right and self.y <= p.y <= self.bottom

  def translate(self, dx: float, dy: float) -> Rect:
    return Rect(self.x + dx, self.y + dy, self.width, self.height)

  def moved_to(self, x: float, y: float) -> Rect:
    return Rect(x, y, self.width, self.height)

  def to_tuple(self) -> tuple[float, float, float, float]:
    return (self.x, self.y, self.width, self.height)

  def __str__(self) -> str:
    return f"Rect(x={self.x}, y={self.y}, w={self.width}, h={self.height})"


EMPTY_RECT = Rect(0, 0, 0, 0)


def intersection(a: Rect, b: Rect) -> Rect:
  """
  Standard AABB overlap of two rectangles.

  Returns a zero-area rectangle when the inputs are disjoint.
  """
  left = max(a.x, b.x)
  top = max(a.y, b.y)
  right = min(a.right, b.right)
  bottom = min(a.bottom, b.bottom)
  if right <= left or bottom <= top:
    return Rect(left, top, 0, 0)
  return Rect(left, top, right - left, bottom - top)


def intersects(a: Rect, b: Rect) -> bool:
  return not intersection(a, b).is_empty()


def contains_rect(outer: Rect, inner: Rect) -> bool:
  """True when inner lies entirely within outer."""
  return (
    outer.x <= inner.x
    and outer.y <= inner.y
    and inner.right <= outer.right
    and inner.bottom <= outer.bottom
  )


def bounding_box(rects: Iterable[Rect]) -> Rect | None:
  """Smallest rectangle covering every input, or None for no input."""
  rects = list(rects)
  if not rects:
    return None
  min_x = min(r.x for r in rects)
  min_y = min(r.y for r in rects)
  max_x = max(r.right for r in rects)
  max_y = max(r.bottom for r in rects)
  return Rect(min_x, min_y, max_x - min_x, max_y - min_y)
