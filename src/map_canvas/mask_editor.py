"""
Per-layer pixel editing (eraser) and the screen-space brush mask.

Both tools paint discs:
- the eraser clears alpha in a disc on a working copy of one layer's native
  pixels; the copy is written back to the scene only on commit
- the brush paints a semi-transparent magenta disc onto a viewport-sized
  mask that later guides object generation
"""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image

from map_canvas.geometry import Point, Rect
from map_canvas.isolation import content_bounds
from map_canvas.layers import Layer, Scene
from map_canvas.pixels import RGBA, TRANSPARENT, PixelBuffer

logger = logging.getLogger(__name__)

DEFAULT_TOOL_SIZE = 30

# 'rgba(255, 0, 255, 0.5)'
BRUSH_COLOR: RGBA = (255, 0, 255, 128)


def disc_mask(width: int, height: int, cx: float, cy: float, radius: float) -> np.ndarray:
  """
  Boolean (height, width) mask of the pixels whose centers fall in a disc.

  Args:
    width: Mask width
    height: Mask height
    cx: Disc center x, in pixel coordinates
    cy: Disc center y, in pixel coordinates
    radius: Disc radius in pixels
  """
  ys, xs = np.ogrid[:height, :width]
  return (xs + 0.5 - cx) ** 2 + (ys + 0.5 - cy) ** 2 <= radius**2


# =============================================================================
# Eraser
# =============================================================================


class EraserEdit:
  """
  An in-progress erase of a single layer.

  The layer's native image is decoded once when the edit begins; every stroke
  point clears a disc on that copy. Nothing touches the scene until commit.
  """

  def __init__(self, layer: Layer):
    self.layer_id = layer.id
    self.placement = layer.rect
    self._pixels = layer.decode().copy_pixels()
    self.strokes = 0

  @classmethod
  def begin(cls, scene: Scene, layer_id: str) -> EraserEdit:
    return cls(scene.get(layer_id))

  @property
  def image_width(self) -> int:
    return self._pixels.shape[1]

  @property
  def image_height(self) -> int:
    return self._pixels.shape[0]

  @property
  def scale_x(self) -> float:
    if self.placement.width == 0:
      return 1.0
    return self.image_width / self.placement.width

  @property
  def scale_y(self) -> float:
    if self.placement.height == 0:
      return 1.0
    return self.image_height / self.placement.height

  def to_local(self, world_point: Point) -> Point:
    """Map a world point into the layer's native pixel coordinates."""
    return Point(
      (world_point.x - self.placement.x) * self.scale_x,
      (world_point.y - self.placement.y) * self.scale_y,
    )

  def apply(self, world_point: Point, tool_size: float = DEFAULT_TOOL_SIZE) -> None:
    """Clear alpha in a disc of diameter tool_size (world units) at a point."""
    local = self.to_local(world_point)
    radius = (tool_size / 2) * self.scale_x
    mask = disc_mask(self.image_width, self.image_height, local.x, local.y, radius)
    self._pixels[mask, 3] = 0
    self.strokes += 1

  @property
  def buffer(self) -> PixelBuffer:
    return PixelBuffer(self._pixels)

  def commit(self, scene: Scene) -> Scene:
    """The scene with the edited pixels written back into the layer."""
    logger.debug(f"Committing {self.strokes} eraser strokes on layer {self.layer_id}")
    return scene.set_pixel_data(self.layer_id, self.buffer)


# =============================================================================
# Brush mask
# =============================================================================


class BrushMask:
  """Viewport-sized, screen-space marker canvas for guided object generation."""

  def __init__(self, width: int, height: int, color: RGBA = BRUSH_COLOR):
    self.width = int(width)
    self.height = int(height)
    self.color = color
    self._image = PixelBuffer.blank(self.width, self.height, TRANSPARENT).to_image()

  def paint(self, screen_point: Point, tool_size: float = DEFAULT_TOOL_SIZE) -> None:
    """Source-over a marker disc of diameter tool_size at a screen point."""
    radius = tool_size / 2
    left = int(np.floor(screen_point.x - radius))
    top = int(np.floor(screen_point.y - radius))
    right = int(np.ceil(screen_point.x + radius))
    bottom = int(np.ceil(screen_point.y + radius))

    # Clip the disc's bounding box to the mask
    clip_left, clip_top = max(0, left), max(0, top)
    clip_right, clip_bottom = min(self.width, right), min(self.height, bottom)
    if clip_left >= clip_right or clip_top >= clip_bottom:
      return

    patch_w = clip_right - clip_left
    patch_h = clip_bottom - clip_top
    inside = disc_mask(
      patch_w,
      patch_h,
      screen_point.x - clip_left,
      screen_point.y - clip_top,
      radius,
    )
    patch = np.zeros((patch_h, patch_w, 4), dtype=np.uint8)
    patch[inside] = self.color

    self._image.alpha_composite(Image.fromarray(patch), dest=(clip_left, clip_top))

  def is_empty(self) -> bool:
    return not np.asarray(self._image.getchannel("A")).any()

  def content_bounds(self) -> Rect | None:
    """Screen-space bounding box of everything painted so far."""
    return content_bounds(self.export())

  def export(self) -> PixelBuffer:
    return PixelBuffer.from_image(self._image)

  def clear(self) -> None:
    self._image = PixelBuffer.blank(self.width, self.height, TRANSPARENT).to_image()
