"""
Object isolation: turn a generated image into a layer with only the new content.

Two region-based pixel transforms, both using Manhattan distance over R, G, B
(range 0-765):

1. chroma_key_remove: the generator was asked for an object on a solid key
   color (pure magenta); pixels close to the key become transparent. The
   threshold tolerates anti-aliased edges against the key, at the cost of
   eating genuinely saturated magenta in the subject.

2. difference_extract: the generator was given a context crop and asked to
   leave the background untouched; pixels that did not change become
   transparent and everything else is kept fully opaque.
"""

from __future__ import annotations

import numpy as np

from map_canvas.geometry import Rect
from map_canvas.pixels import RGB, PixelBuffer

MAGENTA: RGB = (255, 0, 255)

DEFAULT_CHROMA_THRESHOLD = 100
DEFAULT_DIFFERENCE_THRESHOLD = 35


def color_distance(pixels: np.ndarray, color: RGB | np.ndarray) -> np.ndarray:
  """
  Per-pixel Manhattan distance over the RGB channels.

  Args:
    pixels: (H, W, 3+) uint8 array
    color: An RGB triple, or an (H, W, 3+) array to compare pixel by pixel

  Returns:
    (H, W) int array of distances in 0-765
  """
  rgb = pixels[:, :, :3].astype(np.int16)
  if isinstance(color, np.ndarray):
    other = color[:, :, :3].astype(np.int16)
  else:
    other = np.array(color, dtype=np.int16)
  return np.abs(rgb - other).sum(axis=2)


def chroma_key_remove(
  buffer: PixelBuffer,
  key_color: RGB = MAGENTA,
  threshold: int = DEFAULT_CHROMA_THRESHOLD,
) -> PixelBuffer:
  """
  Make pixels near the key color fully transparent.

  Pixels at or beyond the threshold are left exactly as they were, so the
  transform is idempotent.
  """
  pixels = buffer.copy_pixels()
  keyed = color_distance(pixels, key_color) < threshold
  pixels[keyed, 3] = 0
  return buffer.with_pixels(pixels)


def difference_extract(
  original: PixelBuffer,
  generated: PixelBuffer,
  threshold: int = DEFAULT_DIFFERENCE_THRESHOLD,
) -> PixelBuffer:
  """
  Keep only the pixels the generator changed.

  The original is resampled to the generated buffer's dimensions. Unchanged
  pixels (distance below threshold) get alpha 0; changed pixels keep the
  generated color with alpha forced to 255.
  """
  if original.size != generated.size:
    original = original.resized(generated.width, generated.height)

  pixels = generated.copy_pixels()
  changed = color_distance(pixels, original.pixels) >= threshold
  pixels[:, :, 3] = np.where(changed, 255, 0).astype(np.uint8)
  return generated.with_pixels(pixels)


def content_bounds(buffer: PixelBuffer) -> Rect | None:
  """Bounding box of every pixel with non-zero alpha, or None if there are none."""
  ys, xs = np.nonzero(buffer.alpha)
  if len(xs) == 0:
    return None
  min_x, max_x = int(xs.min()), int(xs.max())
  min_y, max_y = int(ys.min()), int(ys.max())
  return Rect(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1)
