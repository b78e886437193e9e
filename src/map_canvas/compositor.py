"""
Scene compositor.

Flattens the visible layers of a Scene into a single PixelBuffer for any world
rectangle. Used for:
- context capture before generation (opaque black background)
- neighbor edge strips for seamless tile stitching
- full-scene export (transparent background)

Layer images are decoded as concurrent tasks and joined before any drawing
happens. A layer whose image fails to decode is skipped; it never aborts the
whole composite.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable

from PIL import Image

from map_canvas.errors import ImageDecodeError
from map_canvas.geometry import Rect, bounding_box, intersects
from map_canvas.layers import Layer, Scene
from map_canvas.pixels import OPAQUE_BLACK, RGBA, TRANSPARENT, PixelBuffer

logger = logging.getLogger(__name__)

# Size of the blank buffer returned when exporting a scene with nothing visible
DEFAULT_EMPTY_SIZE = 1024

DECODE_WORKERS = 4

# Decoded image per layer id; None marks a layer to skip
DecodedImages = dict[str, PixelBuffer | None]


def decode_layer_images(
  layers: Iterable[Layer], max_workers: int = DECODE_WORKERS
) -> DecodedImages:
  """
  Decode every layer's image in parallel and wait for all of them.

  Returns:
    Mapping of layer id to its PixelBuffer, or None if decoding failed
  """
  layers = list(layers)
  images: DecodedImages = {}
  if not layers:
    return images

  with ThreadPoolExecutor(max_workers=max_workers) as executor:
    futures = {executor.submit(layer.decode): layer for layer in layers}
    for future in as_completed(futures):
      layer = futures[future]
      try:
        images[layer.id] = future.result()
      except ImageDecodeError as e:
        logger.warning(f"Skipping layer {layer.id} ({layer.name}): {e}")
        images[layer.id] = None

  return images


def _pixel_box(value: float) -> int:
  return int(round(value))


def _blit(canvas: Image.Image, layer: Layer, image: PixelBuffer, target: Rect) -> None:
  """Source-over draw a layer's image, scaled to its placement, onto the canvas."""
  dest_x = _pixel_box(layer.x - target.x)
  dest_y = _pixel_box(layer.y - target.y)
  place_w = _pixel_box(layer.width)
  place_h = _pixel_box(layer.height)
  if place_w <= 0 or place_h <= 0:
    return

  # Clip the placement against the canvas
  src_left = max(0, -dest_x)
  src_top = max(0, -dest_y)
  src_right = min(place_w, canvas.width - dest_x)
  src_bottom = min(place_h, canvas.height - dest_y)
  if src_left >= src_right or src_top >= src_bottom:
    return

  scaled = image.resized(place_w, place_h).to_image()
  canvas.alpha_composite(
    scaled,
    dest=(max(0, dest_x), max(0, dest_y)),
    source=(src_left, src_top, src_right, src_bottom),
  )


def render_region(
  target: Rect,
  scene: Scene,
  background: RGBA = OPAQUE_BLACK,
  images: DecodedImages | None = None,
) -> PixelBuffer:
  """
  Flatten the visible layers that overlap a world rectangle.

  Args:
    target: World rectangle to render; the output is target.width x target.height
    scene: Scene to draw from
    background: Fill color under all layers (opaque black for context capture,
      transparent for export)
    images: Already decoded layer images, keyed by layer id. Layers missing
      from the mapping are decoded here.

  Returns:
    The composited PixelBuffer

  Raises:
    ResourceUnavailableError: If the target has no area or is too large
  """
  out = PixelBuffer.blank(_pixel_box(target.width), _pixel_box(target.height), background)

  # Ascending z; sorted() is stable so equal z keeps sequence order and the
  # later layer lands on top
  ordered = [layer for layer in scene.sorted_by_z() if intersects(layer.rect, target)]
  if not ordered:
    return out

  images = dict(images or {})
  missing = [layer for layer in ordered if layer.id not in images]
  images.update(decode_layer_images(missing))

  canvas = out.to_image()
  for layer in ordered:
    image = images.get(layer.id)
    if image is None:
      continue
    _blit(canvas, layer, image, target)

  return PixelBuffer.from_image(canvas)


def scene_bounds(scene: Scene) -> Rect | None:
  """Minimal rectangle covering every visible layer's placement."""
  return bounding_box(layer.rect for layer in scene.visible_layers())


def render_full(scene: Scene, empty_size: int = DEFAULT_EMPTY_SIZE) -> PixelBuffer:
  """
  Flatten the whole visible scene onto a transparent background.

  With nothing visible, returns a transparent empty_size square.
  """
  bounds = scene_bounds(scene)
  if bounds is None or bounds.is_empty():
    return PixelBuffer.blank(empty_size, empty_size, TRANSPARENT)
  return render_region(bounds, scene, background=TRANSPARENT)


def overlay(base: PixelBuffer, top: PixelBuffer) -> PixelBuffer:
  """Source-over composite of top onto base (top is rescaled to base's size)."""
  if top.size != base.size:
    top = top.resized(base.width, base.height)
  canvas = base.to_image()
  canvas.alpha_composite(top.to_image())
  return PixelBuffer.from_image(canvas)
