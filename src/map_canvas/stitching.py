"""
Seamless tile stitching.

Generates a new grid-aligned base tile that blends with up to four existing
cardinal neighbors using a single image exchange with the generator.

Key concepts:
- Neighbor: a base layer whose origin lies within NEIGHBOR_EPSILON of the
  expected grid position on one side of the new tile
- Strip: the STRIP_SIZE-wide edge of a neighbor that touches the new tile
- Stitch canvas: a square image with the strips flush against its edges and
  the new tile's region filled with the marker color ("generate here")
- Inverse crop: the generator may answer at a different resolution, so the
  tile region is located in the output by scale = output_size / canvas_size
  and resampled back to the native tile size

Layout for a tile with all four neighbors (T = tile, S = strip):

    +---+-------+---+
    |   |  top  |   |
    +---+-------+---+
    | L | void  | R |     canvas side = T + 2S
    +---+-------+---+
    |   |bottom |   |
    +---+-------+---+

Usage:
  stitcher = TileStitcher()
  request = stitcher.prepare(scene, tile_x=1024, tile_y=0)
  generated = generate(prompt_for(request.sides), request.canvas)
  tile = stitcher.finish(request, generated)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from PIL import Image, ImageDraw

from map_canvas.compositor import decode_layer_images, render_region
from map_canvas.geometry import Point, Rect, bounding_box, intersects
from map_canvas.layers import Scene
from map_canvas.pixels import OPAQUE_BLACK, RGBA, PixelBuffer

logger = logging.getLogger(__name__)

# Tile and strip dimensions in world units (1 world unit = 1 native pixel)
TILE_SIZE = 1024
STRIP_SIZE = 256

# Proximity tolerance for neighbor detection; larger than any drift we expect
# from accumulated float placement
NEIGHBOR_EPSILON = 100

NEUTRAL_FILL: RGBA = (0x22, 0x22, 0x22, 255)
MARKER_COLOR: RGBA = (255, 0, 255, 255)

SIDES = ("left", "right", "top", "bottom")


# =============================================================================
# Neighbor detection
# =============================================================================


def neighbor_origin(
  tile_x: float, tile_y: float, side: str, tile_size: int = TILE_SIZE
) -> Point:
  """Where the origin of the neighbor on a given side is expected to be."""
  offsets = {
    "left": (-tile_size, 0),
    "right": (tile_size, 0),
    "top": (0, -tile_size),
    "bottom": (0, tile_size),
  }
  if side not in offsets:
    raise ValueError(f"Invalid side '{side}'. Must be one of: {', '.join(SIDES)}")
  dx, dy = offsets[side]
  return Point(tile_x + dx, tile_y + dy)


def has_neighbor(
  scene: Scene,
  tile_x: float,
  tile_y: float,
  side: str,
  tile_size: int = TILE_SIZE,
  epsilon: float = NEIGHBOR_EPSILON,
) -> bool:
  """Check the scene's base layers for a tile next to (tile_x, tile_y)."""
  expected = neighbor_origin(tile_x, tile_y, side, tile_size)
  return any(
    abs(layer.x - expected.x) < epsilon and abs(layer.y - expected.y) < epsilon
    for layer in scene.base_layers()
  )


def find_neighbors(
  scene: Scene,
  tile_x: float,
  tile_y: float,
  tile_size: int = TILE_SIZE,
  epsilon: float = NEIGHBOR_EPSILON,
) -> list[str]:
  """The sides (in SIDES order) that have an existing base tile."""
  return [
    side
    for side in SIDES
    if has_neighbor(scene, tile_x, tile_y, side, tile_size, epsilon)
  ]


def strip_rect(
  tile_x: float,
  tile_y: float,
  side: str,
  tile_size: int = TILE_SIZE,
  strip_size: int = STRIP_SIZE,
) -> Rect:
  """
  World rectangle of the neighbor strip adjacent to the new tile.

  e.g. the left neighbor contributes its rightmost strip_size columns.
  """
  if side == "left":
    return Rect(tile_x - strip_size, tile_y, strip_size, tile_size)
  if side == "right":
    return Rect(tile_x + tile_size, tile_y, strip_size, tile_size)
  if side == "top":
    return Rect(tile_x, tile_y - strip_size, tile_size, strip_size)
  if side == "bottom":
    return Rect(tile_x, tile_y + tile_size, tile_size, strip_size)
  raise ValueError(f"Invalid side '{side}'. Must be one of: {', '.join(SIDES)}")


def extract_neighbor_strips(
  scene: Scene,
  tile_x: float,
  tile_y: float,
  sides: list[str],
  tile_size: int = TILE_SIZE,
  strip_size: int = STRIP_SIZE,
) -> dict[str, PixelBuffer]:
  """Render each present neighbor's adjacent strip (opaque black background)."""
  rects = {side: strip_rect(tile_x, tile_y, side, tile_size, strip_size) for side in sides}
  if not rects:
    return {}

  # Decode everything the strips touch once, then render each strip from it
  area = bounding_box(rects.values())
  needed = [layer for layer in scene.visible_layers() if intersects(layer.rect, area)]
  images = decode_layer_images(needed)

  return {
    side: render_region(rect, scene, background=OPAQUE_BLACK, images=images)
    for side, rect in rects.items()
  }


# =============================================================================
# Canvas layout
# =============================================================================


@dataclass(frozen=True)
class StitchLayout:
  """
  Where everything sits on the square stitch canvas.

  target_x / target_y is the new tile's top-left corner on the canvas. Strips
  on the left/top push the tile inward; strips on the right/bottom sit after
  it, so every present strip is flush against its canvas edge.
  """

  sides: tuple[str, ...]
  tile_size: int
  strip_size: int
  content_width: int
  content_height: int
  canvas_size: int
  target_x: int
  target_y: int

  def strip_offset(self, side: str) -> tuple[int, int]:
    if side == "left":
      return (0, self.target_y)
    if side == "right":
      return (self.target_x + self.tile_size, self.target_y)
    if side == "top":
      return (self.target_x, 0)
    if side == "bottom":
      return (self.target_x, self.target_y + self.tile_size)
    raise ValueError(f"Invalid side '{side}'. Must be one of: {', '.join(SIDES)}")

  @property
  def target_rect(self) -> Rect:
    return Rect(self.target_x, self.target_y, self.tile_size, self.tile_size)

  def output_crop_box(
    self, output_width: int, output_height: int
  ) -> tuple[float, float, float, float]:
    """
    The tile region inside a generator output of the given size.

    Returns:
      (left, top, right, bottom) in output pixels, possibly fractional
    """
    scale_x = output_width / self.canvas_size
    scale_y = output_height / self.canvas_size
    left = self.target_x * scale_x
    top = self.target_y * scale_y
    return (
      left,
      top,
      left + self.tile_size * scale_x,
      top + self.tile_size * scale_y,
    )


def plan_layout(
  sides: list[str] | tuple[str, ...],
  tile_size: int = TILE_SIZE,
  strip_size: int = STRIP_SIZE,
) -> StitchLayout:
  """
  Compute the stitch canvas layout for a set of present neighbor sides.

  The canvas is forced square (side = max of content width and height) so the
  generator does not distort the content anisotropically.
  """
  unknown = set(sides) - set(SIDES)
  if unknown:
    raise ValueError(f"Invalid sides: {sorted(unknown)}")

  content_w = tile_size
  content_h = tile_size
  target_x = 0
  target_y = 0

  if "left" in sides:
    content_w += strip_size
    target_x += strip_size
  if "right" in sides:
    content_w += strip_size
  if "top" in sides:
    content_h += strip_size
    target_y += strip_size
  if "bottom" in sides:
    content_h += strip_size

  return StitchLayout(
    sides=tuple(side for side in SIDES if side in sides),
    tile_size=tile_size,
    strip_size=strip_size,
    content_width=content_w,
    content_height=content_h,
    canvas_size=max(content_w, content_h),
    target_x=target_x,
    target_y=target_y,
  )


def build_stitch_canvas(
  layout: StitchLayout,
  strips: dict[str, PixelBuffer],
  neutral_fill: RGBA = NEUTRAL_FILL,
  marker_color: RGBA = MARKER_COLOR,
) -> PixelBuffer:
  """
  Paint the generation canvas.

  Order: neutral fill, neighbor strips, marker fill over the tile region, then
  the strips again so no marker pixel covers a constraint.
  """
  canvas = PixelBuffer.blank(layout.canvas_size, layout.canvas_size, neutral_fill).to_image()

  def paste_strips() -> None:
    for side in layout.sides:
      strip = strips.get(side)
      if strip is None:
        continue
      canvas.paste(strip.to_image(), layout.strip_offset(side))

  paste_strips()

  draw = ImageDraw.Draw(canvas)
  draw.rectangle(
    [
      layout.target_x,
      layout.target_y,
      layout.target_x + layout.tile_size - 1,
      layout.target_y + layout.tile_size - 1,
    ],
    fill=marker_color,
  )

  paste_strips()

  return PixelBuffer.from_image(canvas)


def crop_generated_tile(generated: PixelBuffer, layout: StitchLayout) -> PixelBuffer:
  """
  Recover the new tile from the generator's output at native resolution.

  The output is always exactly tile_size x tile_size.
  """
  box = layout.output_crop_box(generated.width, generated.height)
  logger.debug(
    f"Cropping generated {generated.width}x{generated.height} at "
    f"({box[0]:.1f}, {box[1]:.1f})-({box[2]:.1f}, {box[3]:.1f}) "
    f"for canvas {layout.canvas_size}"
  )
  return generated.crop_resized(
    box, layout.tile_size, layout.tile_size, Image.Resampling.LANCZOS
  )


# =============================================================================
# Stitcher
# =============================================================================


@dataclass
class StitchRequest:
  """Everything captured before the generator is called."""

  tile_x: float
  tile_y: float
  layout: StitchLayout
  canvas: PixelBuffer
  strips: dict[str, PixelBuffer] = field(default_factory=dict)

  @property
  def sides(self) -> tuple[str, ...]:
    return self.layout.sides

  @property
  def has_neighbors(self) -> bool:
    return bool(self.layout.sides)


class TileStitcher:
  """Builds stitch canvases and maps generator output back to tiles."""

  def __init__(
    self,
    tile_size: int = TILE_SIZE,
    strip_size: int = STRIP_SIZE,
    epsilon: float = NEIGHBOR_EPSILON,
  ):
    if strip_size <= 0 or strip_size > tile_size:
      raise ValueError(
        f"Strip size must be in (0, {tile_size}], got {strip_size}"
      )
    self.tile_size = tile_size
    self.strip_size = strip_size
    self.epsilon = epsilon

  def find_neighbors(self, scene: Scene, tile_x: float, tile_y: float) -> list[str]:
    return find_neighbors(scene, tile_x, tile_y, self.tile_size, self.epsilon)

  def prepare(self, scene: Scene, tile_x: float, tile_y: float) -> StitchRequest:
    """Capture neighbor context and paint the canvas for a new tile."""
    sides = self.find_neighbors(scene, tile_x, tile_y)
    layout = plan_layout(sides, self.tile_size, self.strip_size)
    strips = extract_neighbor_strips(
      scene, tile_x, tile_y, list(layout.sides), self.tile_size, self.strip_size
    )
    canvas = build_stitch_canvas(layout, strips)
    logger.info(
      f"Stitch canvas {layout.canvas_size}px for tile ({tile_x}, {tile_y}), "
      f"fixed edges: {', '.join(layout.sides) or 'none'}"
    )
    return StitchRequest(tile_x, tile_y, layout, canvas, strips)

  def finish(self, request: StitchRequest, generated: PixelBuffer) -> PixelBuffer:
    return crop_generated_tile(generated, request.layout)

  def stitch(
    self,
    scene: Scene,
    tile_x: float,
    tile_y: float,
    generate: Callable[[StitchRequest], PixelBuffer],
  ) -> PixelBuffer:
    """Prepare, hand the canvas to the generator, and crop the result back."""
    request = self.prepare(scene, tile_x, tile_y)
    return self.finish(request, generate(request))
