"""
Layer store: the ordered, persistent collection of placed raster layers.

A Scene never changes once built. Every mutation returns a new Scene that
shares the untouched Layer objects with its predecessor, so history can keep
old snapshots by reference.

Rendering order is governed by z_index; sequence order only breaks ties
(later in the sequence draws on top) and keeps layer identity stable for undo.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterator

from map_canvas.errors import LayerNotFoundError
from map_canvas.geometry import Point, Rect
from map_canvas.pixels import PixelBuffer

# Offset added to the layer count when stacking a new object layer
OBJECT_Z_OFFSET = 10


class LayerKind(str, Enum):
  BASE = "base"
  OBJECT = "object"


def new_layer_id() -> str:
  return uuid.uuid4().hex


@dataclass(frozen=True)
class Layer:
  """
  A placed raster layer.

  image_data holds the encoded image at its native resolution; the
  placement (x, y, width, height) may be a different size, in which case the
  image is scaled when drawn.
  """

  id: str
  name: str
  kind: LayerKind
  image_data: bytes = field(repr=False)
  x: float
  y: float
  width: float
  height: float
  visible: bool = True
  z_index: int = 0

  @property
  def rect(self) -> Rect:
    return Rect(self.x, self.y, self.width, self.height)

  @property
  def is_base(self) -> bool:
    return self.kind == LayerKind.BASE

  @property
  def is_movable(self) -> bool:
    """Base tiles stay on the grid; only object layers can be dragged."""
    return self.kind == LayerKind.OBJECT

  def decode(self) -> PixelBuffer:
    return PixelBuffer.from_png_bytes(self.image_data)


def make_layer(
  name: str,
  kind: LayerKind,
  image: PixelBuffer,
  rect: Rect,
  z_index: int = 0,
  layer_id: str | None = None,
  visible: bool = True,
) -> Layer:
  """Build a layer from a decoded buffer and a world placement."""
  return Layer(
    id=layer_id or new_layer_id(),
    name=name,
    kind=kind,
    image_data=image.to_png_bytes(),
    x=rect.x,
    y=rect.y,
    width=rect.width,
    height=rect.height,
    visible=visible,
    z_index=z_index,
  )


@dataclass(frozen=True)
class Scene:
  """An immutable, ordered set of layers with unique ids."""

  layers: tuple[Layer, ...] = ()

  def __post_init__(self):
    ids = [layer.id for layer in self.layers]
    if len(ids) != len(set(ids)):
      raise ValueError("Layer ids must be unique within a scene")

  def __len__(self) -> int:
    return len(self.layers)

  def __iter__(self) -> Iterator[Layer]:
    return iter(self.layers)

  def __contains__(self, layer_id: object) -> bool:
    return any(layer.id == layer_id for layer in self.layers)

  # ===========================================================================
  # Queries
  # ===========================================================================

  def get(self, layer_id: str) -> Layer:
    for layer in self.layers:
      if layer.id == layer_id:
        return layer
    raise LayerNotFoundError(layer_id)

  def find(self, layer_id: str | None) -> Layer | None:
    if layer_id is None:
      return None
    for layer in self.layers:
      if layer.id == layer_id:
        return layer
    return None

  @property
  def ids(self) -> list[str]:
    return [layer.id for layer in self.layers]

  def visible_layers(self) -> list[Layer]:
    return [layer for layer in self.layers if layer.visible]

  def base_layers(self) -> list[Layer]:
    return [layer for layer in self.layers if layer.kind == LayerKind.BASE]

  def sorted_by_z(self, visible_only: bool = True) -> list[Layer]:
    """Layers in draw order. sorted() is stable, so ties keep sequence order."""
    layers = self.visible_layers() if visible_only else list(self.layers)
    return sorted(layers, key=lambda layer: layer.z_index)

  def hit_test(self, point: Point) -> Layer | None:
    """The topmost visible layer whose placement contains a world point."""
    for layer in reversed(self.sorted_by_z()):
      if layer.rect.contains_point(point):
        return layer
    return None

  def next_object_z(self) -> int:
    return len(self.layers) + OBJECT_Z_OFFSET

  # ===========================================================================
  # Mutations (each returns a new Scene)
  # ===========================================================================

  def add_layer(self, layer: Layer) -> Scene:
    if layer.id in self:
      raise ValueError(f"Duplicate layer id: {layer.id}")
    return Scene(self.layers + (layer,))

  def prepend_layer(self, layer: Layer) -> Scene:
    if layer.id in self:
      raise ValueError(f"Duplicate layer id: {layer.id}")
    return Scene((layer,) + self.layers)

  def remove_layer(self, layer_id: str) -> Scene:
    self.get(layer_id)
    return Scene(tuple(layer for layer in self.layers if layer.id != layer_id))

  def remove_where(self, predicate) -> Scene:
    return Scene(tuple(layer for layer in self.layers if not predicate(layer)))

  def _update(self, layer_id: str, **changes) -> Scene:
    self.get(layer_id)
    return Scene(
      tuple(
        replace(layer, **changes) if layer.id == layer_id else layer
        for layer in self.layers
      )
    )

  def set_visible(self, layer_id: str, visible: bool) -> Scene:
    return self._update(layer_id, visible=visible)

  def toggle_visible(self, layer_id: str) -> Scene:
    return self.set_visible(layer_id, not self.get(layer_id).visible)

  def set_position(self, layer_id: str, x: float, y: float) -> Scene:
    return self._update(layer_id, x=x, y=y)

  def set_pixel_data(self, layer_id: str, buffer: PixelBuffer) -> Scene:
    return self._update(layer_id, image_data=buffer.to_png_bytes())

  def rename(self, layer_id: str, name: str) -> Scene:
    return self._update(layer_id, name=name)
