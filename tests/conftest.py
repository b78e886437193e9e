"""Shared fixtures: scene builders and a scripted stand-in for the image generator."""

import pytest

from map_canvas.geometry import Rect
from map_canvas.layers import Layer, LayerKind, Scene, make_layer
from map_canvas.pixels import RGBA, PixelBuffer


class FakeGenerator:
  """
  Records every request and answers with a fixed image (or raises).

  `image` may also be a callable taking (prompt, context_image) for tests
  that need the response to depend on the request.
  """

  def __init__(self, image=None, error: Exception | None = None):
    self.image = image
    self.error = error
    self.calls: list[tuple[str, PixelBuffer | None]] = []

  def generate(self, prompt: str, context_image: PixelBuffer | None = None) -> PixelBuffer:
    self.calls.append((prompt, context_image))
    if self.error is not None:
      raise self.error
    if callable(self.image):
      return self.image(prompt, context_image)
    return self.image


def solid(width: int, height: int, color: RGBA) -> PixelBuffer:
  return PixelBuffer.blank(width, height, color)


def base_tile(
  x: float, y: float, color: RGBA = (40, 120, 40, 255), size: int = 1024, pixels: int = 16
) -> Layer:
  """A base layer whose small native image is stretched over a full tile."""
  return make_layer(
    f"Base {x},{y}",
    LayerKind.BASE,
    solid(pixels, pixels, color),
    Rect(x, y, size, size),
  )


def object_layer(
  rect: Rect, color: RGBA = (200, 30, 30, 255), z_index: int = 10, name: str = "obj"
) -> Layer:
  return make_layer(
    name,
    LayerKind.OBJECT,
    solid(int(rect.width), int(rect.height), color),
    rect,
    z_index=z_index,
  )


@pytest.fixture
def fake_generator():
  return FakeGenerator


@pytest.fixture
def single_base_scene() -> Scene:
  return Scene((base_tile(0, 0),))
