"""
Editor session: the control flow that ties the core together.

A MapEditor owns one map: the committed history, the working scene shown
while a drag is live, the viewport offset, the tool state and the generator.
Every generation follows the same shape:

  1. check preconditions (non-empty prompt, something painted, ...)
  2. capture pixel context from the committed scene
  3. one blocking call to the generator
  4. post-process the result into a layer
  5. commit exactly one new scene to history

A failure anywhere in 1-4 leaves the scene and history untouched. Only one
generation may be in flight at a time.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

from PIL import Image, ImageDraw

from map_canvas.compositor import overlay, render_region
from map_canvas.config import EditorConfig
from map_canvas.debug_log import DebugCategory, DebugLog, DebugRecord
from map_canvas.errors import GenerationInProgressError, PreconditionError
from map_canvas.generation.gemini_client import ImageGenerator
from map_canvas.generation.prompts import (
  base_texture_prompt,
  context_asset_prompt,
  isolated_asset_prompt,
  seamless_tile_prompt,
)
from map_canvas.geometry import Point, Rect
from map_canvas.history import History
from map_canvas.isolation import chroma_key_remove, difference_extract
from map_canvas.layers import Layer, LayerKind, Scene, make_layer
from map_canvas.pixels import OPAQUE_BLACK, PixelBuffer
from map_canvas.stitching import StitchRequest, TileStitcher
from map_canvas.tools import (
  InteractionMode,
  InteractionOutcome,
  PointerEvent,
  Tool,
  ToolController,
)
from map_canvas.viewport import (
  ViewState,
  direction_vector,
  grid_cell,
  grid_origin,
  rect_screen_to_world,
  viewport_rect,
)

logger = logging.getLogger(__name__)

START_LAYER_NAME = "Base Start"


def starter_tile() -> PixelBuffer:
  """The small checker texture stretched over the first base tile."""
  img = Image.new("RGBA", (64, 64), "#1a2e1a")
  draw = ImageDraw.Draw(img)
  draw.rectangle([0, 0, 31, 31], fill="#223822")
  draw.rectangle([32, 32, 63, 63], fill="#223822")
  return PixelBuffer.from_image(img)


def initial_scene(tile_size: int = 1024) -> Scene:
  base = make_layer(
    START_LAYER_NAME,
    LayerKind.BASE,
    starter_tile(),
    Rect(0, 0, tile_size, tile_size),
    z_index=0,
  )
  return Scene((base,))


class AssetMode(str, Enum):
  BRUSH = "brush"
  RECTANGLE = "rectangle"
  ISOLATED = "isolated"


@dataclass(frozen=True)
class ObjectPlan:
  """Context captured for an object generation, before the generator runs."""

  mode: AssetMode
  target: Rect
  context: PixelBuffer | None
  guidance: PixelBuffer | None


class MapEditor:
  """One open map and everything needed to edit it."""

  def __init__(
    self,
    generator: ImageGenerator | None = None,
    config: EditorConfig | None = None,
    scene: Scene | None = None,
    view: ViewState | None = None,
    last_base_prompt: str | None = None,
  ):
    self.config = config or EditorConfig()
    self.generator = generator
    self.view = view or ViewState()
    self.last_base_prompt = last_base_prompt or self.config.default_base_prompt

    if scene is None:
      scene = initial_scene(self.config.tile_size)
    self.history = History(scene)
    self._working = scene

    self.tools = ToolController(
      self.config.viewport_width,
      self.config.viewport_height,
      tool_size=self.config.tool_size,
    )
    self.stitcher = TileStitcher(
      self.config.tile_size, self.config.strip_size, self.config.neighbor_epsilon
    )
    self.debug_log = DebugLog()
    self._generation_lock = threading.Lock()

  # ===========================================================================
  # Scene and history
  # ===========================================================================

  @property
  def scene(self) -> Scene:
    """The scene to display (includes an in-progress drag)."""
    return self._working

  @property
  def committed_scene(self) -> Scene:
    return self.history.current

  def commit(self, scene: Scene) -> Scene:
    self.history.commit(scene)
    self._working = scene
    return scene

  def undo(self) -> Scene:
    self.tools.abort()
    self.tools.clear_selection()
    self._working = self.history.undo()
    return self._working

  def redo(self) -> Scene:
    self.tools.abort()
    self.tools.clear_selection()
    self._working = self.history.redo()
    return self._working

  # ===========================================================================
  # Layer operations
  # ===========================================================================

  def toggle_visibility(self, layer_id: str) -> Scene:
    return self.commit(self.committed_scene.toggle_visible(layer_id))

  def set_visible(self, layer_id: str, visible: bool) -> Scene:
    return self.commit(self.committed_scene.set_visible(layer_id, visible))

  def delete_layer(self, layer_id: str) -> Scene:
    scene = self.commit(self.committed_scene.remove_layer(layer_id))
    if self.tools.selected_layer_id == layer_id:
      self.tools.select_layer(None)
    return scene

  def move_layer(self, layer_id: str, x: float, y: float) -> Scene:
    """Reposition an object layer in one step (base tiles stay on the grid)."""
    layer = self.committed_scene.get(layer_id)
    if not layer.is_movable:
      raise PreconditionError(f"Base layer {layer_id} cannot be moved")
    return self.commit(self.committed_scene.set_position(layer_id, x, y))

  def rename_layer(self, layer_id: str, name: str) -> Scene:
    return self.commit(self.committed_scene.rename(layer_id, name))

  # ===========================================================================
  # Viewport and tools
  # ===========================================================================

  def pan(self, dx: float, dy: float) -> ViewState:
    self.view = self.view.pan(dx, dy)
    return self.view

  def pan_by_key(self, direction: str, fast: bool = False) -> ViewState:
    self.view = self.view.pan_by_key(direction, fast)
    return self.view

  def set_tool(self, tool: Tool | str) -> None:
    self.tools.set_tool(tool)
    self._working = self.committed_scene

  def pointer(self, event: PointerEvent) -> InteractionOutcome:
    """Feed one pointer event (screen space) through the tool state machine."""
    outcome = self.tools.handle(event, self._working, self.view)
    if outcome.working is not None:
      self._working = outcome.working
    if outcome.commit is not None:
      self.commit(outcome.commit)
    elif self.tools.mode == InteractionMode.IDLE:
      # Drag ended without a commit; drop any preview
      self._working = self.committed_scene
    return outcome

  @property
  def viewport(self) -> Rect:
    return viewport_rect(self.view, self.config.viewport_width, self.config.viewport_height)

  def render_viewport(self) -> PixelBuffer:
    return render_region(self.viewport, self.scene, background=OPAQUE_BLACK)

  # ===========================================================================
  # Generation
  # ===========================================================================

  @property
  def is_generating(self) -> bool:
    return self._generation_lock.locked()

  @contextmanager
  def _single_flight(self) -> Iterator[None]:
    if not self._generation_lock.acquire(blocking=False):
      raise GenerationInProgressError("A generation is already in progress")
    try:
      yield
    finally:
      self._generation_lock.release()

  def _require_generator(self) -> ImageGenerator:
    if self.generator is None:
      raise PreconditionError("No image generator configured")
    return self.generator

  def _dispatch(
    self, category: DebugCategory, prompt: str, context: PixelBuffer | None = None
  ) -> PixelBuffer:
    generator = self._require_generator()
    self.debug_log.append(DebugRecord(category, prompt, context))
    return generator.generate(prompt, context)

  def _snapped_origin(self) -> Point:
    tile = self.config.tile_size
    gx, gy = grid_cell(self.view, tile, tile)
    return grid_origin(gx, gy, tile, tile)

  def generate_base(self, prompt: str) -> Layer:
    """
    Generate a base texture tile at the grid cell nearest the view.

    Any base tile already in that cell is replaced. The new tile goes to the
    front of the layer sequence so everything else draws over it.
    """
    prompt = prompt.strip()
    if not prompt:
      raise PreconditionError("Base prompt is empty")

    with self._single_flight():
      self.last_base_prompt = prompt
      tile = self.config.tile_size
      origin = self._snapped_origin()

      full_prompt = base_texture_prompt(prompt, self.config.map_settings)
      image = self._dispatch(DebugCategory.BASE_TEXTURE, full_prompt)
      image = image.resized(tile, tile)

      tolerance = self.config.base_replace_tolerance
      scene = self.committed_scene.remove_where(
        lambda layer: layer.is_base
        and abs(layer.x - origin.x) < tolerance
        and abs(layer.y - origin.y) < tolerance
      )
      layer = make_layer(
        f"Base: {prompt}",
        LayerKind.BASE,
        image,
        Rect(origin.x, origin.y, tile, tile),
        z_index=0,
      )
      self.commit(scene.prepend_layer(layer))
      logger.info(f"Generated base tile at ({origin.x}, {origin.y})")
      return layer

  def base_exists_at(self, x: float, y: float) -> bool:
    tolerance = self.config.base_exists_tolerance
    return any(
      abs(layer.x - x) < tolerance and abs(layer.y - y) < tolerance
      for layer in self.committed_scene.base_layers()
    )

  def navigate(self, direction: str) -> Layer | None:
    """
    Move the camera one grid cell and extend the map if that cell is empty.

    The view is snapped to the nearest cell first. The camera moves even if
    generation then fails.

    Returns:
      The new base layer, or None if the cell already had one
    """
    dx, dy = direction_vector(direction)
    tile = self.config.tile_size
    gx, gy = grid_cell(self.view, tile, tile)
    next_gx, next_gy = gx + dx, gy + dy
    target = grid_origin(next_gx, next_gy, tile, tile)

    self.view = self.view.moved_to(target.x, target.y)

    if self.base_exists_at(target.x, target.y):
      logger.info(f"Cell ({next_gx}, {next_gy}) already has a base tile")
      return None

    self._require_generator()
    with self._single_flight():
      tile_image = self.generate_tile_at(target.x, target.y)
      layer = make_layer(
        f"Base ({next_gx},{next_gy})",
        LayerKind.BASE,
        tile_image,
        Rect(target.x, target.y, tile, tile),
        z_index=0,
      )
      self.commit(self.committed_scene.add_layer(layer))
      logger.info(f"Extended map to cell ({next_gx}, {next_gy})")
      return layer

  def generate_tile_at(self, tile_x: float, tile_y: float) -> PixelBuffer:
    """Run the stitcher for one tile (callers hold the generation lock)."""
    settings = self.config.map_settings
    theme = self.last_base_prompt

    def generate(request: StitchRequest) -> PixelBuffer:
      if not request.has_neighbors:
        prompt = base_texture_prompt(theme, settings)
        return self._dispatch(DebugCategory.BASE_TEXTURE, prompt)
      prompt = seamless_tile_prompt(request.sides, settings, theme)
      return self._dispatch(DebugCategory.SEAMLESS_TILE, prompt, request.canvas)

    return self.stitcher.stitch(self.committed_scene, tile_x, tile_y, generate)

  def _plan_brush(self) -> ObjectPlan:
    bounds = self.tools.brush_mask.content_bounds()
    if bounds is None:
      raise PreconditionError("Paint something first!")

    size = max(bounds.width, bounds.height)
    crop_size = size + 2 * self.config.brush_padding
    center = bounds.center
    crop_screen = Rect.square_around(center, crop_size)
    crop_screen = Rect(round(crop_screen.x), round(crop_screen.y), crop_size, crop_size)
    target = rect_screen_to_world(crop_screen, self.view)

    clean = render_region(target, self.committed_scene, background=OPAQUE_BLACK)
    mask = self.tools.brush_mask.export().crop(
      crop_screen.x, crop_screen.y, crop_size, crop_size
    )
    guidance = overlay(clean, mask)
    return ObjectPlan(AssetMode.BRUSH, target, clean, guidance)

  def _plan_rectangle(self, selection: Rect) -> ObjectPlan:
    size = max(selection.width, selection.height)
    target = Rect.square_around(selection.center, size)
    context = render_region(target, self.committed_scene, background=OPAQUE_BLACK)
    return ObjectPlan(AssetMode.RECTANGLE, target, context, context)

  def _plan_isolated(self) -> ObjectPlan:
    size = self.config.isolated_asset_size
    target = Rect(
      self.view.x + self.config.viewport_width / 2 - size / 2,
      self.view.y + self.config.viewport_height / 2 - size / 2,
      size,
      size,
    )
    return ObjectPlan(AssetMode.ISOLATED, target, None, None)

  def plan_object(self) -> ObjectPlan:
    """
    Pick the object generation mode from the tool state.

    Brush strokes win when the brush tool is active, then a rectangle
    selection, otherwise a free-standing asset at the viewport center.
    """
    if self.tools.tool == Tool.BRUSH and not self.tools.brush_mask.is_empty():
      return self._plan_brush()
    if self.tools.tool == Tool.BRUSH:
      raise PreconditionError("Paint something first!")
    if self.tools.selection is not None:
      return self._plan_rectangle(self.tools.selection)
    return self._plan_isolated()

  def generate_asset(self, prompt: str) -> Layer:
    """
    Generate an object layer from a prompt and the current tool state.

    Returns:
      The new object layer (already committed)
    """
    prompt = prompt.strip()
    if not prompt:
      raise PreconditionError("Asset prompt is empty")

    with self._single_flight():
      settings = self.config.map_settings
      plan = self.plan_object()

      if plan.mode == AssetMode.ISOLATED:
        raw = self._dispatch(DebugCategory.OBJECT, isolated_asset_prompt(prompt, settings))
        image = chroma_key_remove(raw, threshold=self.config.chroma_threshold)
      else:
        gen_size = self.config.generation_size
        clean = plan.context.resized(gen_size, gen_size)
        guidance = plan.guidance.resized(gen_size, gen_size)
        raw = self._dispatch(
          DebugCategory.OBJECT, context_asset_prompt(prompt, settings), guidance
        )
        image = difference_extract(clean, raw, threshold=self.config.difference_threshold)

      layer = make_layer(
        prompt,
        LayerKind.OBJECT,
        image,
        plan.target,
        z_index=self.committed_scene.next_object_z(),
      )
      self.commit(self.committed_scene.add_layer(layer))
      logger.info(f"Added {plan.mode.value} object '{prompt}' at {plan.target}")

      self.tools.clear_selection()
      self.tools.clear_brush()
      self.tools.set_tool(Tool.POINTER)
      self.tools.select_layer(layer.id)
      return layer
