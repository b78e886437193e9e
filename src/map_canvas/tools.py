"""
Tool selection state and the pointer interaction state machine.

One transition function, ToolController.handle, drives every pointer event:

    idle --down--> selecting | moving_layer | erasing | brushing
         --move--> (update transient state only)
         --up/leave--> commit or discard, back to idle

Pointer events arrive in screen space (relative to the viewport's top-left
corner) and are mapped to world space with the current ViewState.

The controller never touches history. It returns an InteractionOutcome that
tells the editor which scene to show while dragging (working) and which scene
to push onto history (commit).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from map_canvas.geometry import Point, Rect
from map_canvas.layers import Scene
from map_canvas.mask_editor import DEFAULT_TOOL_SIZE, BrushMask, EraserEdit
from map_canvas.viewport import ViewState, rect_screen_to_world, screen_to_world

logger = logging.getLogger(__name__)

# Rectangle drags must exceed this many screen units in both axes
MIN_SELECTION_SIZE = 10


class Tool(str, Enum):
  POINTER = "pointer"
  RECTANGLE = "rectangle"
  BRUSH = "brush"
  ERASER = "eraser"


class InteractionMode(str, Enum):
  IDLE = "idle"
  SELECTING = "selecting"
  MOVING_LAYER = "moving_layer"
  ERASING = "erasing"
  BRUSHING = "brushing"


class PointerEventKind(str, Enum):
  DOWN = "down"
  MOVE = "move"
  UP = "up"
  LEAVE = "leave"


@dataclass(frozen=True)
class PointerEvent:
  kind: PointerEventKind
  x: float
  y: float

  @property
  def point(self) -> Point:
    return Point(self.x, self.y)

  @classmethod
  def down(cls, x: float, y: float) -> PointerEvent:
    return cls(PointerEventKind.DOWN, x, y)

  @classmethod
  def move(cls, x: float, y: float) -> PointerEvent:
    return cls(PointerEventKind.MOVE, x, y)

  @classmethod
  def up(cls, x: float, y: float) -> PointerEvent:
    return cls(PointerEventKind.UP, x, y)

  @classmethod
  def leave(cls, x: float, y: float) -> PointerEvent:
    return cls(PointerEventKind.LEAVE, x, y)


@dataclass(frozen=True)
class InteractionOutcome:
  """
  What the editor should do after an event.

  Attributes:
    working: Scene to display while an interaction is live (None = unchanged)
    commit: Scene to push onto history (None = nothing to commit)
  """

  working: Scene | None = None
  commit: Scene | None = None


NO_CHANGE = InteractionOutcome()


class ToolController:
  """Holds the active tool and all transient interaction state."""

  def __init__(
    self,
    viewport_width: int = 1024,
    viewport_height: int = 1024,
    tool_size: float = DEFAULT_TOOL_SIZE,
    min_selection_size: float = MIN_SELECTION_SIZE,
  ):
    self.tool = Tool.POINTER
    self.mode = InteractionMode.IDLE
    self.tool_size = tool_size
    self.min_selection_size = min_selection_size

    self.selection: Rect | None = None
    self.selected_layer_id: str | None = None
    self.brush_mask = BrushMask(viewport_width, viewport_height)
    self.eraser: EraserEdit | None = None

    self._start = Point(0, 0)
    self._cursor = Point(0, 0)
    self._drag_origin = Point(0, 0)

  # ===========================================================================
  # Tool selection
  # ===========================================================================

  def set_tool(self, tool: Tool | str) -> None:
    """
    Switch tools. Leaving the rectangle tool drops the selection, leaving the
    brush tool clears the mask, and any in-progress erase is abandoned.
    """
    tool = Tool(tool)
    self.tool = tool
    if tool != Tool.RECTANGLE:
      self.selection = None
    if tool != Tool.BRUSH:
      self.brush_mask.clear()
    self.abort()

  def select_layer(self, layer_id: str | None) -> None:
    if self.eraser is not None and self.eraser.layer_id != layer_id:
      self.eraser = None
      self.mode = InteractionMode.IDLE
    self.selected_layer_id = layer_id

  def abort(self) -> None:
    """Drop any live interaction without committing."""
    self.eraser = None
    self.mode = InteractionMode.IDLE

  def clear_selection(self) -> None:
    self.selection = None

  def clear_brush(self) -> None:
    self.brush_mask.clear()

  @property
  def cursor(self) -> Point:
    """Last pointer position seen, in screen space."""
    return self._cursor

  # ===========================================================================
  # Transition function
  # ===========================================================================

  def handle(self, event: PointerEvent, scene: Scene, view: ViewState) -> InteractionOutcome:
    """
    Advance the state machine by one pointer event.

    Args:
      event: Pointer event in screen space
      scene: The scene currently displayed (the editor's working scene)
      view: Current viewport offset

    Returns:
      What the editor should display and/or commit
    """
    screen = event.point
    world = screen_to_world(screen, view)

    if event.kind == PointerEventKind.DOWN:
      self._cursor = screen
      return self._on_down(screen, world, scene)
    if event.kind == PointerEventKind.MOVE:
      self._cursor = screen
      return self._on_move(screen, world, scene)
    # Leaving the viewport ends an interaction exactly like releasing
    if event.kind == PointerEventKind.UP:
      self._cursor = screen
    return self._on_up(view, scene)

  def _on_down(self, screen: Point, world: Point, scene: Scene) -> InteractionOutcome:
    self._start = screen

    if self.tool == Tool.ERASER:
      target = scene.hit_test(world)
      if target is None:
        return NO_CHANGE
      self.select_layer(target.id)
      self.eraser = EraserEdit(target)
      self.eraser.apply(world, self.tool_size)
      self.mode = InteractionMode.ERASING
      return NO_CHANGE

    if self.tool == Tool.BRUSH:
      self.mode = InteractionMode.BRUSHING
      self.brush_mask.paint(screen, self.tool_size)
      self.selection = None
      return NO_CHANGE

    if self.tool == Tool.RECTANGLE:
      self.mode = InteractionMode.SELECTING
      self.select_layer(None)
      self.selection = None
      return NO_CHANGE

    # Pointer: the current selection wins when it is under the cursor
    target = scene.hit_test(world)
    current = scene.find(self.selected_layer_id)
    if current is not None and current.visible and current.rect.contains_point(world):
      target = current

    if target is not None and target.is_movable:
      self.select_layer(target.id)
      self.mode = InteractionMode.MOVING_LAYER
      self._drag_origin = Point(target.x, target.y)
    else:
      self.select_layer(None)
    return NO_CHANGE

  def _on_move(self, screen: Point, world: Point, scene: Scene) -> InteractionOutcome:
    if self.mode == InteractionMode.MOVING_LAYER and self.selected_layer_id in scene:
      # Screen deltas equal world deltas
      delta = screen - self._start
      moved = scene.set_position(
        self.selected_layer_id,
        self._drag_origin.x + delta.x,
        self._drag_origin.y + delta.y,
      )
      return InteractionOutcome(working=moved)

    if self.mode == InteractionMode.ERASING and self.eraser is not None:
      self.eraser.apply(world, self.tool_size)
      return NO_CHANGE

    if self.mode == InteractionMode.BRUSHING:
      self.brush_mask.paint(screen, self.tool_size)

    return NO_CHANGE

  def _on_up(self, view: ViewState, scene: Scene) -> InteractionOutcome:
    mode = self.mode
    self.mode = InteractionMode.IDLE

    if mode == InteractionMode.MOVING_LAYER:
      layer = scene.find(self.selected_layer_id)
      if layer is None or (layer.x, layer.y) == self._drag_origin.to_tuple():
        return NO_CHANGE
      logger.debug(f"Moved layer {layer.id} to ({layer.x}, {layer.y})")
      return InteractionOutcome(commit=scene)

    if mode == InteractionMode.SELECTING:
      drag = Rect.from_corners(self._start, self._cursor)
      if drag.width > self.min_selection_size and drag.height > self.min_selection_size:
        self.selection = rect_screen_to_world(drag, view)
      return NO_CHANGE

    if mode == InteractionMode.ERASING and self.eraser is not None:
      eraser, self.eraser = self.eraser, None
      if eraser.layer_id not in scene:
        return NO_CHANGE
      return InteractionOutcome(commit=eraser.commit(scene))

    return NO_CHANGE
