"""
Tests for editor.py

End-to-end flows through MapEditor with a scripted generator standing in for
the network: map extension, base textures, the three object modes, failure
atomicity and single-flight generation.
"""

import threading

import pytest
from conftest import FakeGenerator, base_tile, object_layer, solid

from map_canvas.config import EditorConfig
from map_canvas.debug_log import DebugCategory
from map_canvas.editor import START_LAYER_NAME, MapEditor
from map_canvas.errors import GenerationError, GenerationInProgressError, PreconditionError
from map_canvas.geometry import Rect
from map_canvas.layers import LayerKind, Scene
from map_canvas.tools import PointerEvent, Tool
from map_canvas.viewport import ViewState

GRASS = (60, 140, 60, 255)


def editor_with(scene: Scene | None = None, image=None, **kwargs):
  generator = FakeGenerator(image if image is not None else solid(1024, 1024, GRASS))
  return MapEditor(generator=generator, scene=scene, **kwargs), generator


# =============================================================================
# Session Tests
# =============================================================================


class TestSession:
  def test_bootstrap_scene(self) -> None:
    editor = MapEditor()
    assert len(editor.history) == 1
    assert editor.history.cursor == 0
    (base,) = editor.scene.layers
    assert base.name == START_LAYER_NAME
    assert base.rect == Rect(0, 0, 1024, 1024)
    assert base.decode().size == (64, 64)
    assert base.decode().pixel(0, 0) == (0x22, 0x38, 0x22, 255)
    assert base.decode().pixel(40, 0) == (0x1A, 0x2E, 0x1A, 255)

  def test_undo_redo(self, single_base_scene) -> None:
    editor, _ = editor_with(single_base_scene)
    layer_id = single_base_scene.layers[0].id
    editor.toggle_visibility(layer_id)
    assert not editor.scene.get(layer_id).visible
    editor.undo()
    assert editor.scene.get(layer_id).visible
    editor.redo()
    assert not editor.scene.get(layer_id).visible

  def test_delete_layer_deselects(self) -> None:
    obj = object_layer(Rect(10, 10, 20, 20))
    editor, _ = editor_with(Scene((base_tile(0, 0), obj)))
    editor.tools.select_layer(obj.id)
    editor.delete_layer(obj.id)
    assert obj.id not in editor.scene
    assert editor.tools.selected_layer_id is None

  def test_move_base_layer_rejected(self, single_base_scene) -> None:
    editor, _ = editor_with(single_base_scene)
    with pytest.raises(PreconditionError):
      editor.move_layer(single_base_scene.layers[0].id, 5, 5)

  def test_drag_commits_once(self) -> None:
    obj = object_layer(Rect(100, 100, 50, 50))
    editor, _ = editor_with(Scene((base_tile(0, 0), obj)))
    editor.pointer(PointerEvent.down(110, 110))
    editor.pointer(PointerEvent.move(130, 110))
    editor.pointer(PointerEvent.move(160, 110))
    # Live preview shows the move, history does not have it yet
    assert editor.scene.get(obj.id).x == 150
    assert editor.committed_scene.get(obj.id).x == 100
    assert len(editor.history) == 1
    editor.pointer(PointerEvent.up(160, 110))
    assert len(editor.history) == 2
    assert editor.committed_scene.get(obj.id).x == 150

  def test_pan(self) -> None:
    editor, _ = editor_with()
    editor.pan(10, -20)
    editor.pan_by_key("left", fast=True)
    assert editor.view == ViewState(-118, -20)


# =============================================================================
# Map Extension Tests
# =============================================================================


class TestNavigate:
  def test_extend_right_of_single_tile(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene)
    before = len(editor.history)

    layer = editor.navigate("right")

    assert layer is not None
    assert layer.kind == LayerKind.BASE
    assert layer.rect == Rect(1024, 0, 1024, 1024)
    assert layer.name == "Base (1,0)"
    assert editor.scene.layers[-1].id == layer.id
    assert len(editor.history) == before + 1
    assert editor.history.cursor == len(editor.history) - 1
    assert editor.view == ViewState(1024, 0)

    prompt, context = generator.calls[0]
    assert "LEFT" in prompt
    assert "grassland" in prompt
    assert context.size == (1280, 1280)
    assert editor.debug_log.latest.category == DebugCategory.SEAMLESS_TILE

  def test_generated_tile_has_native_size(self, single_base_scene) -> None:
    editor, _ = editor_with(single_base_scene, image=solid(1024, 1024, GRASS))
    layer = editor.navigate("bottom")
    assert layer.decode().size == (1024, 1024)

  def test_existing_tile_just_moves_camera(self) -> None:
    scene = Scene((base_tile(0, 0), base_tile(1024 + 30, 0)))
    editor, generator = editor_with(scene)
    assert editor.navigate("right") is None
    assert generator.calls == []
    assert editor.view == ViewState(1024, 0)
    assert len(editor.history) == 1

  def test_view_snaps_before_moving(self, single_base_scene) -> None:
    editor, _ = editor_with(single_base_scene, view=ViewState(700, 100))
    layer = editor.navigate("bottom")
    assert layer.rect == Rect(1024, 1024, 1024, 1024)

  def test_no_neighbors_uses_base_texture(self) -> None:
    editor, generator = editor_with(Scene(), view=ViewState(5000, 5000))
    editor.navigate("right")
    prompt, context = generator.calls[0]
    assert context is None
    assert "Seamless 2D game terrain texture" in prompt

  def test_generation_failure_leaves_scene_untouched(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene)
    generator.error = GenerationError("boom")
    with pytest.raises(GenerationError):
      editor.navigate("right")
    assert editor.scene is single_base_scene
    assert len(editor.history) == 1
    assert not editor.is_generating

  def test_uses_last_base_prompt_as_theme(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene, last_base_prompt="volcanic rock")
    editor.navigate("left")
    assert "volcanic rock" in generator.calls[0][0]


# =============================================================================
# Base Texture Tests
# =============================================================================


class TestGenerateBase:
  def test_replaces_base_in_cell_and_prepends(self) -> None:
    old = base_tile(0, 0)
    obj = object_layer(Rect(10, 10, 20, 20))
    editor, generator = editor_with(Scene((old, obj)), view=ViewState(200, -300))

    layer = editor.generate_base("desert sand")

    assert editor.scene.layers[0].id == layer.id
    assert old.id not in editor.scene
    assert obj.id in editor.scene
    assert layer.name == "Base: desert sand"
    assert layer.rect == Rect(0, 0, 1024, 1024)
    assert editor.last_base_prompt == "desert sand"
    assert generator.calls[0][1] is None

  def test_empty_prompt(self) -> None:
    editor, generator = editor_with()
    with pytest.raises(PreconditionError):
      editor.generate_base("   ")
    assert generator.calls == []


# =============================================================================
# Object Generation Tests
# =============================================================================


class TestGenerateAsset:
  def test_isolated_asset_chroma_keyed(self, single_base_scene) -> None:
    def magenta_with_subject(prompt, context):
      img = solid(64, 64, (255, 0, 255, 255)).copy_pixels()
      img[20:40, 20:40] = (120, 80, 40, 255)
      return solid(64, 64, (0, 0, 0, 0)).with_pixels(img)

    editor, generator = editor_with(single_base_scene, image=magenta_with_subject)
    layer = editor.generate_asset("wooden crate")

    assert layer.kind == LayerKind.OBJECT
    assert layer.rect == Rect(384, 384, 256, 256)
    assert layer.z_index == len(single_base_scene) + 10
    pixels = layer.decode()
    assert pixels.pixel(0, 0)[3] == 0
    assert pixels.pixel(30, 30) == (120, 80, 40, 255)
    assert generator.calls[0][1] is None
    assert "PURE MAGENTA" in generator.calls[0][0]

  def test_rectangle_mode_uses_square_context(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene, image=solid(512, 512, (250, 250, 250, 255)))
    editor.set_tool(Tool.RECTANGLE)
    editor.pointer(PointerEvent.down(100, 100))
    editor.pointer(PointerEvent.move(300, 200))
    editor.pointer(PointerEvent.up(300, 200))
    assert editor.tools.selection == Rect(100, 100, 200, 100)

    layer = editor.generate_asset("stone well")

    assert layer.rect == Rect(100, 50, 200, 200)
    _, context = generator.calls[0]
    assert context.size == (512, 512)
    assert editor.tools.selection is None
    assert editor.tools.tool == Tool.POINTER
    assert editor.tools.selected_layer_id == layer.id

  def test_rectangle_mode_keeps_only_changes(self, single_base_scene) -> None:
    def echo_with_dot(prompt, context):
      pixels = context.copy_pixels()
      pixels[200:300, 200:300] = (255, 255, 255, 255)
      return context.with_pixels(pixels)

    editor, _ = editor_with(single_base_scene, image=echo_with_dot)
    editor.set_tool(Tool.RECTANGLE)
    editor.tools.selection = Rect(0, 0, 400, 400)
    layer = editor.generate_asset("white flower")
    pixels = layer.decode()
    assert pixels.pixel(10, 10)[3] == 0
    assert pixels.pixel(250, 250) == (255, 255, 255, 255)

  def test_brush_mode(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene, image=solid(512, 512, (250, 250, 250, 255)))
    editor.set_tool(Tool.BRUSH)
    editor.pointer(PointerEvent.down(200, 200))
    for x in (215, 230, 245, 260):
      editor.pointer(PointerEvent.move(x, 200))
    editor.pointer(PointerEvent.up(260, 200))
    bounds = editor.tools.brush_mask.content_bounds()

    layer = editor.generate_asset("bush")

    crop_size = max(bounds.width, bounds.height) + 40
    assert layer.width == crop_size
    assert layer.height == crop_size
    assert layer.rect.center.x == pytest.approx(bounds.center.x, abs=1)
    assert layer.rect.center.y == pytest.approx(bounds.center.y, abs=1)
    _, guidance = generator.calls[0]
    assert guidance.size == (512, 512)
    # The marker color shows through in the guidance image
    r, g, b, _ = guidance.pixel(256, 256)
    assert r > g and b > g
    assert editor.tools.brush_mask.is_empty()

  def test_brush_mode_requires_strokes(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene)
    editor.set_tool(Tool.BRUSH)
    with pytest.raises(PreconditionError):
      editor.generate_asset("bush")
    assert generator.calls == []

  def test_failure_keeps_selection_and_history(self, single_base_scene) -> None:
    editor, generator = editor_with(single_base_scene)
    generator.error = GenerationError("No image in Gemini response")
    editor.set_tool(Tool.RECTANGLE)
    editor.tools.selection = Rect(0, 0, 100, 100)
    with pytest.raises(GenerationError):
      editor.generate_asset("tree")
    assert editor.tools.selection == Rect(0, 0, 100, 100)
    assert len(editor.history) == 1
    assert editor.scene is single_base_scene

  def test_no_generator(self, single_base_scene) -> None:
    editor = MapEditor(scene=single_base_scene)
    with pytest.raises(PreconditionError):
      editor.generate_asset("tree")


# =============================================================================
# Single-flight Tests
# =============================================================================


class TestSingleFlight:
  def test_second_request_rejected_while_pending(self, single_base_scene) -> None:
    started = threading.Event()
    release = threading.Event()

    def slow(prompt, context):
      started.set()
      release.wait(timeout=5)
      return solid(64, 64, (255, 0, 255, 255))

    editor, generator = editor_with(single_base_scene, image=slow)
    worker = threading.Thread(target=editor.generate_asset, args=("first",))
    worker.start()
    try:
      assert started.wait(timeout=5)
      assert editor.is_generating
      with pytest.raises(GenerationInProgressError):
        editor.generate_base("second")
    finally:
      release.set()
      worker.join(timeout=5)

    assert len(generator.calls) == 1
    assert not editor.is_generating
    assert len(editor.history) == 2


# =============================================================================
# Config Tests
# =============================================================================


class TestConfig:
  def test_custom_tile_size(self) -> None:
    config = EditorConfig(tile_size=512, strip_size=128, neighbor_epsilon=50)
    editor, generator = editor_with(
      Scene((base_tile(0, 0, size=512),)), image=solid(512, 512, GRASS), config=config
    )
    layer = editor.navigate("right")
    assert layer.rect == Rect(512, 0, 512, 512)
    assert generator.calls[0][1].size == (640, 640)
    assert editor.viewport == Rect(512, 0, 1024, 1024)
    assert editor.render_viewport().size == (1024, 1024)
