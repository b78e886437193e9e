"""
Tests for project_db.py
"""

import pytest
from conftest import base_tile, object_layer

from map_canvas import project_db
from map_canvas.config import EditorConfig, MapSettings
from map_canvas.geometry import Rect
from map_canvas.layers import Scene
from map_canvas.viewport import ViewState


@pytest.fixture
def conn(tmp_path):
  connection = project_db.connect(tmp_path / "world.db")
  yield connection
  connection.close()


class TestScenePersistence:
  def test_empty_project(self, conn) -> None:
    assert project_db.load_scene(conn) is None

  def test_round_trip_preserves_order_and_flags(self, conn) -> None:
    base = base_tile(0, 0)
    # Same z as the base: only sequence order decides which draws on top
    obj = object_layer(Rect(10.5, 20, 30, 40), z_index=0, name="tree")
    scene = Scene((base, obj)).set_visible(base.id, False)

    assert project_db.save_scene(conn, scene) == 2
    loaded = project_db.load_scene(conn)

    assert loaded.ids == [base.id, obj.id]
    assert loaded == scene
    assert not loaded.get(base.id).visible
    assert loaded.get(obj.id).rect == Rect(10.5, 20, 30, 40)

  def test_saved_empty_scene_stays_empty(self, conn) -> None:
    project_db.save_scene(conn, Scene((base_tile(0, 0),)))
    project_db.save_scene(conn, Scene())
    assert project_db.load_scene(conn) == Scene()

  def test_save_replaces_previous(self, conn) -> None:
    project_db.save_scene(conn, Scene((base_tile(0, 0), base_tile(1024, 0))))
    only = base_tile(0, 1024)
    project_db.save_scene(conn, Scene((only,)))
    assert project_db.load_scene(conn).ids == [only.id]


class TestMetadata:
  def test_missing_key_default(self, conn) -> None:
    assert project_db.get_metadata(conn, "nope", "fallback") == "fallback"

  def test_overwrite(self, conn) -> None:
    project_db.set_metadata(conn, project_db.LAST_BASE_PROMPT_KEY, "sand")
    project_db.set_metadata(conn, project_db.LAST_BASE_PROMPT_KEY, "snow")
    assert project_db.get_metadata(conn, project_db.LAST_BASE_PROMPT_KEY) == "snow"

  def test_view(self, conn) -> None:
    assert project_db.load_view(conn) == ViewState()
    project_db.save_view(conn, ViewState(1024, -512))
    assert project_db.load_view(conn) == ViewState(1024, -512)

  def test_config(self, conn) -> None:
    assert project_db.load_config(conn) is None
    config = EditorConfig(tile_size=512, map_settings=MapSettings(projection="Sidescroller"))
    project_db.save_config(conn, config)
    assert project_db.load_config(conn) == config
