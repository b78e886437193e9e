"""
Tests for cli.py

Commands run against a temporary project database; the Gemini client is
swapped for the scripted generator.
"""

import zipfile

import pytest
from conftest import FakeGenerator, solid

from map_canvas import cli, project_db
from map_canvas.editor import START_LAYER_NAME
from map_canvas.errors import GenerationError, LayerNotFoundError
from map_canvas.layers import Scene


@pytest.fixture
def project(tmp_path):
  path = tmp_path / "world.db"
  assert cli.main(["init", str(path)]) == 0
  return path


@pytest.fixture
def generator(monkeypatch):
  fake = FakeGenerator(solid(1024, 1024, (70, 130, 70, 255)))
  monkeypatch.setattr(cli, "make_generator", lambda config: fake)
  return fake


def stored_scene(path) -> Scene:
  conn = project_db.connect(path)
  try:
    return project_db.load_scene(conn)
  finally:
    conn.close()


class TestInit:
  def test_creates_starter_tile(self, project) -> None:
    scene = stored_scene(project)
    assert [layer.name for layer in scene] == [START_LAYER_NAME]

  def test_refuses_to_overwrite(self, project, capsys) -> None:
    assert cli.main(["init", str(project)]) == 1
    assert "already exists" in capsys.readouterr().out
    assert cli.main(["init", str(project), "--force"]) == 0

  def test_missing_project(self, tmp_path, capsys) -> None:
    assert cli.main(["layers", str(tmp_path / "nope.db")]) == 1
    assert "Project not found" in capsys.readouterr().out


class TestGenerationCommands:
  def test_extend_right(self, project, generator) -> None:
    assert cli.main(["extend", str(project), "right"]) == 0
    scene = stored_scene(project)
    assert len(scene) == 2
    assert scene.layers[-1].name == "Base (1,0)"

    conn = project_db.connect(project)
    try:
      assert project_db.load_view(conn).x == 1024
    finally:
      conn.close()

  def test_base_records_prompt(self, project, generator) -> None:
    assert cli.main(["base", str(project), "desert sand"]) == 0
    scene = stored_scene(project)
    assert [layer.name for layer in scene] == ["Base: desert sand"]

    conn = project_db.connect(project)
    try:
      assert project_db.get_metadata(conn, project_db.LAST_BASE_PROMPT_KEY) == "desert sand"
    finally:
      conn.close()

  def test_asset_with_rect_and_debug_dir(self, project, generator, tmp_path) -> None:
    generator.image = solid(512, 512, (240, 240, 240, 255))
    debug_dir = tmp_path / "debug"
    argv = ["asset", str(project), "well", "--rect", "100", "100", "200", "200"]
    assert cli.main(argv + ["--debug-dir", str(debug_dir)]) == 0
    layer = stored_scene(project).layers[-1]
    assert layer.name == "well"
    assert (layer.x, layer.y, layer.width, layer.height) == (100, 100, 200, 200)
    assert (debug_dir / "000_object" / "input.png").exists()

  def test_asset_rejects_negative_rect(self, project, generator, capsys) -> None:
    argv = ["asset", str(project), "tree", "--rect", "0", "0", "-50", "50"]
    assert cli.main(argv) == 1
    assert "Selection size must be positive" in capsys.readouterr().out
    assert generator.calls == []

  def test_generation_error_exit_code(self, project, generator, capsys) -> None:
    generator.error = GenerationError("No image in Gemini response")
    assert cli.main(["base", str(project), "snow"]) == 1
    assert "No image" in capsys.readouterr().out
    assert len(stored_scene(project)) == 1


class TestLayerCommands:
  def test_hide_by_prefix(self, project) -> None:
    layer_id = stored_scene(project).layers[0].id
    assert cli.main(["hide", str(project), layer_id[:8]]) == 0
    assert not stored_scene(project).get(layer_id).visible

  def test_rename(self, project) -> None:
    layer_id = stored_scene(project).layers[0].id
    assert cli.main(["rename", str(project), layer_id[:8], "Meadow"]) == 0
    assert stored_scene(project).get(layer_id).name == "Meadow"

  def test_deleting_last_layer_persists(self, project) -> None:
    layer_id = stored_scene(project).layers[0].id
    assert cli.main(["delete", str(project), layer_id]) == 0

    conn = project_db.connect(project)
    try:
      editor = cli.open_editor(conn)
    finally:
      conn.close()
    assert len(editor.committed_scene) == 0
    assert cli.main(["layers", str(project)]) == 0
    assert len(stored_scene(project)) == 0

  def test_move_base_rejected(self, project, capsys) -> None:
    layer_id = stored_scene(project).layers[0].id
    assert cli.main(["move", str(project), layer_id, "5", "5"]) == 1
    assert "cannot be moved" in capsys.readouterr().out

  def test_unknown_layer(self, project) -> None:
    assert cli.main(["delete", str(project), "zzzz"]) == 1
    with pytest.raises(LayerNotFoundError):
      cli.resolve_layer_id(stored_scene(project), "zzzz")

  def test_layers_listing(self, project, capsys) -> None:
    assert cli.main(["layers", str(project)]) == 0
    assert START_LAYER_NAME in capsys.readouterr().out


class TestExportCommand:
  def test_png(self, project, tmp_path) -> None:
    output = tmp_path / "map.png"
    assert cli.main(["export", str(project), str(output)]) == 0
    assert output.exists()

  def test_zip(self, project, tmp_path) -> None:
    output = tmp_path / "map.zip"
    assert cli.main(["export", str(project), str(output), "--zip"]) == 0
    with zipfile.ZipFile(output) as archive:
      assert "map_merged_full.png" in archive.namelist()
      assert len(archive.namelist()) == 2
