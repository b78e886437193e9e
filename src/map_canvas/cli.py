"""
Command line interface for map canvas projects.

Each command opens a project database, runs one editor operation, and saves
the committed scene back.

Usage:
  map-canvas init world.db
  map-canvas base world.db "lush grassland with dirt paths"
  map-canvas extend world.db right
  map-canvas asset world.db "old oak tree" --rect 200 300 180 180
  map-canvas asset world.db "treasure chest"
  map-canvas layers world.db
  map-canvas hide world.db 3fa2c1
  map-canvas move world.db 3fa2c1 400 250
  map-canvas rename world.db 3fa2c1 "old well"
  map-canvas export world.db map.zip --zip
"""

import argparse
import logging
import sqlite3
from pathlib import Path

from dotenv import load_dotenv

from map_canvas import project_db
from map_canvas.config import EditorConfig, load_editor_config
from map_canvas.editor import MapEditor
from map_canvas.errors import LayerNotFoundError, MapCanvasError, PreconditionError
from map_canvas.export import export_merged_png, export_zip
from map_canvas.generation.gemini_client import GeminiImageGenerator, ImageGenerator
from map_canvas.geometry import Rect
from map_canvas.layers import Scene
from map_canvas.tools import Tool
from map_canvas.viewport import DIRECTION_VECTORS, ViewState

logger = logging.getLogger(__name__)


# =============================================================================
# Project helpers
# =============================================================================


def make_generator(config: EditorConfig) -> ImageGenerator:
  return GeminiImageGenerator.from_config(config)


def resolve_layer_id(scene: Scene, id_or_prefix: str) -> str:
  """Accept a full layer id or any unique prefix of one."""
  if id_or_prefix in scene:
    return id_or_prefix
  matches = [layer_id for layer_id in scene.ids if layer_id.startswith(id_or_prefix)]
  if len(matches) != 1:
    raise LayerNotFoundError(id_or_prefix)
  return matches[0]


def open_editor(
  conn: sqlite3.Connection, with_generator: bool = False
) -> MapEditor:
  config = project_db.load_config(conn) or EditorConfig()
  generator = make_generator(config) if with_generator else None
  return MapEditor(
    generator=generator,
    config=config,
    scene=project_db.load_scene(conn),
    view=project_db.load_view(conn),
    last_base_prompt=project_db.get_metadata(conn, project_db.LAST_BASE_PROMPT_KEY),
  )


def save_editor(conn: sqlite3.Connection, editor: MapEditor) -> None:
  project_db.save_scene(conn, editor.committed_scene)
  project_db.save_view(conn, editor.view)
  project_db.set_metadata(conn, project_db.LAST_BASE_PROMPT_KEY, editor.last_base_prompt)


def require_project(db_path: Path) -> Path:
  db_path = db_path.resolve()
  if not db_path.exists():
    raise FileNotFoundError(f"Project not found: {db_path}")
  return db_path


# =============================================================================
# Commands
# =============================================================================


def cmd_init(args: argparse.Namespace) -> int:
  db_path = args.project.resolve()
  if db_path.exists() and not args.force:
    print(f"❌ Error: Project already exists: {db_path} (use --force to overwrite)")
    return 1
  if db_path.exists():
    db_path.unlink()

  config = load_editor_config(args.config)
  conn = project_db.connect(db_path)
  try:
    editor = MapEditor(config=config)
    project_db.save_config(conn, config)
    save_editor(conn, editor)
  finally:
    conn.close()

  print(f"✅ Created project {db_path}")
  print(f"   🗺️  Tile size: {config.tile_size}px, model: {config.model_id}")
  return 0


def cmd_view(args: argparse.Namespace) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn)
    editor.view = ViewState(args.x, args.y)
    save_editor(conn, editor)
  finally:
    conn.close()
  print(f"📍 View moved to ({args.x}, {args.y})")
  return 0


def cmd_base(args: argparse.Namespace) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn, with_generator=True)
    print(f"🎨 Generating base texture: {args.prompt}")
    layer = editor.generate_base(args.prompt)
    save_editor(conn, editor)
  finally:
    conn.close()
  print(f"✅ Added base tile {layer.id[:6]} at ({layer.x:.0f}, {layer.y:.0f})")
  save_debug(editor, args)
  return 0


def cmd_extend(args: argparse.Namespace) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn, with_generator=True)
    print(f"🧭 Extending map {args.direction}...")
    layer = editor.navigate(args.direction)
    save_editor(conn, editor)
  finally:
    conn.close()
  if layer is None:
    print(f"⏭️  Tile already exists, view moved to ({editor.view.x:.0f}, {editor.view.y:.0f})")
  else:
    print(f"✅ Added {layer.name} at ({layer.x:.0f}, {layer.y:.0f})")
  save_debug(editor, args)
  return 0


def cmd_asset(args: argparse.Namespace) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn, with_generator=True)
    if args.rect:
      x, y, width, height = args.rect
      if width <= 0 or height <= 0:
        raise PreconditionError(f"Selection size must be positive, got {width}x{height}")
      editor.set_tool(Tool.RECTANGLE)
      editor.tools.selection = Rect(x, y, width, height)
      print(f"🔲 Using selection {editor.tools.selection}")
    print(f"🎨 Generating asset: {args.prompt}")
    layer = editor.generate_asset(args.prompt)
    save_editor(conn, editor)
  finally:
    conn.close()
  print(f"✅ Added object {layer.id[:6]} at {layer.rect}")
  save_debug(editor, args)
  return 0


def cmd_layers(args: argparse.Namespace) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn)
  finally:
    conn.close()

  scene = editor.committed_scene
  print(f"🗂️  {len(scene)} layers (view at {editor.view.x:.0f}, {editor.view.y:.0f})")
  for layer in reversed(scene.sorted_by_z(visible_only=False)):
    eye = "👁️ " if layer.visible else "  "
    print(
      f"   {eye} {layer.id[:6]}  z={layer.z_index:<4} {layer.kind.value:<6} "
      f"{layer.name}  @ {layer.rect}"
    )
  return 0


def _layer_command(args: argparse.Namespace, action: str) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn)
    layer_id = resolve_layer_id(editor.committed_scene, args.layer_id)
    if action == "hide":
      editor.set_visible(layer_id, False)
    elif action == "show":
      editor.set_visible(layer_id, True)
    elif action == "delete":
      editor.delete_layer(layer_id)
    elif action == "move":
      editor.move_layer(layer_id, args.x, args.y)
    elif action == "rename":
      editor.rename_layer(layer_id, args.name)
    save_editor(conn, editor)
  finally:
    conn.close()
  print(f"✅ {action.capitalize()} {layer_id[:6]}")
  return 0


def cmd_export(args: argparse.Namespace) -> int:
  conn = project_db.connect(require_project(args.project))
  try:
    editor = open_editor(conn)
  finally:
    conn.close()

  output = args.output.resolve()
  if args.zip:
    names = export_zip(editor.committed_scene, output)
    print(f"📦 Wrote {output} ({len(names) - 1} layers)")
  else:
    export_merged_png(editor.committed_scene, output)
    print(f"🖼️  Wrote {output}")
  return 0


def save_debug(editor: MapEditor, args: argparse.Namespace) -> None:
  if getattr(args, "debug_dir", None):
    written = editor.debug_log.save(args.debug_dir)
    print(f"   📁 Saved {len(written)} debug records to {args.debug_dir}")


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
  parser = argparse.ArgumentParser(
    description="Build tile maps from AI-generated layers.",
    formatter_class=argparse.RawDescriptionHelpFormatter,
    epilog="""
Examples:
  %(prog)s init world.db
  %(prog)s base world.db "snowy tundra"
  %(prog)s extend world.db right
  %(prog)s asset world.db "wooden bridge" --rect 300 400 200 120
  %(prog)s export world.db map.png
""",
  )
  parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
  subparsers = parser.add_subparsers(dest="command", required=True)

  def project_parser(name: str, help_text: str) -> argparse.ArgumentParser:
    sub = subparsers.add_parser(name, help=help_text)
    sub.add_argument("project", type=Path, help="Path to the project database")
    return sub

  init = project_parser("init", "Create a new project with a starter tile")
  init.add_argument("--config", type=Path, default=None, help="Editor config JSON")
  init.add_argument("--force", action="store_true", help="Overwrite an existing project")
  init.set_defaults(func=cmd_init)

  view = project_parser("view", "Move the view to a world position")
  view.add_argument("x", type=float)
  view.add_argument("y", type=float)
  view.set_defaults(func=cmd_view)

  base = project_parser("base", "Generate a base texture at the view's grid cell")
  base.add_argument("prompt", help="Terrain description")
  base.add_argument("--debug-dir", type=Path, default=None, help="Save prompts/inputs here")
  base.set_defaults(func=cmd_base)

  extend = project_parser("extend", "Move one tile and generate it seamlessly if empty")
  extend.add_argument("direction", choices=list(DIRECTION_VECTORS.keys()))
  extend.add_argument("--debug-dir", type=Path, default=None, help="Save prompts/inputs here")
  extend.set_defaults(func=cmd_extend)

  asset = project_parser("asset", "Generate an object layer")
  asset.add_argument("prompt", help="Object description")
  asset.add_argument(
    "--rect",
    nargs=4,
    type=float,
    metavar=("X", "Y", "W", "H"),
    default=None,
    help="World-space selection to generate into (default: isolated asset at view center)",
  )
  asset.add_argument("--debug-dir", type=Path, default=None, help="Save prompts/inputs here")
  asset.set_defaults(func=cmd_asset)

  layers = project_parser("layers", "List layers, topmost first")
  layers.set_defaults(func=cmd_layers)

  for action, help_text in (
    ("hide", "Hide a layer"),
    ("show", "Show a layer"),
    ("delete", "Delete a layer"),
  ):
    sub = project_parser(action, help_text)
    sub.add_argument("layer_id", help="Layer id or unique prefix")
    sub.set_defaults(func=lambda args, action=action: _layer_command(args, action))

  move = project_parser("move", "Move an object layer")
  move.add_argument("layer_id", help="Layer id or unique prefix")
  move.add_argument("x", type=float)
  move.add_argument("y", type=float)
  move.set_defaults(func=lambda args: _layer_command(args, "move"))

  rename = project_parser("rename", "Rename a layer")
  rename.add_argument("layer_id", help="Layer id or unique prefix")
  rename.add_argument("name", help="New layer name")
  rename.set_defaults(func=lambda args: _layer_command(args, "rename"))

  export = project_parser("export", "Export the map as PNG (or zip with --zip)")
  export.add_argument("output", type=Path)
  export.add_argument("--zip", action="store_true", help="Also export each layer")
  export.set_defaults(func=cmd_export)

  return parser


def main(argv: list[str] | None = None) -> int:
  load_dotenv()

  parser = build_parser()
  args = parser.parse_args(argv)

  logging.basicConfig(
    level=logging.DEBUG if args.verbose else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
  )

  try:
    return args.func(args)
  except FileNotFoundError as e:
    print(f"❌ Error: {e}")
    return 1
  except (MapCanvasError, LayerNotFoundError) as e:
    print(f"❌ Error: {e}")
    return 1
  except KeyboardInterrupt:
    print("\n⚠️  Interrupted by user")
    return 1


if __name__ == "__main__":
  exit(main())
