"""
SQLite project file.

A project stores the committed scene (one row per layer, PNG blob plus
placement) and a small key/value metadata table for session state such as
the view offset, the last base prompt and the editor configuration.

Layer sequence order is kept in the `position` column so a reloaded scene
draws and ties exactly like the saved one.
"""

import json
import sqlite3
from pathlib import Path
from typing import Any

from map_canvas.config import EditorConfig
from map_canvas.layers import Layer, LayerKind, Scene
from map_canvas.viewport import ViewState

VIEW_KEY = "view"
LAST_BASE_PROMPT_KEY = "last_base_prompt"
CONFIG_KEY = "editor_config"
SCENE_SAVED_KEY = "scene_saved"


def connect(db_path: Path) -> sqlite3.Connection:
  """Open a project database, creating its tables if needed."""
  conn = sqlite3.connect(db_path)
  init_db(conn)
  return conn


def init_db(conn: sqlite3.Connection) -> None:
  """Initialize the layers and metadata tables if they don't exist."""
  cursor = conn.cursor()
  cursor.execute("""
    CREATE TABLE IF NOT EXISTS layers (
      id TEXT PRIMARY KEY,
      position INTEGER NOT NULL,
      name TEXT NOT NULL,
      kind TEXT NOT NULL,
      image BLOB NOT NULL,
      x REAL NOT NULL,
      y REAL NOT NULL,
      width REAL NOT NULL,
      height REAL NOT NULL,
      visible INTEGER NOT NULL DEFAULT 1,
      z_index INTEGER NOT NULL DEFAULT 0
    )
  """)
  cursor.execute("""
    CREATE TABLE IF NOT EXISTS metadata (
      key TEXT PRIMARY KEY,
      value TEXT NOT NULL
    )
  """)
  conn.commit()


def _layer_from_row(row: tuple) -> Layer:
  """Create a Layer from a (id, name, kind, image, x, y, w, h, visible, z) row."""
  return Layer(
    id=row[0],
    name=row[1],
    kind=LayerKind(row[2]),
    image_data=row[3],
    x=row[4],
    y=row[5],
    width=row[6],
    height=row[7],
    visible=bool(row[8]),
    z_index=row[9],
  )


def save_scene(conn: sqlite3.Connection, scene: Scene) -> int:
  """
  Replace the stored layers with the given scene.

  Returns:
    Number of layers written
  """
  cursor = conn.cursor()
  cursor.execute("DELETE FROM layers")
  cursor.executemany(
    """
    INSERT INTO layers
      (id, position, name, kind, image, x, y, width, height, visible, z_index)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """,
    [
      (
        layer.id,
        position,
        layer.name,
        layer.kind.value,
        layer.image_data,
        layer.x,
        layer.y,
        layer.width,
        layer.height,
        int(layer.visible),
        layer.z_index,
      )
      for position, layer in enumerate(scene.layers)
    ],
  )
  cursor.execute(
    "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
    (SCENE_SAVED_KEY, json.dumps(True)),
  )
  conn.commit()
  return len(scene)


def load_scene(conn: sqlite3.Connection) -> Scene | None:
  """
  Load the stored scene.

  Returns:
    The saved scene (empty if every layer was deleted), or None if no scene
    has ever been saved to this project
  """
  cursor = conn.cursor()
  cursor.execute(
    """
    SELECT id, name, kind, image, x, y, width, height, visible, z_index
    FROM layers
    ORDER BY position
    """
  )
  rows = cursor.fetchall()
  if not rows:
    return Scene() if get_metadata(conn, SCENE_SAVED_KEY, False) else None
  return Scene(tuple(_layer_from_row(row) for row in rows))


def get_metadata(conn: sqlite3.Connection, key: str, default: Any = None) -> Any:
  """Get a JSON-decoded metadata value."""
  cursor = conn.cursor()
  cursor.execute("SELECT value FROM metadata WHERE key = ?", (key,))
  row = cursor.fetchone()
  return json.loads(row[0]) if row else default


def set_metadata(conn: sqlite3.Connection, key: str, value: Any) -> None:
  """Store a JSON-encodable metadata value."""
  cursor = conn.cursor()
  cursor.execute(
    "INSERT OR REPLACE INTO metadata (key, value) VALUES (?, ?)",
    (key, json.dumps(value)),
  )
  conn.commit()


def load_view(conn: sqlite3.Connection) -> ViewState:
  data = get_metadata(conn, VIEW_KEY)
  if not data:
    return ViewState()
  return ViewState(data.get("x", 0.0), data.get("y", 0.0))


def save_view(conn: sqlite3.Connection, view: ViewState) -> None:
  set_metadata(conn, VIEW_KEY, {"x": view.x, "y": view.y})


def load_config(conn: sqlite3.Connection) -> EditorConfig | None:
  data = get_metadata(conn, CONFIG_KEY)
  return EditorConfig.from_dict(data) if data else None


def save_config(conn: sqlite3.Connection, config: EditorConfig) -> None:
  set_metadata(conn, CONFIG_KEY, config.to_dict())
