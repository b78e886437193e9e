"""
Map export.

- export_merged_png: the full visible map flattened onto transparency
- export_zip: the merged map plus every visible layer as its own PNG

Zip layout:
  map_merged_full.png
  layers/{z_index}_{safe_name}_{id[:6]}.png
"""

import logging
import re
import zipfile
from pathlib import Path

from map_canvas.compositor import decode_layer_images, render_full
from map_canvas.layers import Layer, Scene

logger = logging.getLogger(__name__)

MERGED_FILENAME = "map_merged_full.png"
LAYERS_DIR = "layers"


def safe_layer_name(name: str) -> str:
  """Lowercase the name and replace anything outside [a-z0-9] with '_'."""
  return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE).lower()


def layer_archive_name(layer: Layer) -> str:
  return f"{LAYERS_DIR}/{layer.z_index}_{safe_layer_name(layer.name)}_{layer.id[:6]}.png"


def export_merged_png(scene: Scene, output_path: Path) -> Path:
  """Write the flattened visible scene as a PNG."""
  merged = render_full(scene)
  output_path.parent.mkdir(parents=True, exist_ok=True)
  output_path.write_bytes(merged.to_png_bytes())
  logger.info(f"Exported merged map {merged.width}x{merged.height} to {output_path}")
  return output_path


def export_zip(scene: Scene, output_path: Path) -> list[str]:
  """
  Write the merged map and each visible layer into a zip archive.

  Layers whose image cannot be decoded are left out of the layers/ folder
  (and out of the merged image).

  Returns:
    The archive member names, in the order they were written
  """
  merged = render_full(scene)
  visible = scene.visible_layers()
  images = decode_layer_images(visible)

  output_path.parent.mkdir(parents=True, exist_ok=True)
  names = [MERGED_FILENAME]
  with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
    archive.writestr(MERGED_FILENAME, merged.to_png_bytes())
    for layer in visible:
      image = images.get(layer.id)
      if image is None:
        continue
      name = layer_archive_name(layer)
      archive.writestr(name, image.to_png_bytes())
      names.append(name)

  logger.info(f"Exported {len(names) - 1} layers to {output_path}")
  return names
