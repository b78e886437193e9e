"""
Infinite-canvas map editor core.

Assembles a tile-based world image out of independently generated raster
layers:
- A layered, z-ordered, world-coordinate scene with linear undo/redo
- Region compositing for context capture and export
- Object isolation (chroma key and difference keying)
- Seamless neighbor tile stitching around an external image generator
"""

__version__ = "0.1.0"
