"""
RGBA pixel buffer value type.

Every raster that flows between the compositor, the isolator, the stitcher and
the generator is a PixelBuffer: width, height and an (H, W, 4) uint8 array.
Buffers are treated as values - the backing array is read-only and every
operation returns a new buffer.
"""

from __future__ import annotations

import io

import numpy as np
from PIL import Image, UnidentifiedImageError

from map_canvas.errors import ImageDecodeError, ResourceUnavailableError

RGB = tuple[int, int, int]
RGBA = tuple[int, int, int, int]

TRANSPARENT: RGBA = (0, 0, 0, 0)
OPAQUE_BLACK: RGBA = (0, 0, 0, 255)

# Largest edge we are willing to allocate a surface for
MAX_DIMENSION = 16384


def _check_dimensions(width: int, height: int) -> None:
  if width <= 0 or height <= 0:
    raise ResourceUnavailableError(
      f"Cannot create a {width}x{height} pixel buffer"
    )
  if width > MAX_DIMENSION or height > MAX_DIMENSION:
    raise ResourceUnavailableError(
      f"Pixel buffer {width}x{height} exceeds the {MAX_DIMENSION}px limit"
    )


class PixelBuffer:
  """An immutable RGBA 8-bit-per-channel raster."""

  __slots__ = ("_pixels",)

  def __init__(self, pixels: np.ndarray):
    if pixels.ndim != 3 or pixels.shape[2] != 4:
      raise ValueError(f"Expected an (H, W, 4) array, got shape {pixels.shape}")
    _check_dimensions(pixels.shape[1], pixels.shape[0])
    data = np.array(pixels, dtype=np.uint8, copy=True)
    data.flags.writeable = False
    self._pixels = data

  # ===========================================================================
  # Construction
  # ===========================================================================

  @classmethod
  def blank(cls, width: int, height: int, color: RGBA = TRANSPARENT) -> PixelBuffer:
    """A buffer filled with a single color."""
    width, height = int(width), int(height)
    _check_dimensions(width, height)
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[:, :] = color
    return cls(pixels)

  @classmethod
  def from_image(cls, img: Image.Image) -> PixelBuffer:
    if img.mode != "RGBA":
      img = img.convert("RGBA")
    return cls(np.asarray(img))

  @classmethod
  def from_png_bytes(cls, data: bytes) -> PixelBuffer:
    """
    Decode encoded image bytes (PNG or any format Pillow reads).

    Raises:
      ImageDecodeError: If the bytes are not a readable image
    """
    try:
      with Image.open(io.BytesIO(data)) as img:
        img.load()
        return cls.from_image(img)
    except (UnidentifiedImageError, OSError, ValueError) as e:
      raise ImageDecodeError(f"Could not decode image: {e}") from e

  # ===========================================================================
  # Accessors
  # ===========================================================================

  @property
  def width(self) -> int:
    return self._pixels.shape[1]

  @property
  def height(self) -> int:
    return self._pixels.shape[0]

  @property
  def size(self) -> tuple[int, int]:
    return (self.width, self.height)

  @property
  def pixels(self) -> np.ndarray:
    """Read-only view of the (H, W, 4) array."""
    return self._pixels

  @property
  def alpha(self) -> np.ndarray:
    return self._pixels[:, :, 3]

  def copy_pixels(self) -> np.ndarray:
    """A writable copy of the backing array."""
    return self._pixels.copy()

  def is_fully_transparent(self) -> bool:
    return not self.alpha.any()

  def pixel(self, x: int, y: int) -> RGBA:
    r, g, b, a = self._pixels[y, x]
    return (int(r), int(g), int(b), int(a))

  # ===========================================================================
  # Conversion
  # ===========================================================================

  def to_image(self) -> Image.Image:
    return Image.fromarray(self._pixels.copy())

  def to_png_bytes(self) -> bytes:
    buffer = io.BytesIO()
    self.to_image().save(buffer, format="PNG")
    return buffer.getvalue()

  # ===========================================================================
  # Transforms
  # ===========================================================================

  def crop(self, x: int, y: int, width: int, height: int) -> PixelBuffer:
    """
    Cut out a region. Parts of the region outside the buffer come back
    fully transparent.
    """
    x, y = int(round(x)), int(round(y))
    width, height = int(round(width)), int(round(height))
    _check_dimensions(width, height)
    return PixelBuffer.from_image(self.to_image().crop((x, y, x + width, y + height)))

  def resized(
    self,
    width: int,
    height: int,
    resample: Image.Resampling = Image.Resampling.LANCZOS,
  ) -> PixelBuffer:
    width, height = int(round(width)), int(round(height))
    _check_dimensions(width, height)
    if (width, height) == self.size:
      return self
    return PixelBuffer.from_image(self.to_image().resize((width, height), resample))

  def crop_resized(
    self,
    box: tuple[float, float, float, float],
    width: int,
    height: int,
    resample: Image.Resampling = Image.Resampling.LANCZOS,
  ) -> PixelBuffer:
    """
    Resample a (possibly fractional) source box to an exact output size.

    Args:
      box: (left, top, right, bottom) in source pixel coordinates
      width: Output width
      height: Output height
    """
    _check_dimensions(width, height)
    img = self.to_image().resize((width, height), resample, box=box)
    return PixelBuffer.from_image(img)

  def with_pixels(self, pixels: np.ndarray) -> PixelBuffer:
    return PixelBuffer(pixels)

  # ===========================================================================
  # Value semantics
  # ===========================================================================

  def __eq__(self, other: object) -> bool:
    if not isinstance(other, PixelBuffer):
      return NotImplemented
    return np.array_equal(self._pixels, other._pixels)

  __hash__ = None

  def __repr__(self) -> str:
    return f"PixelBuffer({self.width}x{self.height})"
