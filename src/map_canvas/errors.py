"""Exception types raised by the map canvas core."""


class MapCanvasError(Exception):
  """Base class for all map canvas failures surfaced to the user."""


class ResourceUnavailableError(MapCanvasError):
  """A pixel buffer could not be created (bad or excessive dimensions)."""


class ImageDecodeError(MapCanvasError):
  """Encoded image bytes could not be decoded into a pixel buffer."""


class GenerationError(MapCanvasError):
  """The external image generator failed or returned no image payload."""


class PreconditionError(MapCanvasError):
  """An operation was requested without the state it needs."""


class GenerationInProgressError(PreconditionError):
  """A generation was requested while another one is still pending."""


class LayerNotFoundError(KeyError):
  """No layer with the given id exists in the scene."""

  def __init__(self, layer_id: str):
    super().__init__(layer_id)
    self.layer_id = layer_id

  def __str__(self) -> str:
    return f"Layer not found: {self.layer_id}"
