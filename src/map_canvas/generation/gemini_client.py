"""
Image generator client.

The editor only depends on the ImageGenerator protocol: a prompt plus an
optional context image in, one image out. GeminiImageGenerator implements it
on top of the google-genai SDK.
"""

from __future__ import annotations

import logging
from typing import Protocol

from google import genai
from google.genai import types

from map_canvas.config import DEFAULT_MODEL_ID, EditorConfig
from map_canvas.errors import GenerationError, ImageDecodeError, PreconditionError
from map_canvas.pixels import PixelBuffer

logger = logging.getLogger(__name__)


class ImageGenerator(Protocol):
  """Anything that can turn a prompt (and optional context image) into an image."""

  def generate(self, prompt: str, context_image: PixelBuffer | None = None) -> PixelBuffer:
    ...


class GeminiImageGenerator:
  """
  Gemini image model behind the ImageGenerator protocol.

  One call, no retries. Any transport failure or a response without an
  inline image raises GenerationError.
  """

  def __init__(
    self,
    api_key: str | None = None,
    model_id: str = DEFAULT_MODEL_ID,
    client: genai.Client | None = None,
  ):
    if client is None:
      if not api_key:
        raise PreconditionError("GEMINI_API_KEY not found in environment")
      client = genai.Client(api_key=api_key)
    self.client = client
    self.model_id = model_id

  @classmethod
  def from_config(cls, config: EditorConfig) -> GeminiImageGenerator:
    api_key = config.api_key
    if not api_key:
      raise PreconditionError(f"{config.api_key_env} not found in environment")
    return cls(api_key=api_key, model_id=config.model_id)

  def _build_contents(self, prompt: str, context_image: PixelBuffer | None) -> list:
    contents: list = []
    if context_image is not None:
      contents.append(
        types.Part.from_bytes(data=context_image.to_png_bytes(), mime_type="image/png")
      )
    contents.append(prompt)
    return contents

  def generate(self, prompt: str, context_image: PixelBuffer | None = None) -> PixelBuffer:
    """
    Send one generation request.

    Args:
      prompt: Full prompt text
      context_image: Optional input image sent ahead of the prompt

    Returns:
      The first image in the response

    Raises:
      GenerationError: If the request fails or no image comes back
    """
    contents = self._build_contents(prompt, context_image)
    logger.info(
      f"Calling {self.model_id} "
      f"({'with' if context_image is not None else 'without'} context image, "
      f"{len(prompt)} prompt chars)"
    )

    try:
      response = self.client.models.generate_content(
        model=self.model_id,
        contents=contents,
        config=types.GenerateContentConfig(
          response_modalities=["TEXT", "IMAGE"],
          image_config=types.ImageConfig(
            aspect_ratio="1:1",
          ),
        ),
      )
    except Exception as e:
      raise GenerationError(f"Gemini request failed: {e}") from e

    for part in response.parts or []:
      if part.text is not None:
        logger.debug(f"Model response: {part.text}")
      elif part.inline_data is not None and part.inline_data.data:
        try:
          image = PixelBuffer.from_png_bytes(part.inline_data.data)
        except ImageDecodeError as e:
          raise GenerationError(f"Gemini returned an unreadable image: {e}") from e
        logger.info(f"Received generated image {image.width}x{image.height}")
        return image

    raise GenerationError("No image in Gemini response")
