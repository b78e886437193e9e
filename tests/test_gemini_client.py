"""
Tests for generation/gemini_client.py

The google-genai client is replaced by a small fake that records requests and
returns canned response parts.
"""

from types import SimpleNamespace

import pytest
from conftest import solid
from google.genai import types

from map_canvas.config import EditorConfig
from map_canvas.errors import GenerationError, PreconditionError
from map_canvas.generation.gemini_client import GeminiImageGenerator


def text_part(text: str):
  return SimpleNamespace(text=text, inline_data=None)


def image_part(data: bytes):
  return SimpleNamespace(text=None, inline_data=SimpleNamespace(data=data))


class FakeModels:
  def __init__(self, parts=None, error: Exception | None = None):
    self.parts = parts
    self.error = error
    self.requests: list[dict] = []

  def generate_content(self, **kwargs):
    self.requests.append(kwargs)
    if self.error is not None:
      raise self.error
    return SimpleNamespace(parts=self.parts)


def fake_client(parts=None, error: Exception | None = None):
  return SimpleNamespace(models=FakeModels(parts, error))


class TestGeminiImageGenerator:
  def test_returns_first_image(self) -> None:
    png = solid(8, 8, (1, 2, 3, 255)).to_png_bytes()
    client = fake_client([text_part("here you go"), image_part(png)])
    generator = GeminiImageGenerator(client=client, model_id="test-model")

    image = generator.generate("a tree")

    assert image == solid(8, 8, (1, 2, 3, 255))
    request = client.models.requests[0]
    assert request["model"] == "test-model"
    assert request["contents"] == ["a tree"]
    assert request["config"].response_modalities == ["TEXT", "IMAGE"]

  def test_context_image_sent_before_prompt(self) -> None:
    png = solid(4, 4, (0, 0, 0, 255)).to_png_bytes()
    client = fake_client([image_part(png)])
    GeminiImageGenerator(client=client).generate("fill", solid(4, 4, (9, 9, 9, 255)))

    contents = client.models.requests[0]["contents"]
    assert len(contents) == 2
    assert isinstance(contents[0], types.Part)
    assert contents[0].inline_data.mime_type == "image/png"
    assert contents[1] == "fill"

  def test_no_image_in_response(self) -> None:
    generator = GeminiImageGenerator(client=fake_client([text_part("sorry")]))
    with pytest.raises(GenerationError, match="No image"):
      generator.generate("a tree")

  def test_empty_response(self) -> None:
    generator = GeminiImageGenerator(client=fake_client(None))
    with pytest.raises(GenerationError):
      generator.generate("a tree")

  def test_transport_failure(self) -> None:
    generator = GeminiImageGenerator(client=fake_client(error=RuntimeError("503")))
    with pytest.raises(GenerationError, match="503"):
      generator.generate("a tree")

  def test_unreadable_image(self) -> None:
    generator = GeminiImageGenerator(client=fake_client([image_part(b"junk")]))
    with pytest.raises(GenerationError):
      generator.generate("a tree")

  def test_requires_api_key(self, monkeypatch) -> None:
    monkeypatch.delenv("MAP_CANVAS_UNSET_KEY", raising=False)
    with pytest.raises(PreconditionError):
      GeminiImageGenerator()
    with pytest.raises(PreconditionError):
      GeminiImageGenerator.from_config(EditorConfig(api_key_env="MAP_CANVAS_UNSET_KEY"))
