"""Prompt construction and the external image generator client."""

from map_canvas.generation.gemini_client import GeminiImageGenerator, ImageGenerator

__all__ = ["GeminiImageGenerator", "ImageGenerator"]
