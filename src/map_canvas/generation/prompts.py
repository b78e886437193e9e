"""
Prompt templates for the image generator.

Every prompt embeds the same style block built from MapSettings so that base
tiles, stitched tiles and objects share one look.
"""

from map_canvas.config import MapSettings

DEFAULT_SEAMLESS_THEME = "game terrain"


def _dedent_lines(text: str) -> str:
  """Strip per-line indentation and surrounding blank lines."""
  return "\n".join(line.strip() for line in text.strip().splitlines())


def style_instruction(settings: MapSettings) -> str:
  """The shared art-direction block (style, view, lighting)."""
  projection_note = f"View: Strictly {settings.projection}."
  if settings.is_sidescroller:
    projection_note += " Gravity is downwards. This is a side-view platformer environment."

  return _dedent_lines(
    f"""
    Style: {settings.art_style}.
    {projection_note}
    Lighting: Light source from {settings.sun_direction}. Shadows must correspond to this direction.
    Aesthetic: High quality 2D game art. High contrast, cohesive colors.
    """
  )


def context_asset_prompt(subject: str, settings: MapSettings) -> str:
  """
  Prompt for adding an object onto a captured terrain crop.

  The background must come back unchanged so the object can be recovered by
  difference keying against the crop.
  """
  return _dedent_lines(
    f"""
    Act as a professional game artist.
    Task: Add a {subject} to the provided terrain image.

    Input Context:
    - The input image may contain a semi-transparent colored region (e.g., pink/magenta).
    - If present, this highlighted region marks the target location and approximate shape for the {subject}.
    - Use the underlying terrain texture as a guide for perspective and lighting.

    Constraints:
    1. PERSPECTIVE: Maintain the exact {settings.projection} view.
    2. INTEGRATION: The {subject} must look like it belongs on this ground. Add realistic contact shadows based on lighting from {settings.sun_direction}.
    3. BACKGROUND: DO NOT CHANGE the surrounding terrain texture, color, or pattern outside the generated object. The background must remain identical to the original image so we can extract the object via difference keying.
    4. CONTENT: Generate the {subject} filling the designated area. It does not need to perfectly match the mask shape if the object's natural shape dictates otherwise, but it should generally conform to it.
    {style_instruction(settings)}
    """
  )


def isolated_asset_prompt(subject: str, settings: MapSettings) -> str:
  """Prompt for a standalone object on a solid magenta key background."""
  return _dedent_lines(
    f"""
    Generate a single 2D game asset: {subject}.
    {style_instruction(settings)}
    Background: PURE MAGENTA (#FF00FF). The object must be completely isolated on a solid magenta background. Do not cast heavy shadows onto the background, only self-shadows.
    Content: Ensure the object has clean edges and is centered.
    """
  )


def base_texture_prompt(theme: str, settings: MapSettings) -> str:
  """Prompt for a full-frame, tileable ground texture."""
  return _dedent_lines(
    f"""
    Seamless 2D game terrain texture: {theme}.
    {style_instruction(settings)}
    Properties: Seamless, tileable pattern. Fills the entire image edge-to-edge.
    Content: Ground surface only (e.g., grass, dirt, sand, water, stone). No buildings or isolated objects.
    """
  )


def seamless_tile_prompt(
  sides: list[str] | tuple[str, ...],
  settings: MapSettings,
  theme: str = DEFAULT_SEAMLESS_THEME,
) -> str:
  """
  Prompt for filling the magenta void of a stitch canvas.

  Args:
    sides: The canvas sides that carry fixed neighbor strips
    settings: Map art direction
    theme: Terrain theme (usually the last base texture prompt)
  """
  edges = ", ".join(side.upper() for side in sides) or "NONE"
  return _dedent_lines(
    f"""
    Task: Outpaint and fill the PINK (Magenta) square area.

    Input Analysis:
    - The image contains "Ground Truth" texture strips on the following sides: {edges}.
    - The central PINK square is a mask indicating the area to generate.

    Instructions:
    1. PRESERVE EDGES: The textures on the {edges} are strictly fixed. Do not modify them.
    2. FILL MASK: Completely replace the PINK color with new terrain.
    3. SEAMLESS FILL: The new terrain must connect perfectly to the edge strips.
    4. MATCHING: The new terrain must match the exact texture frequency, noise grain, and color palette of the existing strips.
    5. Theme: {theme}.

    {style_instruction(settings)}
    """
  )
