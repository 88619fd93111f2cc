"""Prompt style presets and supported aspect ratios."""

from typing import Iterable

from app.models import ArtisticStyle


ASPECT_RATIOS: list[str] = ["1:1", "16:9", "9:16", "4:3", "3:4", "21:9"]


ARTISTIC_STYLES: list[ArtisticStyle] = [
    ArtisticStyle(
        id="photorealistic",
        name="Photorealistic",
        keywords="photorealistic, ultra-realistic, highly detailed, 8k resolution, professional photography, "
                 "sharp focus, cinematic lighting, depth of field, natural colors",
    ),
    ArtisticStyle(
        id="anime",
        name="Anime",
        keywords="anime style, Japanese animation, vibrant colors, cel-shaded, expressive eyes, "
                 "dynamic poses, manga-inspired, smooth shading",
    ),
    ArtisticStyle(
        id="oil-painting",
        name="Oil Painting",
        keywords="oil painting, rich textures, visible brush strokes, impasto technique, "
                 "dramatic lighting, old master painting style",
    ),
    ArtisticStyle(
        id="watercolor",
        name="Watercolor",
        keywords="watercolor painting, soft flowing colors, translucent washes, paper texture, "
                 "soft edges, pastel tones, gentle blending",
    ),
    ArtisticStyle(
        id="digital-art",
        name="Digital Art",
        keywords="digital art, concept art, vibrant colors, professional digital illustration, "
                 "crisp lines, smooth gradients, polished finish",
    ),
    ArtisticStyle(
        id="sketch",
        name="Sketch",
        keywords="pencil sketch, detailed line art, black and white, hand-drawn, cross-hatching, "
                 "graphite drawing, sketchbook style",
    ),
    ArtisticStyle(
        id="3d-render",
        name="3D Render",
        keywords="3D render, CGI, octane render, realistic materials, volumetric lighting, "
                 "ray-traced shadows, studio render",
    ),
    ArtisticStyle(
        id="cyberpunk",
        name="Cyberpunk",
        keywords="cyberpunk style, neon lights, futuristic cityscape, rain-soaked streets, "
                 "holographic displays, dystopian future, tech noir",
    ),
    ArtisticStyle(
        id="impressionist",
        name="Impressionist",
        keywords="impressionist painting, loose brushstrokes, dappled sunlight, plein air style, "
                 "Monet-inspired, atmospheric perspective",
    ),
    ArtisticStyle(
        id="minimalist",
        name="Minimalist",
        keywords="minimalist art, clean composition, negative space, geometric shapes, "
                 "monochrome palette, clean lines",
    ),
    ArtisticStyle(
        id="vintage",
        name="Vintage",
        keywords="vintage style, retro aesthetic, sepia tones, film grain, nostalgic feel, "
                 "retro color grading, antique look",
    ),
    ArtisticStyle(
        id="fantasy",
        name="Fantasy",
        keywords="fantasy art, magical atmosphere, ethereal beauty, mystical creatures, "
                 "enchanted forest, dreamlike quality, epic fantasy art",
    ),
]


def get_style(style_id: str) -> ArtisticStyle | None:
    """Look up a style preset by id."""
    for style in ARTISTIC_STYLES:
        if style.id == style_id:
            return style
    return None


def build_styled_prompt(prompt: str, style_ids: Iterable[str]) -> str:
    """Append the keywords of each selected style to the prompt.

    Unknown style ids are ignored.
    """
    base = prompt.strip()
    keywords = [style.keywords for style in map(get_style, style_ids) if style]
    if not keywords:
        return base
    return f"{base}, {', '.join(keywords)}"
