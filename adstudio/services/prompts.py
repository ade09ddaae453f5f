"""Image prompt construction for creative variations.

Two modes are available. The template renderer is deterministic: variation ``i``
always gets ``STYLES[i % 12]`` and ``COMPOSITIONS[i % 12]``. The scene mode asks
the vision model to write a scene-specific prompt for ``SCENARIOS[i % 12]`` from
the product photo and falls back to the template renderer on any failure.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal

from volcenginesdkarkruntime import AsyncArk

from adstudio.core.config import Settings
from adstudio.services.context import BrandContext, UploadedImage
from adstudio.services.vision import ask_about_image

logger = logging.getLogger(__name__)

STYLES: tuple[str, ...] = (
    "modern minimalist design with clean lines and white space",
    "vibrant and colorful with bold typography and dynamic layouts",
    "elegant and sophisticated with premium feel and luxury aesthetics",
    "playful and energetic with dynamic composition and bright colors",
    "professional corporate style with subtle branding and clean design",
    "artistic and creative with unique visual elements and creative typography",
    "luxury aesthetic with gold accents and premium materials",
    "tech-forward design with futuristic elements and modern graphics",
    "natural and organic with earthy tones and authentic photography",
    "bold and striking with high contrast and dramatic lighting",
    "soft and feminine with pastel colors and gentle gradients",
    "urban and edgy with street style and contemporary design",
)

COMPOSITIONS: tuple[str, ...] = (
    "product centered with logo in top corner",
    "product on left, logo on right with text overlay",
    "product as hero image with logo integrated seamlessly",
    "split screen design with product and logo balanced",
    "product in foreground with logo in background",
    "logo prominent at top, product featured below",
    "product surrounded by logo elements",
    "minimalist layout with product and logo side by side",
    "product with logo watermark overlay",
    "dynamic diagonal composition with product and logo",
    "product showcase with logo in footer",
    "creative collage style with product and logo integrated",
)

SCENARIOS: tuple[str, ...] = (
    "a beautiful beach scene with ocean waves",
    "a modern urban cityscape at sunset",
    "a cozy home setting with natural lighting",
    "an outdoor adventure scene in nature",
    "a vibrant party or celebration atmosphere",
    "a serene mountain landscape",
    "a trendy cafe or restaurant setting",
    "a sports or athletic environment",
    "a luxurious lifestyle setting",
    "a minimalist studio with dramatic lighting",
    "a tropical paradise setting",
    "a contemporary workspace or office",
)

# Later rules override earlier ones.
_LOGO_LOCATION_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("left",), "left side"),
    (("right",), "right side"),
    (("top",), "top"),
    (("bottom", "footer"), "bottom"),
    (("watermark",), "as a subtle watermark overlay"),
    (("integrated", "seamlessly"), "integrated naturally into the design"),
)

SCENE_PROMPT_TEMPLATE = """Analyze this product image and create a detailed, marketing-ready image generation prompt for a social media ad creative.

Product: {description}
Brand: {brand}

Create a prompt that describes a visually stunning, marketing-ready scene where this product is featured prominently. The scene should be: {scenario}

The prompt should:
- Describe a complete, visually appealing scene (not just the product)
- Include the product naturally integrated into the scene
- Include the brand logo prominently but naturally
- Be suitable for professional marketing/advertising
- Create an image that would work well on Instagram, Facebook, and Twitter
- Be specific about lighting, composition, and mood
- Make it feel authentic and aspirational

Return ONLY the image generation prompt, nothing else. Make it detailed and specific."""

_SURROUNDING_QUOTES_RE = re.compile(r"^[\"']|[\"']$")
_NEWLINES_RE = re.compile(r"\n+")


@dataclass(frozen=True, slots=True)
class BuiltPrompt:
    text: str
    style: str
    composition: str
    source: Literal["vision", "template"] = "template"


def logo_location_for(composition: str) -> str:
    location = "top corner"
    for keywords, candidate in _LOGO_LOCATION_RULES:
        if any(keyword in composition for keyword in keywords):
            location = candidate
    return location


def build_template_prompt(index: int, context: BrandContext | None = None) -> BuiltPrompt:
    """Render the deterministic prompt for variation ``index``."""

    style = STYLES[index % len(STYLES)]
    composition = COMPOSITIONS[index % len(COMPOSITIONS)]
    logo_location = logo_location_for(composition)
    brand_suffix = f" for {context.brand} {context.product}" if context else ""

    text = (
        f"Transform this product image into a {style} social media ad creative. "
        f"Apply {composition} layout. "
        f"Integrate the brand logo prominently at {logo_location}. "
        "The final image should be a complete, professional ad creative ready for "
        f"social media{brand_suffix}, with the product and logo combined in a "
        f"visually appealing {style} design. Maintain product visibility and "
        "authenticity while incorporating the logo naturally. Create a cohesive "
        "composition that works as a standalone ad creative. High quality, commercial "
        "photography style, well-lit, professional composition, no text overlays, "
        "clean design suitable for Instagram, Facebook, and Twitter."
    )
    return BuiltPrompt(text=text, style=style, composition=composition)


def clean_scene_prompt(text: str) -> str:
    return _NEWLINES_RE.sub(" ", _SURROUNDING_QUOTES_RE.sub("", text.strip())).strip()


class PromptBuilder:
    """Build per-variation prompts, preferring vision-written scene prompts."""

    def __init__(self, settings: Settings, client: AsyncArk | None) -> None:
        self._settings = settings
        self._client = client

    async def build(
        self,
        index: int,
        context: BrandContext,
        product_image: UploadedImage,
        *,
        request_id: str | None = None,
    ) -> BuiltPrompt:
        template = build_template_prompt(index, context)
        if self._client is None:
            return template

        scenario = SCENARIOS[index % len(SCENARIOS)]
        try:
            reply = await ask_about_image(
                self._client,
                settings=self._settings,
                image=product_image,
                instruction=SCENE_PROMPT_TEMPLATE.format(
                    description=context.description,
                    brand=context.brand,
                    scenario=scenario,
                ),
                operation="scene_prompt",
                max_tokens=self._settings.prompt_max_tokens,
                request_id=request_id,
            )
            text = clean_scene_prompt(reply)
        except Exception as exc:
            logger.warning(
                "Scene prompt generation failed, using template prompt",
                extra={"request_id": request_id, "unit_index": index},
                exc_info=exc,
            )
            return template

        if not text:
            logger.warning(
                "Scene prompt was empty, using template prompt",
                extra={"request_id": request_id, "unit_index": index},
            )
            return template

        return BuiltPrompt(
            text=text,
            style=template.style,
            composition=scenario,
            source="vision",
        )


__all__ = [
    "BuiltPrompt",
    "COMPOSITIONS",
    "PromptBuilder",
    "SCENARIOS",
    "STYLES",
    "build_template_prompt",
    "clean_scene_prompt",
    "logo_location_for",
]
