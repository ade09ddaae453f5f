"""Ad caption generation via the Ark chat-completion model."""
from __future__ import annotations

import logging
import re

from volcenginesdkarkruntime import AsyncArk

from adstudio.core.config import Settings
from adstudio.services.ark_client import first_choice_text
from adstudio.services.context import BrandContext
from adstudio.services.retry import execute_with_retries

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional copywriter specializing in social media advertising. "
    "Create engaging, compelling ad captions that drive action."
)

CAPTION_STYLES: tuple[str, ...] = (
    "Direct and action-oriented",
    "Emotional and storytelling",
    "Benefit-focused and value-driven",
)

EMPTY_CAPTION_FALLBACK = "Discover our amazing product today!"
ERROR_CAPTION_FALLBACK = (
    "Experience the difference with our premium product. "
    "Shop now and transform your lifestyle today!"
)

_PREAMBLE_RE = re.compile(r"^\s*here(?:['’]s|\s+(?:are|is))\b[^:\n]*:", re.IGNORECASE)
_ITEM_MARKER_RE = re.compile(
    r"^\s*(?:\d+\s*[.)]|option\s*\d+\s*[:.)-]?)\s*", re.IGNORECASE | re.MULTILINE
)
# A second option started mid-line, e.g. '... today! Option 2: ...'
_INLINE_OPTION_RE = re.compile(r"\s+option\s*\d+\s*:", re.IGNORECASE)
# Only after a leading "1." marker: the next list item on the same line.
_INLINE_SECOND_ITEM_RE = re.compile(r"\s+2\s*[.)]\s")
_NUMBERED_MARKER_RE = re.compile(r"^\s*\d+\s*[.)]")
_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([.,!?;:])")
_BRACKETED_RE = re.compile(r"\[[^\]]*\]")
_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
_QUOTES = "\"'“”‘’"
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_caption(raw: str) -> str:
    """Reduce a chatty model reply to a single caption (may return "")."""

    text = _PREAMBLE_RE.sub("", (raw or "").strip(), count=1)
    numbered = _NUMBERED_MARKER_RE.match(text) is not None

    if _ITEM_MARKER_RE.search(text):
        items = [chunk.strip() for chunk in _ITEM_MARKER_RE.split(text)[1:]]
        items = [item for item in items if item]
        text = items[0] if items else ""

    text = _INLINE_OPTION_RE.split(text, maxsplit=1)[0]
    if numbered:
        text = _INLINE_SECOND_ITEM_RE.split(text, maxsplit=1)[0]
    text = _BRACKETED_RE.sub("", text)
    text = _PARENTHETICAL_RE.sub("", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    text = _SPACE_BEFORE_PUNCT_RE.sub(r"\1", text)
    return text.strip(_QUOTES).strip()


def caption_style_for(index: int) -> str:
    return CAPTION_STYLES[index % len(CAPTION_STYLES)]


def build_caption_request(image_prompt: str, index: int, context: BrandContext | None) -> str:
    context_info = ""
    if context and context.brand_resolved:
        context_info += f"The brand is {context.brand}. "
    if context and context.product_resolved:
        context_info += f"The product is {context.product}. "
    subject = context.description if context else "this product"

    return (
        f'{context_info}Based on this ad creative description: "{image_prompt}"\n\n'
        f"Create ONE compelling social media ad caption (2-3 sentences) specifically for "
        f"{subject} that:\n"
        "- Is engaging and attention-grabbing\n"
        "- Includes a clear call-to-action\n"
        "- Is suitable for platforms like Instagram, Facebook, and Twitter\n"
        "- Is professional but conversational\n"
        "- Encourages clicks and engagement\n"
        "- References the actual brand and product name when provided\n"
        "- Highlights key features or benefits\n\n"
        f"Variation style: {caption_style_for(index)}\n\n"
        "IMPORTANT: Return ONLY ONE caption. Do not provide multiple options or numbered "
        "lists. Just return the single best caption directly."
    )


class CaptionGenerator:
    """Write one caption per creative; never raises."""

    def __init__(self, settings: Settings, client: AsyncArk | None) -> None:
        self._settings = settings
        self._client = client

    async def generate(
        self,
        image_prompt: str,
        index: int,
        context: BrandContext | None,
        *,
        request_id: str | None = None,
    ) -> str:
        if self._client is None:
            return ERROR_CAPTION_FALLBACK

        client = self._client
        user_prompt = build_caption_request(image_prompt, index, context)
        try:
            response = await execute_with_retries(
                lambda: client.chat.completions.create(
                    model=self._settings.ark_caption_model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=self._settings.caption_temperature,
                    max_tokens=self._settings.caption_max_tokens,
                ),
                settings=self._settings,
                operation="caption_generation",
                request_id=request_id,
            )
            caption = sanitize_caption(first_choice_text(response))
        except Exception as exc:
            logger.warning(
                "Caption generation failed, using fallback caption",
                extra={"request_id": request_id, "unit_index": index},
                exc_info=exc,
            )
            return ERROR_CAPTION_FALLBACK

        return caption or EMPTY_CAPTION_FALLBACK


__all__ = [
    "CAPTION_STYLES",
    "CaptionGenerator",
    "EMPTY_CAPTION_FALLBACK",
    "ERROR_CAPTION_FALLBACK",
    "SYSTEM_PROMPT",
    "build_caption_request",
    "caption_style_for",
    "sanitize_caption",
]
