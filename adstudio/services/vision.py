"""Brand and product detection from the uploaded logo and product photo."""
from __future__ import annotations

import logging
import re
from typing import Optional

from volcenginesdkarkruntime import AsyncArk

from adstudio.core.config import Settings
from adstudio.services.ark_client import first_choice_text, image_part, text_part
from adstudio.services.context import BrandExtraction, Extracted, Unresolved, UploadedImage
from adstudio.services.retry import execute_with_retries

logger = logging.getLogger(__name__)

LOGO_INSTRUCTION = (
    "What brand or company name is shown in this logo? Extract the exact brand name. "
    "If you see text, provide it exactly as shown. Only return the brand name, nothing else."
)

PRODUCT_INSTRUCTION = (
    "What product is shown in this image? Describe the product type, brand name if "
    "visible, and key features. Be specific about the product name and type. "
    "Format: 'Brand Name - Product Type' or just 'Product Type' if no brand is visible."
)

HEDGE_WORDS = ("unknown", "cannot", "can't", "unable", "not sure")

_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_CAPITALISED_PHRASE = r"[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*"
_BRAND_DASH_RE = re.compile(rf"({_CAPITALISED_PHRASE})\s*[-–—]\s*(.+)", re.DOTALL)
_LEADING_BRAND_RE = re.compile(rf"^({_CAPITALISED_PHRASE})")
_PRODUCT_HEAD_RE = re.compile(r"^[^a-zA-Z0-9]*")
_PRODUCT_TAIL_RE = re.compile(r"[^a-zA-Z0-9\s]*$")


def clean_brand_candidate(text: str) -> str:
    """Drop everything but letters, digits and single spaces."""

    return _WHITESPACE_RE.sub(" ", _NON_ALNUM_RE.sub("", text)).strip()


def is_hedged(text: str) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in HEDGE_WORDS)


def parse_brand_product(logo_text: str, product_text: str) -> BrandExtraction:
    """Best-effort parse of the two free-text vision replies."""

    logo_text = (logo_text or "").strip()
    product_text = (product_text or "").strip()

    brand: Optional[str] = clean_brand_candidate(logo_text)
    product: Optional[str] = product_text

    if not brand or len(brand) < 2 or is_hedged(logo_text):
        brand = None
        dash_match = _BRAND_DASH_RE.search(product_text)
        if dash_match:
            brand = dash_match.group(1).strip()
            product = dash_match.group(2).strip()
        else:
            leading = _LEADING_BRAND_RE.match(product_text)
            if leading:
                brand = leading.group(1).strip()
                product = _remove_name(product_text, brand)
    else:
        product = _remove_name(product_text, brand)

    if brand:
        brand = clean_brand_candidate(brand)
        if len(brand) < 2 or brand.lower() == "unknown":
            brand = None

    if product:
        product = _PRODUCT_TAIL_RE.sub("", _PRODUCT_HEAD_RE.sub("", product))
        product = _WHITESPACE_RE.sub(" ", product).strip()
        if len(product) < 2:
            product = None

    if not brand and not product:
        return Unresolved("no brand or product recognised")
    return Extracted(brand=brand, product=product)


def _remove_name(text: str, name: str) -> str:
    return re.sub(re.escape(name), "", text, flags=re.IGNORECASE).strip()


async def ask_about_image(
    client: AsyncArk,
    *,
    settings: Settings,
    image: UploadedImage,
    instruction: str,
    operation: str,
    max_tokens: int,
    request_id: str | None = None,
) -> str:
    """Send one image plus an instruction to the vision model and return its text."""

    response = await execute_with_retries(
        lambda: client.chat.completions.create(
            model=settings.ark_vision_model,
            messages=[
                {
                    "role": "user",
                    "content": [image_part(image.to_data_uri()), text_part(instruction)],
                }
            ],
            max_tokens=max_tokens,
        ),
        settings=settings,
        operation=operation,
        request_id=request_id,
    )
    return first_choice_text(response)


class VisionDescriber:
    """Ask the vision model for brand/product names; never raises."""

    def __init__(self, settings: Settings, client: AsyncArk | None) -> None:
        self._settings = settings
        self._client = client

    async def describe(
        self,
        logo: UploadedImage,
        product: UploadedImage,
        *,
        request_id: str | None = None,
    ) -> BrandExtraction:
        if self._client is None:
            logger.warning(
                "Vision model not configured, using fallback brand context",
                extra={"request_id": request_id},
            )
            return Unresolved("vision model not configured")

        try:
            logo_text = await ask_about_image(
                self._client,
                settings=self._settings,
                image=logo,
                instruction=LOGO_INSTRUCTION,
                operation="logo_analysis",
                max_tokens=64,
                request_id=request_id,
            )
            product_text = await ask_about_image(
                self._client,
                settings=self._settings,
                image=product,
                instruction=PRODUCT_INSTRUCTION,
                operation="product_analysis",
                max_tokens=200,
                request_id=request_id,
            )
            extraction = parse_brand_product(logo_text, product_text)
        except Exception as exc:
            logger.warning(
                "Vision analysis failed, using fallback brand context",
                extra={"request_id": request_id},
                exc_info=exc,
            )
            return Unresolved(str(exc) or exc.__class__.__name__)

        logger.info(
            "Vision analysis complete",
            extra={"request_id": request_id, "extraction": repr(extraction)},
        )
        return extraction


__all__ = [
    "HEDGE_WORDS",
    "VisionDescriber",
    "ask_about_image",
    "clean_brand_candidate",
    "is_hedged",
    "parse_brand_product",
]
