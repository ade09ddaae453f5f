"""Request-scoped inputs shared by every creative unit."""
from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import Optional, Union

from adstudio.services.errors import UploadValidationError

BRAND_SENTINEL = "the brand"
PRODUCT_SENTINEL = "the product"
DESCRIPTION_SENTINEL = "a product"


@dataclass(slots=True)
class UploadedImage:
    """In-memory representation of an uploaded asset."""

    filename: str
    content_type: str | None
    data: bytes

    def to_data_uri(self) -> str:
        """Convert payload to a base64 data URI accepted by the remote models."""

        if not self.data:
            raise UploadValidationError(f"Image {self.filename} is empty")

        media_type = (self.content_type or "image/jpeg").split(";")[0]
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{media_type};base64,{encoded}"


@dataclass(frozen=True, slots=True)
class Extracted:
    """Brand and/or product names recovered from the vision model."""

    brand: Optional[str] = None
    product: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Unresolved:
    """Nothing usable could be recovered."""

    reason: str = "no match"


BrandExtraction = Union[Extracted, Unresolved]


@dataclass(frozen=True, slots=True)
class BrandContext:
    brand: str
    product: str
    description: str
    brand_resolved: bool = False
    product_resolved: bool = False


def resolve_brand_context(
    extraction: BrandExtraction,
    brand_override: str | None = None,
    product_override: str | None = None,
) -> BrandContext:
    """Merge an extraction with optional user-supplied names.

    Overrides only fill in names the extraction could not resolve.
    """

    brand: Optional[str] = None
    product: Optional[str] = None
    if isinstance(extraction, Extracted):
        brand, product = extraction.brand, extraction.product

    brand = brand or _clean_override(brand_override)
    product = product or _clean_override(product_override)

    if brand and product:
        description = f"{brand} {product}"
    elif brand or product:
        description = f"{brand or BRAND_SENTINEL} {product or PRODUCT_SENTINEL}"
    else:
        description = DESCRIPTION_SENTINEL

    return BrandContext(
        brand=brand or BRAND_SENTINEL,
        product=product or PRODUCT_SENTINEL,
        description=description,
        brand_resolved=bool(brand),
        product_resolved=bool(product),
    )


def _clean_override(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


__all__ = [
    "BRAND_SENTINEL",
    "BrandContext",
    "BrandExtraction",
    "DESCRIPTION_SENTINEL",
    "Extracted",
    "PRODUCT_SENTINEL",
    "Unresolved",
    "UploadedImage",
    "resolve_brand_context",
]
