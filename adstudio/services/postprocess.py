"""Normalise generated images to the square JPEG canvas shipped to clients.

Pillow is imported lazily so the rest of the app stays fast to import.
"""
from __future__ import annotations

import io

from adstudio.services.errors import EncodeError

Color = tuple[int, int, int]

WHITE: Color = (255, 255, 255)


def _load_pil():  # pragma: no cover - import guard
    try:
        from PIL import Image, ImageOps, UnidentifiedImageError  # type: ignore

        return Image, ImageOps, UnidentifiedImageError
    except Exception as exc:  # pragma: no cover - best effort
        raise RuntimeError("Pillow (PIL) is required for image post-processing") from exc


def normalize_creative_image(
    data: bytes,
    *,
    size: int = 1024,
    quality: int = 90,
    background: Color = WHITE,
) -> bytes:
    """Contain ``data`` on a ``size``×``size`` canvas and encode it as JPEG."""

    Image, ImageOps, UnidentifiedImageError = _load_pil()
    try:
        with Image.open(io.BytesIO(data)) as source:
            source.load()
            img = _flatten(Image, source, background)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise EncodeError(f"Generated image could not be decoded: {exc}") from exc

    fitted = ImageOps.contain(img, (size, size), method=Image.LANCZOS)
    canvas = Image.new("RGB", (size, size), background)
    canvas.paste(fitted, ((size - fitted.width) // 2, (size - fitted.height) // 2))

    out = io.BytesIO()
    canvas.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def _flatten(Image, img, background: Color):
    """Composite any transparency onto the background colour."""

    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        rgba = img.convert("RGBA")
        base = Image.new("RGBA", rgba.size, background + (255,))
        return Image.alpha_composite(base, rgba).convert("RGB")
    return img.convert("RGB")


__all__ = ["normalize_creative_image"]
