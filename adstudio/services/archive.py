"""ZIP packaging of staged creatives."""
from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Iterable, Tuple


def build_zip_archive(
    entries: Iterable[Tuple[str, Path]], *, compresslevel: int = 9
) -> bytes:
    """Write ``(archive name, file path)`` pairs into an in-memory ZIP.

    The buffer is returned only after the archive is closed and every entry
    finalised.
    """

    buffer = io.BytesIO()
    with zipfile.ZipFile(
        buffer, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=compresslevel
    ) as archive:
        for name, path in entries:
            archive.write(path, arcname=name)
    return buffer.getvalue()


__all__ = ["build_zip_archive"]
