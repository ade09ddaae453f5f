"""Shared stubs for Ark chat clients and image fixtures."""
from __future__ import annotations

import io
from types import SimpleNamespace
from typing import Any, Callable, Union

from PIL import Image

Reply = Union[str, Exception]


def chat_response(text: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=text))]
    )


def message_text(kwargs: dict[str, Any]) -> str:
    """Flatten every text part of a chat request into one string."""

    chunks: list[str] = []
    for message in kwargs.get("messages", []):
        content = message.get("content")
        if isinstance(content, str):
            chunks.append(content)
        elif isinstance(content, list):
            chunks.extend(part.get("text", "") for part in content if part.get("type") == "text")
    return "\n".join(chunks)


class _StubCompletions:
    def __init__(self, responder: Callable[[dict[str, Any]], Reply]) -> None:
        self._responder = responder
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        reply = self._responder(kwargs)
        if isinstance(reply, Exception):
            raise reply
        return chat_response(reply)


class StubArk:
    """Mimics the `AsyncArk` surface used by the services."""

    def __init__(self, responder: Callable[[dict[str, Any]], Reply]) -> None:
        self.chat = SimpleNamespace(completions=_StubCompletions(responder))

    @property
    def calls(self) -> list[dict[str, Any]]:
        return self.chat.completions.calls

    async def close(self) -> None:  # pragma: no cover - compatibility
        return None


def image_bytes(
    size: tuple[int, int] = (64, 32),
    color: tuple[int, ...] = (200, 30, 30, 255),
    mode: str = "RGBA",
    fmt: str = "PNG",
) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format=fmt)
    return buffer.getvalue()
