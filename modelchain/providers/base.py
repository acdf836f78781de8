"""Base interfaces for model provider clients."""

from __future__ import annotations

import abc
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..constants import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE


class VisionImage(BaseModel):
    """Image attached to a chat request, either inline bytes or a URL."""

    url: Optional[str] = None
    data: Optional[bytes] = None
    mime_type: Optional[str] = None


class GeneratedImage(BaseModel):
    """Image generation result: a hosted URL or base64 encoded bytes."""

    url: Optional[str] = None
    b64_json: Optional[str] = None


class TextProvider(metaclass=abc.ABCMeta):
    """A secondary text-generation provider in the fallback chain."""

    name: str = ""

    @property
    @abc.abstractmethod
    def available(self) -> bool:
        """``True`` when a credential is configured."""
        raise NotImplementedError

    @abc.abstractmethod
    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        params: Dict[str, Any],
        model_id: str,
    ) -> Optional[str]:
        """Return generated text, or ``None`` when the provider cannot answer.

        ``None`` lets the caller fall back to the default provider.
        """
        raise NotImplementedError


def max_tokens(params: Dict[str, Any]) -> int:
    return int(params.get("max_tokens") or DEFAULT_MAX_TOKENS)


def temperature(params: Dict[str, Any]) -> float:
    return float(params.get("temperature") or DEFAULT_TEMPERATURE)
