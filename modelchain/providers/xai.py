"""xAI text provider over its OpenAI-compatible endpoint."""

from __future__ import annotations

from typing import Any, Dict, Optional

from openai import AsyncOpenAI

from .base import TextProvider
from .openai import run_chat

XAI_BASE_URL = "https://api.x.ai/v1"
GROK_MODEL = "grok-3"


class XaiTextProvider(TextProvider):
    name = "xai"

    def __init__(self, api_key: Optional[str], client: Optional[AsyncOpenAI] = None) -> None:
        self._api_key = api_key
        self._client = client

    @property
    def available(self) -> bool:
        return bool(self._api_key) or self._client is not None

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        params: Dict[str, Any],
        model_id: str,
    ) -> Optional[str]:
        if not self.available:
            return None
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=XAI_BASE_URL)
        return await run_chat(self._client, GROK_MODEL, system_prompt, user_message, params)
