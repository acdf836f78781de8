"""Anthropic messages API text provider."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .base import TextProvider, max_tokens

logger = logging.getLogger(__name__)

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
CLAUDE_MODEL = "claude-sonnet-4-20250514"


class AnthropicTextProvider(TextProvider):
    name = "anthropic"

    def __init__(self, api_key: Optional[str], http: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._http = http

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def generate(
        self,
        system_prompt: str,
        user_message: str,
        params: Dict[str, Any],
        model_id: str,
    ) -> Optional[str]:
        if not self._api_key:
            return None

        response = await self._http.post(
            ANTHROPIC_URL,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            json={
                "model": CLAUDE_MODEL,
                "max_tokens": max_tokens(params),
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_message}],
            },
        )
        if response.is_error:
            logger.error(f"Anthropic API error {response.status_code}: {response.text[:200]}")
            return None

        content = response.json().get("content") or []
        return content[0].get("text", "") if content else ""
