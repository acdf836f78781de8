"""Gemini generateContent text provider."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from .base import TextProvider, max_tokens, temperature

logger = logging.getLogger(__name__)

GEMINI_URL = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "gemini-2.0-flash:generateContent"
)


class GeminiTextProvider(TextProvider):
    name = "google"

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
            GEMINI_URL,
            params={"key": self._api_key},
            json={
                "systemInstruction": {"parts": [{"text": system_prompt}]},
                "contents": [{"parts": [{"text": user_message}]}],
                "generationConfig": {
                    "maxOutputTokens": max_tokens(params),
                    "temperature": temperature(params),
                },
            },
        )
        if response.is_error:
            logger.error(f"Gemini API error {response.status_code}: {response.text[:200]}")
            return None

        candidates = response.json().get("candidates") or []
        try:
            return candidates[0]["content"]["parts"][0].get("text", "")
        except (IndexError, KeyError, TypeError):
            return ""
