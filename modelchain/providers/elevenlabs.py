"""Premium text-to-speech provider."""

from __future__ import annotations

from typing import Optional

import httpx

from ..errors import ProviderHTTPError, ProviderUnavailableError

ELEVENLABS_URL = "https://api.elevenlabs.io/v1/text-to-speech/{voice_id}"
ELEVENLABS_MODEL = "eleven_multilingual_v2"


class ElevenLabsClient:
    name = "elevenlabs"

    def __init__(self, api_key: Optional[str], http: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._http = http

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    async def synthesize(
        self,
        text: str,
        voice_id: str = "rachel",
        stability: float = 0.5,
        similarity_boost: float = 0.75,
    ) -> bytes:
        """Return MP3 bytes for ``text``."""
        if not self._api_key:
            raise ProviderUnavailableError(self.name)

        response = await self._http.post(
            ELEVENLABS_URL.format(voice_id=voice_id),
            headers={"xi-api-key": self._api_key},
            json={
                "text": text,
                "model_id": ELEVENLABS_MODEL,
                "voice_settings": {
                    "stability": stability,
                    "similarity_boost": similarity_boost,
                },
            },
        )
        if response.is_error:
            raise ProviderHTTPError(self.name, response.status_code, response.text)
        return response.content
