"""Default hosted provider: chat, image generation, transcription and speech."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from openai import AsyncOpenAI
from pydantic_ai import Agent, BinaryContent, ImageUrl
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from ..constants import DEFAULT_VISION_PROMPT, MAX_TTS_INPUT_CHARS
from ..errors import ProviderUnavailableError
from .base import GeneratedImage, VisionImage, max_tokens, temperature

logger = logging.getLogger(__name__)

# catalog text model -> chat model served by the default provider
CHAT_MODEL_MAP = {
    "gpt-5.2": "gpt-4o",
    "gpt-4o": "gpt-4o",
    "gpt-4o-mini": "gpt-4o-mini",
    "gpt-5.2-doc": "gpt-4o",
    "gemini-3-doc": "gpt-4o",
    "claude-4-opus": "gpt-4o",
    "claude-4-sonnet": "gpt-4o",
    "gemini-3": "gpt-4o",
    "grok-3": "gpt-4o",
    "llama-4": "gpt-4o-mini",
}
DEFAULT_CHAT_MODEL = "gpt-4o"


def chat_model_for(model_id: str) -> str:
    return CHAT_MODEL_MAP.get(model_id, DEFAULT_CHAT_MODEL)


async def run_chat(
    client: AsyncOpenAI,
    model_name: str,
    system_prompt: str,
    user_prompt: Union[str, List[Any]],
    params: Dict[str, Any],
) -> str:
    """Run a single chat turn through a pydantic-ai agent."""
    model = OpenAIChatModel(model_name, provider=OpenAIProvider(openai_client=client))
    agent = Agent(model, system_prompt=system_prompt)
    result = await agent.run(
        user_prompt,
        model_settings={
            "max_tokens": max_tokens(params),
            "temperature": temperature(params),
        },
    )
    return result.output or ""


class OpenAIClient:
    """Client for the default hosted provider.

    Unlike the secondary text providers this one has no fallback behind it,
    so a missing credential raises ``ProviderUnavailableError``.
    """

    name = "openai"

    def __init__(self, api_key: Optional[str], client: Optional[AsyncOpenAI] = None) -> None:
        self._api_key = api_key
        self._client = client

    @property
    def available(self) -> bool:
        return bool(self._api_key) or self._client is not None

    @property
    def client(self) -> AsyncOpenAI:
        if not self.available:
            raise ProviderUnavailableError(self.name)
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def chat(
        self,
        system_prompt: str,
        user_message: str,
        params: Dict[str, Any],
        model_id: str,
        images: Sequence[VisionImage] = (),
    ) -> str:
        user_prompt: Union[str, List[Any]] = user_message
        if images:
            parts: List[Any] = [user_message or DEFAULT_VISION_PROMPT]
            for image in images:
                if image.data is not None and image.mime_type:
                    parts.append(BinaryContent(data=image.data, media_type=image.mime_type))
                elif image.url:
                    parts.append(ImageUrl(url=image.url))
            user_prompt = parts
        model_name = chat_model_for(model_id)
        logger.debug(f"Chat completion with {model_name} for {model_id} ({len(images)} images)")
        return await run_chat(self.client, model_name, system_prompt, user_prompt, params)

    async def generate_image(
        self, model_id: str, prompt: str, params: Dict[str, Any]
    ) -> GeneratedImage:
        kwargs: Dict[str, Any] = {
            "model": model_id,
            "prompt": prompt,
            "n": 1,
            "size": params.get("size") or "1024x1024",
        }
        if model_id == "dall-e-3":
            kwargs["quality"] = params.get("quality") or "standard"
        response = await self.client.images.generate(**kwargs)
        if not response.data:
            return GeneratedImage()
        first = response.data[0]
        return GeneratedImage(url=first.url, b64_json=first.b64_json)

    async def transcribe(self, path: Path, language: Optional[str] = None) -> str:
        kwargs: Dict[str, Any] = {"model": "whisper-1"}
        if language:
            kwargs["language"] = language
        path = Path(path)
        data = await asyncio.to_thread(path.read_bytes)
        transcription = await self.client.audio.transcriptions.create(
            file=(path.name, data), **kwargs
        )
        return transcription.text

    async def synthesize_speech(self, text: str, voice: str = "alloy", speed: float = 1.0) -> bytes:
        response = await self.client.audio.speech.create(
            model="tts-1-hd",
            voice=voice,
            input=text[:MAX_TTS_INPUT_CHARS],
            speed=speed,
        )
        return response.content
