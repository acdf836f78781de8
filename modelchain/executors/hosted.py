"""Executor for steps backed by a hosted model provider."""

from __future__ import annotations

import asyncio
import base64
import logging
import mimetypes
import tempfile
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..catalog import DEFAULT_PROVIDER, ModelSpec
from ..constants import DEFAULT_SYSTEM_PROMPT, MAX_PREVIEW_CHARS
from ..contracts import FileInput, HostedModelStep, MediaType, StepOutput
from ..errors import ProviderError
from ..providers import VisionImage
from ..templating import expand_input
from .base import StepExecutor

logger = logging.getLogger(__name__)

SPEECH_TO_TEXT_MODEL = "whisper-1"
TEXT_TO_SPEECH_MODEL = "openai-tts-1-hd"
PREMIUM_TTS_MODEL = "elevenlabs-tts"


class HostedModelExecutor(StepExecutor):
    """Dispatches a hosted model step on the model's catalog category."""

    async def execute(self, step: HostedModelStep, step_input: StepOutput) -> StepOutput:
        if not step.model:
            return step_input

        model = self._catalog.resolve(step.model)
        params = expand_input(dict(step.params), step_input.text)

        if model.category in (MediaType.TEXT, MediaType.DOCUMENT):
            return await self._generate_text(model, step, step_input, params)
        if model.category == MediaType.IMAGE:
            return await self._generate_image(model, step, step_input, params)
        if model.category == MediaType.AUDIO:
            if model.id == SPEECH_TO_TEXT_MODEL:
                return await self._transcribe(step_input, params)
            if model.id == TEXT_TO_SPEECH_MODEL:
                return await self._speak(self._speech_text(step_input, params), params)
            if model.id == PREMIUM_TTS_MODEL:
                return await self._speak_premium(step_input, params)

        logger.info(f"No handler for {model.id} ({model.category.value}), returning placeholder")
        return StepOutput(
            text=f'[{model.name}] Processed: "{step_input.text[:MAX_PREVIEW_CHARS]}"'
        )

    # ------------------------------------------------------------------
    # text
    async def _generate_text(
        self,
        model: ModelSpec,
        step: HostedModelStep,
        step_input: StepOutput,
        params: Dict[str, Any],
    ) -> StepOutput:
        system_prompt = (
            expand_input(step.prompt, step_input.text) or step_input.text or DEFAULT_SYSTEM_PROMPT
        )
        user_message = step_input.text

        if model.provider != DEFAULT_PROVIDER:
            text = await self._try_secondary(model, system_prompt, user_message, params)
            if text:
                return StepOutput(text=text)

        images = await self._vision_images(step_input.files_of(MediaType.IMAGE))
        text = await self._clients.default.chat(
            system_prompt, user_message, params, model.id, images=images
        )
        return StepOutput(text=text)

    async def _try_secondary(
        self,
        model: ModelSpec,
        system_prompt: str,
        user_message: str,
        params: Dict[str, Any],
    ) -> Optional[str]:
        provider = self._clients.text_providers.get(model.provider)
        if provider is None or not provider.available:
            logger.debug(f"{model.provider} not configured, using default provider for {model.id}")
            return None
        try:
            return await provider.generate(system_prompt, user_message, params, model.id)
        except Exception as e:
            logger.warning(f"{model.provider} failed for {model.id}, falling back: {e}")
            return None

    async def _vision_images(self, files: List[FileInput]) -> List[VisionImage]:
        images: List[VisionImage] = []
        for file in files:
            path = self._clients.files.local_path(file.url)
            if path is not None:
                mime_type = file.mime_type or mimetypes.guess_type(path.name)[0] or "image/png"
                data = await asyncio.to_thread(path.read_bytes)
                images.append(VisionImage(data=data, mime_type=mime_type))
            else:
                images.append(VisionImage(url=self._clients.files.absolute_url(file.url)))
        return images

    # ------------------------------------------------------------------
    # image
    async def _generate_image(
        self,
        model: ModelSpec,
        step: HostedModelStep,
        step_input: StepOutput,
        params: Dict[str, Any],
    ) -> StepOutput:
        prompt = str(params.get("prompt") or expand_input(step.prompt, step_input.text) or step_input.text)
        generated = await self._clients.default.generate_image(model.id, prompt, params)

        url = generated.url
        if not url and generated.b64_json:
            url = await self._clients.files.put(base64.b64decode(generated.b64_json), "image/png")
        if not url:
            return StepOutput(text="")

        return StepOutput(
            text=url,
            files=[FileInput(url=url, media_type=MediaType.IMAGE, name="generated.png", mime_type="image/png")],
        )

    # ------------------------------------------------------------------
    # audio
    async def _transcribe(self, step_input: StepOutput, params: Dict[str, Any]) -> StepOutput:
        audio = step_input.files_of(MediaType.AUDIO)
        if not audio:
            return StepOutput(text="No audio file provided for transcription.")

        language = params.get("language") or None
        url = audio[0].url
        path = self._clients.files.local_path(url)
        if path is not None:
            return StepOutput(text=await self._clients.default.transcribe(path, language))

        if url.startswith(("http://", "https://")):
            async with self._downloaded(url) as tmp:
                return StepOutput(text=await self._clients.default.transcribe(tmp, language))

        return StepOutput(text="Could not access audio file for transcription.")

    @asynccontextmanager
    async def _downloaded(self, url: str) -> AsyncIterator[Path]:
        """Download ``url`` into a temporary file that is removed on exit."""
        fd, name = tempfile.mkstemp(suffix=Path(httpx.URL(url).path).suffix or ".mp3")
        path = Path(name)
        try:
            with open(fd, "wb") as handle:
                response = await self._clients.http.get(url, follow_redirects=True)
                response.raise_for_status()
                handle.write(response.content)
            yield path
        finally:
            path.unlink(missing_ok=True)

    @staticmethod
    def _speech_text(step_input: StepOutput, params: Dict[str, Any]) -> str:
        return step_input.text or str(params.get("input") or params.get("text") or "")

    async def _speak(self, text: str, params: Dict[str, Any]) -> StepOutput:
        if not text:
            return StepOutput(text="No text provided for speech generation.")
        data = await self._clients.default.synthesize_speech(
            text,
            voice=params.get("voice") or "alloy",
            speed=float(params.get("speed") or 1.0),
        )
        return await self._store_audio(data, "tts")

    async def _speak_premium(self, step_input: StepOutput, params: Dict[str, Any]) -> StepOutput:
        text = self._speech_text(step_input, params)
        if not text:
            return StepOutput(text="No text provided for speech generation.")

        premium = self._clients.premium_tts
        if premium is None or not premium.available:
            logger.debug("Premium speech not configured, using default provider")
            return await self._speak(text, params)

        try:
            data = await premium.synthesize(
                text,
                voice_id=params.get("voice_id") or "rachel",
                stability=float(params.get("stability") or 0.5),
                similarity_boost=float(params.get("similarity_boost") or 0.75),
            )
        except (ProviderError, httpx.HTTPError) as e:
            logger.warning(f"Premium speech failed, falling back to default provider: {e}")
            return await self._speak(text, params)
        return await self._store_audio(data, "elevenlabs")

    async def _store_audio(self, data: bytes, prefix: str) -> StepOutput:
        name = f"{prefix}-{uuid.uuid4().hex}.mp3"
        url = await self._clients.files.put(data, "audio/mpeg", name)
        return StepOutput(
            text=url,
            files=[FileInput(url=url, media_type=MediaType.AUDIO, name=name, mime_type="audio/mpeg")],
        )
