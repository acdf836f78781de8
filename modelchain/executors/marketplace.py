"""Executor for third-party model marketplace steps."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from ..catalog import CUSTOM_MARKETPLACE_MODEL, ModelSpec
from ..constants import MAX_MARKETPLACE_ERROR_CHARS, MAX_PREVIEW_CHARS
from ..contracts import FileInput, MarketplaceStep, MediaType, StepOutput
from ..errors import ConfigurationError, ProviderError, ProviderHTTPError
from ..templating import expand_input
from .base import StepExecutor

logger = logging.getLogger(__name__)

# media type -> singular parameter slot; the plural form adds an "s"
FILE_SLOTS = (
    (MediaType.IMAGE, "image_url"),
    (MediaType.AUDIO, "audio_url"),
    (MediaType.VIDEO, "video_url"),
)

PLACEHOLDER_IMAGE_URL = "https://placehold.co/1024x1024/1a1a2e/e0e0e0?text={text}"


def normalize_result(result: Any) -> StepOutput:
    """Map the marketplace's response shapes onto a ``StepOutput``."""
    if not isinstance(result, dict):
        return StepOutput(text=json.dumps(result))

    images = result.get("images")
    if isinstance(images, list) and images and isinstance(images[0], dict) and images[0].get("url"):
        return _file_output(images[0]["url"], MediaType.IMAGE)

    for key, media_type in (
        ("image", MediaType.IMAGE),
        ("video", MediaType.VIDEO),
        ("audio", MediaType.AUDIO),
        ("audio_file", MediaType.AUDIO),
    ):
        value = result.get(key)
        if isinstance(value, dict) and value.get("url"):
            return _file_output(value["url"], media_type)

    if "output" in result:
        output = result["output"]
        return StepOutput(text=output if isinstance(output, str) else json.dumps(output))

    return StepOutput(text=json.dumps(result))


def _file_output(url: str, media_type: MediaType) -> StepOutput:
    return StepOutput(text=url, files=[FileInput(url=url, media_type=media_type)])


class MarketplaceExecutor(StepExecutor):
    async def execute(self, step: MarketplaceStep, step_input: StepOutput) -> StepOutput:
        if not step.model:
            return step_input

        model = self._catalog.resolve(step.model)
        is_custom = step.model == CUSTOM_MARKETPLACE_MODEL
        if not is_custom and not model.is_marketplace:
            raise ConfigurationError(f"Model {model.id} is not a marketplace model")

        endpoint = step.endpoint if is_custom else model.endpoint
        if not endpoint:
            raise ConfigurationError(f"No marketplace endpoint configured for step {step.id}")

        params = self._build_params(step, step_input.text)
        await self._fill_file_slots(params, model, step_input)
        await self._resolve_local_urls(params)

        market = self._clients.marketplace
        if market is None or not market.available:
            return self._stub(model, endpoint, is_custom, params, step_input)

        logger.info(f"Calling marketplace endpoint {endpoint} for step {step.id}")
        try:
            result = await market.run(endpoint, params)
        except ProviderHTTPError as e:
            logger.error(f"Marketplace returned {e.status_code} for {endpoint}")
            return self._error_output(e.body or str(e))
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Marketplace call to {endpoint} failed: {e}")
            return self._error_output(str(e))
        return normalize_result(result)

    def _build_params(self, step: MarketplaceStep, input_text: str) -> Dict[str, Any]:
        if step.model == CUSTOM_MARKETPLACE_MODEL:
            params: Dict[str, Any] = {
                pair.key: expand_input(pair.value, input_text) for pair in step.endpoint_params if pair.key
            }
        else:
            params = {key: expand_input(value, input_text) for key, value in step.params.items()}
        if not params.get("prompt") and step.prompt:
            params["prompt"] = expand_input(step.prompt, input_text)
        return params

    async def _fill_file_slots(
        self, params: Dict[str, Any], model: ModelSpec, step_input: StepOutput
    ) -> None:
        for media_type, slot in FILE_SLOTS:
            files = step_input.files_of(media_type)
            plural = f"{slot}s"
            if not files or params.get(slot) or params.get(plural):
                continue
            url = await self._marketplace_url(files[0])
            if plural in params or plural in model.param_keys:
                params[plural] = [url]
            else:
                params[slot] = url

    async def _resolve_local_urls(self, params: Dict[str, Any]) -> None:
        store = self._clients.files
        for key, value in params.items():
            if isinstance(value, str) and store.owns(value):
                params[key] = await self._marketplace_url(FileInput(url=value, media_type=MediaType.DOCUMENT))
            elif isinstance(value, list):
                params[key] = [
                    await self._marketplace_url(FileInput(url=item, media_type=MediaType.DOCUMENT))
                    if isinstance(item, str) and store.owns(item)
                    else item
                    for item in value
                ]

    async def _marketplace_url(self, file: FileInput) -> str:
        """Return a URL the marketplace can download ``file`` from."""
        store = self._clients.files
        path = store.local_path(file.url)
        market = self._clients.marketplace
        if path is not None and market is not None and market.available:
            try:
                data = await asyncio.to_thread(path.read_bytes)
                return await market.upload(data, file.mime_type or "application/octet-stream", path.name)
            except (ProviderError, httpx.HTTPError) as e:
                logger.error(f"Upload of {file.url} to marketplace storage failed: {e}")
        return store.absolute_url(file.url)

    @staticmethod
    def _error_output(message: str) -> StepOutput:
        return StepOutput(text=f"[Marketplace error: {message[:MAX_MARKETPLACE_ERROR_CHARS]}]")

    @staticmethod
    def _stub(
        model: ModelSpec,
        endpoint: str,
        is_custom: bool,
        params: Dict[str, Any],
        step_input: StepOutput,
    ) -> StepOutput:
        name = f"Custom ({endpoint})" if is_custom else model.name
        if model.category == MediaType.IMAGE and not is_custom:
            url = PLACEHOLDER_IMAGE_URL.format(text=quote(model.name))
            return _file_output(url, MediaType.IMAGE)
        if model.category == MediaType.VIDEO or is_custom:
            return StepOutput(text=f"[{name} - no marketplace credential configured]")
        if model.category == MediaType.AUDIO:
            return StepOutput(text=f"[{name} audio - no marketplace credential configured]")
        prompt: Optional[str] = params.get("prompt") if isinstance(params.get("prompt"), str) else None
        return StepOutput(text=f"[{name}] {(prompt or step_input.text)[:MAX_PREVIEW_CHARS]}")
