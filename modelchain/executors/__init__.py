"""Step executors and the dispatcher that selects one per step kind."""

from __future__ import annotations

import logging

import httpx

from ..catalog import ModelCatalog
from ..contracts import (
    FileInput,
    GenericHttpStep,
    HostedModelStep,
    InputStep,
    MarketplaceStep,
    MediaType,
    OutputStep,
    StepDefinition,
    StepOutput,
)
from ..errors import UnknownStepKindError
from ..providers import ProviderClients
from .base import StepExecutor
from .hosted import HostedModelExecutor
from .http import GenericHttpExecutor
from .marketplace import MarketplaceExecutor
from .passthrough import PassthroughExecutor

logger = logging.getLogger(__name__)

PERSISTED_MEDIA_TYPES = (MediaType.IMAGE, MediaType.VIDEO)


class StepDispatcher:
    """Routes each step variant to its executor."""

    def __init__(self, clients: ProviderClients, catalog: ModelCatalog) -> None:
        self.clients = clients
        self.catalog = catalog
        self._passthrough = PassthroughExecutor(clients, catalog)
        self._hosted = HostedModelExecutor(clients, catalog)
        self._marketplace = MarketplaceExecutor(clients, catalog)
        self._http = GenericHttpExecutor(clients, catalog)

    def executor_for(self, step: StepDefinition) -> StepExecutor:
        if isinstance(step, (InputStep, OutputStep)):
            return self._passthrough
        if isinstance(step, HostedModelStep):
            return self._hosted
        if isinstance(step, MarketplaceStep):
            return self._marketplace
        if isinstance(step, GenericHttpStep):
            return self._http
        raise UnknownStepKindError(str(getattr(step, "kind", type(step).__name__)))

    async def execute(self, step: StepDefinition, step_input: StepOutput) -> StepOutput:
        output = await self.executor_for(step).execute(step, step_input)
        if (
            self.clients.persist_remote_media
            and step.is_visible
            and step.output_media_type in PERSISTED_MEDIA_TYPES
            and output.error is None
        ):
            output = await self._persist_media(output, step.output_media_type)
        return output

    async def _persist_media(self, output: StepOutput, media_type: MediaType) -> StepOutput:
        """Copy a temporary provider URL into the durable file store."""
        url = output.text.strip()
        store = self.clients.files
        if not url.startswith(("http://", "https://")) or store.owns(url):
            return output

        try:
            response = await self.clients.http.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Could not persist {media_type.value} from {url}: {e}")
            return output

        default_mime = "image/png" if media_type == MediaType.IMAGE else "video/mp4"
        mime_type = response.headers.get("content-type", default_mime).split(";")[0]
        stored = await store.put(response.content, mime_type)
        logger.info(f"Persisted {media_type.value} to {stored}")

        files = [
            file.model_copy(update={"url": stored, "mime_type": mime_type}) if file.url == url else file
            for file in output.files
        ]
        if not any(file.url == stored for file in files):
            files.insert(0, FileInput(url=stored, media_type=media_type, mime_type=mime_type))
        return StepOutput(text=stored, files=files)


__all__ = [
    "StepDispatcher",
    "StepExecutor",
    "PassthroughExecutor",
    "HostedModelExecutor",
    "MarketplaceExecutor",
    "GenericHttpExecutor",
]
