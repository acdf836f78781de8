"""Provider client construction."""

from __future__ import annotations

from typing import Dict, Optional

import httpx

from ..config import ModelChainConfig, load_config
from ..filestore import FileStore, LocalFileStore
from .anthropic import AnthropicTextProvider
from .base import GeneratedImage, TextProvider, VisionImage
from .elevenlabs import ElevenLabsClient
from .fal import FalClient
from .google import GeminiTextProvider
from .openai import OpenAIClient
from .xai import XaiTextProvider


class ProviderClients:
    """Explicitly constructed client handles shared by the executors.

    One instance is built per process (or per execution in tests) and passed
    down; nothing in the executors reaches for a global client.
    """

    def __init__(
        self,
        default: OpenAIClient,
        files: FileStore,
        http: httpx.AsyncClient,
        text_providers: Optional[Dict[str, TextProvider]] = None,
        premium_tts: Optional[ElevenLabsClient] = None,
        marketplace: Optional[FalClient] = None,
        persist_remote_media: bool = False,
    ) -> None:
        self.default = default
        self.files = files
        self.http = http
        self.text_providers = text_providers or {}
        self.premium_tts = premium_tts
        self.marketplace = marketplace
        self.persist_remote_media = persist_remote_media

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> "ProviderClients":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


def build_clients(
    config: Optional[ModelChainConfig] = None,
    http: Optional[httpx.AsyncClient] = None,
    files: Optional[FileStore] = None,
) -> ProviderClients:
    """Factory function to build provider clients from configuration."""

    config = config or load_config()
    creds = config.credentials
    http = http or httpx.AsyncClient(timeout=config.http.timeout)

    return ProviderClients(
        default=OpenAIClient(creds.openai_api_key),
        files=files or LocalFileStore.from_config(config.files),
        http=http,
        text_providers={
            "anthropic": AnthropicTextProvider(creds.anthropic_api_key, http),
            "google": GeminiTextProvider(creds.google_api_key, http),
            "xai": XaiTextProvider(creds.xai_api_key),
        },
        premium_tts=ElevenLabsClient(creds.elevenlabs_api_key, http),
        marketplace=FalClient(creds.fal_key, http),
        persist_remote_media=config.files.persist_remote_media,
    )


__all__ = [
    "ProviderClients",
    "build_clients",
    "TextProvider",
    "VisionImage",
    "GeneratedImage",
    "OpenAIClient",
    "AnthropicTextProvider",
    "GeminiTextProvider",
    "XaiTextProvider",
    "ElevenLabsClient",
    "FalClient",
]
