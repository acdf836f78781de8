"""Model catalog: categories, providers and per-use prices."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from .constants import DEFAULT_MODEL_COST
from .contracts import MediaType
from .errors import ModelNotFoundError

CUSTOM_MARKETPLACE_MODEL = "fal-custom"
DEFAULT_PROVIDER = "openai"


class ModelSpec(BaseModel):
    """Describes one model a step can reference."""

    id: str
    name: str
    provider: str
    category: MediaType
    cost_per_use: int
    description: str = ""
    endpoint: Optional[str] = None
    is_marketplace: bool = False
    is_custom: bool = False
    param_keys: Tuple[str, ...] = Field(default_factory=tuple)


def _text(
    model_id: str, name: str, provider: str, cost: int, category: MediaType = MediaType.TEXT
) -> ModelSpec:
    return ModelSpec(
        id=model_id,
        name=name,
        provider=provider,
        category=category,
        cost_per_use=cost,
        param_keys=("prompt", "max_tokens", "temperature"),
    )


def _market(
    model_id: str, name: str, category: MediaType, cost: int, endpoint: str, *param_keys: str
) -> ModelSpec:
    return ModelSpec(
        id=model_id,
        name=name,
        provider="fal",
        category=category,
        cost_per_use=cost,
        endpoint=endpoint,
        is_marketplace=True,
        param_keys=("prompt",) + param_keys,
    )


BUILTIN_MODELS: List[ModelSpec] = [
    # text
    _text("gpt-5.2", "GPT-5.2", "openai", 8),
    _text("gpt-4o", "GPT-4o", "openai", 5),
    _text("gpt-4o-mini", "GPT-4o Mini", "openai", 1),
    _text("claude-4-opus", "Claude 4 Opus", "anthropic", 10),
    _text("claude-4-sonnet", "Claude 4 Sonnet", "anthropic", 5),
    _text("gemini-3", "Gemini 3", "google", 6),
    _text("grok-3", "Grok 3", "xai", 6),
    _text("llama-4", "Llama 4", "meta", 3),
    # document
    _text("gpt-5.2-doc", "GPT-5.2 Document", "openai", 8, MediaType.DOCUMENT),
    _text("gemini-3-doc", "Gemini 3 Document", "google", 6, MediaType.DOCUMENT),
    # image
    ModelSpec(
        id="dall-e-3",
        name="DALL-E 3",
        provider="openai",
        category=MediaType.IMAGE,
        cost_per_use=8,
        param_keys=("prompt", "size", "quality"),
    ),
    ModelSpec(
        id="gpt-image-1",
        name="GPT Image 1",
        provider="openai",
        category=MediaType.IMAGE,
        cost_per_use=6,
        param_keys=("prompt", "size"),
    ),
    # audio
    ModelSpec(
        id="whisper-1",
        name="OpenAI Whisper",
        provider="openai",
        category=MediaType.AUDIO,
        cost_per_use=3,
        param_keys=("audio_url", "language"),
    ),
    ModelSpec(
        id="openai-tts-1-hd",
        name="OpenAI TTS HD",
        provider="openai",
        category=MediaType.AUDIO,
        cost_per_use=4,
        param_keys=("input", "voice", "speed"),
    ),
    ModelSpec(
        id="elevenlabs-tts",
        name="ElevenLabs TTS",
        provider="elevenlabs",
        category=MediaType.AUDIO,
        cost_per_use=5,
        param_keys=("text", "voice_id", "stability", "similarity_boost"),
    ),
    # marketplace
    _market("fal-nano-banana", "Nano Banana", MediaType.IMAGE, 3, "fal-ai/nano-banana",
            "negative_prompt", "image_size", "num_inference_steps", "guidance_scale", "seed"),
    _market("fal-nano-banana-edit", "Nano Banana Edit", MediaType.IMAGE, 4,
            "fal-ai/nano-banana/edit", "image_urls", "num_images"),
    _market("fal-flux-pro", "FLUX.1 Pro", MediaType.IMAGE, 5, "fal-ai/flux-pro",
            "image_size", "num_inference_steps", "guidance_scale", "seed"),
    _market("fal-stable-diffusion-xl", "Stable Diffusion XL", MediaType.IMAGE, 3,
            "fal-ai/stable-diffusion-xl", "negative_prompt", "image_size", "seed"),
    _market("fal-seedance-1.5-pro-t2v", "Seedance 1.5 Pro Text to Video", MediaType.VIDEO, 12,
            "fal-ai/bytedance/seedance/v1.5/pro/text-to-video", "duration", "aspect_ratio"),
    _market("fal-seedance-1.5-pro-i2v", "Seedance 1.5 Pro Image to Video", MediaType.VIDEO, 12,
            "fal-ai/bytedance/seedance/v1.5/pro/image-to-video", "image_url", "duration"),
    _market("fal-kling-v3-t2v", "Kling v3 Text to Video", MediaType.VIDEO, 18,
            "fal-ai/kling-video/v3/standard/text-to-video", "duration", "aspect_ratio"),
    _market("fal-kling-v3-i2v", "Kling v3 Image to Video", MediaType.VIDEO, 18,
            "fal-ai/kling-video/v3/standard/image-to-video", "image_url", "duration"),
    _market("fal-audio-gen", "Stable Audio", MediaType.AUDIO, 4, "fal-ai/stable-audio",
            "negative_prompt", "duration", "seed"),
    ModelSpec(
        id=CUSTOM_MARKETPLACE_MODEL,
        name="Custom marketplace model",
        provider="fal",
        category=MediaType.VIDEO,
        cost_per_use=0,
        is_marketplace=True,
        is_custom=True,
    ),
]


class ModelCatalog:
    """Lookup table over model specs, keyed by model id."""

    def __init__(self, models: Iterable[ModelSpec] = ()) -> None:
        self._models: Dict[str, ModelSpec] = {m.id: m for m in models}

    def get(self, model_id: Optional[str]) -> Optional[ModelSpec]:
        if not model_id:
            return None
        return self._models.get(model_id)

    def resolve(self, model_id: str) -> ModelSpec:
        """Return the catalog entry for ``model_id`` or raise ``ModelNotFoundError``."""
        spec = self.get(model_id)
        if spec is None:
            raise ModelNotFoundError(model_id)
        return spec

    def display_name(self, model_id: Optional[str]) -> Optional[str]:
        if not model_id:
            return None
        spec = self.get(model_id)
        return spec.name if spec else model_id

    def cost_of(self, model_id: str) -> int:
        spec = self.get(model_id)
        return spec.cost_per_use if spec else DEFAULT_MODEL_COST

    def models(self, category: Optional[MediaType] = None) -> List[ModelSpec]:
        models = list(self._models.values())
        if category is not None:
            models = [m for m in models if m.category == category]
        return models

    def register(self, spec: ModelSpec) -> None:
        self._models[spec.id] = spec


def default_catalog() -> ModelCatalog:
    """Catalog pre-populated with the built-in models."""
    return ModelCatalog(BUILTIN_MODELS)
