from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_HTTP_TIMEOUT

# environment variable -> credentials field
CREDENTIAL_ENV = {
    "OPENAI_API_KEY": "openai_api_key",
    "ANTHROPIC_API_KEY": "anthropic_api_key",
    "GOOGLE_AI_API_KEY": "google_api_key",
    "XAI_API_KEY": "xai_api_key",
    "ELEVENLABS_API_KEY": "elevenlabs_api_key",
    "FAL_KEY": "fal_key",
}


class ProviderCredentials(BaseModel):
    """API keys for model providers. Missing keys disable the provider."""

    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    google_api_key: Optional[str] = None
    xai_api_key: Optional[str] = None
    elevenlabs_api_key: Optional[str] = None
    fal_key: Optional[str] = None


class FileStoreConfig(BaseModel):
    """Local durable file storage settings."""

    root: str = "uploads"
    public_prefix: str = "/uploads/"
    public_base_url: str = "http://localhost:3000"
    persist_remote_media: bool = False


class HttpConfig(BaseModel):
    timeout: float = DEFAULT_HTTP_TIMEOUT


class ModelChainConfig(BaseModel):
    """Top-level configuration model."""

    credentials: ProviderCredentials = ProviderCredentials()
    files: FileStoreConfig = FileStoreConfig()
    http: HttpConfig = HttpConfig()
    database_url: Optional[str] = None
    workflows_dir: str = "workflows"


def load_config(path: Optional[str] = None) -> ModelChainConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to MODELCHAIN_CONFIG env
            variable or 'config.yaml' in the current directory.

    Provider API keys and the database URL found in the environment take
    precedence over values from the file.
    """

    config_path = path or os.getenv("MODELCHAIN_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ModelChainConfig(**data)
    else:
        config = ModelChainConfig()

    for env_name, field_name in CREDENTIAL_ENV.items():
        value = os.getenv(env_name)
        if value:
            setattr(config.credentials, field_name, value)

    env_db_url = os.getenv("MODELCHAIN_DATABASE_URL") or os.getenv("DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    return config
