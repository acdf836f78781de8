"""Shared limits and defaults."""

DEFAULT_MODEL_COST = 2
CREATOR_COMMISSION_RATE = 0.7

MAX_TEXT_OUTPUT_CHARS = 10_000
MAX_ERROR_BODY_CHARS = 300
MAX_MARKETPLACE_ERROR_CHARS = 200
MAX_PREVIEW_CHARS = 200
MAX_TTS_INPUT_CHARS = 4096

DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7
DEFAULT_HTTP_TIMEOUT = 120.0

DEFAULT_SYSTEM_PROMPT = "Process the user input and respond."
DEFAULT_VISION_PROMPT = "Analyze this image."
