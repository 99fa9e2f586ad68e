"""
Application configuration using Pydantic Settings.
"""

from pydantic_settings import BaseSettings
from typing import List, Literal


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Runtime
    ENVIRONMENT: Literal["development", "test", "production"] = "development"
    LOG_LEVEL: str = "INFO"

    # Inference (OpenRouter, OpenAI-compatible) - key must be set via environment
    OPENROUTER_API_KEY: str = ""  # Empty disables inference, fallbacks take over
    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    FRONTEND_URL: str = "http://localhost:3000"
    APP_TITLE: str = "TranscriptPro AI"

    AI_TEMPERATURE: float = 0.3
    AI_TOP_P: float = 0.9
    AI_TIMEOUT: float = 30.0
    AI_MAX_ATTEMPTS: int = 3
    AI_RATE_LIMIT_BACKOFF: float = 2.0  # seconds x attempt after a 429
    AI_RETRY_BACKOFF: float = 1.0  # seconds x attempt after other failures
    AI_DEFAULT_MAX_TOKENS: int = 2000
    CORRECTION_MAX_INPUT_TOKENS: int = 6000

    # Caption sources (Piped API instances, tried in order)
    PIPED_INSTANCES: List[str] = [
        "https://pipedapi.kavin.rocks",
        "https://pipedapi.moomoo.me",
        "https://pipedapi-libre.kavin.rocks",
        "https://pipedapi.smnz.de",
        "https://pipedapi.in.projectsegfau.lt",
    ]
    SOURCE_TIMEOUT: float = 10.0
    CAPTION_CONTENT_TIMEOUT: float = 15.0
    INSTANCE_STATUS_TIMEOUT: float = 5.0

    # External subtitle extraction tool
    YT_DLP_PATH: str = "yt-dlp"
    YT_DLP_TIMEOUT: float = 30.0
    TEMP_DIR: str = ""  # Empty means the system temp directory

    # Cache
    CACHE_TTL_SECONDS: int = 3600
    CACHE_MAX_ENTRIES: int = 256

    # Pacing
    SENTENCE_DELAY: float = 0.1
    BATCH_CHUNK_SIZE: int = 3
    BATCH_CHUNK_DELAY: float = 1.0
    BATCH_COOLDOWN: float = 0.5

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
