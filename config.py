# config.py
"""Configuration settings for the name list generator.
Uses Pydantic BaseSettings for automatic environment variable loading.
"""

from __future__ import annotations

import structlog
from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = structlog.get_logger()


class NameForgeSettings(BaseSettings):
    """Full configuration for a name list generation run."""

    # API and Model Configuration
    OPENAI_API_BASE: str = "http://127.0.0.1:8080/v1"
    OPENAI_API_KEY: str = "nope"
    GENERATION_MODEL: str = "gemini-2.5-flash"

    # Generation Parameters
    TEMPERATURE_GENERATION: float = 0.5
    LLM_TOP_P: float = 0.95
    MAX_GENERATION_TOKENS: int = 65536
    MAX_LORE_TOKENS: int = 32768
    TIKTOKEN_DEFAULT_ENCODING: str = "cl100k_base"
    FALLBACK_CHARS_PER_TOKEN: float = 4.0
    PROMPT_TEMPLATE: str = "name_generation.j2"

    # LLM Call Settings
    LLM_RETRY_ATTEMPTS: int = 3
    LLM_RETRY_DELAY_SECONDS: float = 3.0
    HTTPX_TIMEOUT: float = 600.0

    # Concurrency
    MAX_CONCURRENT_LLM_CALLS: int = 4
    MAX_CONCURRENT_GENERATIONS: int = 1

    # Input and Output Paths
    STRUCTURE_FILE: str = "file_structure.txt"
    LORE_FILE: str = "lore.txt"
    LOCALISATION_BASE_FILE: str | None = None
    CACHE_DIR: str = "cache"
    OUTPUT_FILE: str = "out.txt"
    LOCALISATION_OUTPUT_FILE: str = "localisation.txt"

    # Name List Conventions
    DEFAULT_PREFIX: str = ""
    LOCALISATION_LANGUAGE: str = "english"
    FAILED_NODE_MARKER: str = "GENERATION FAILED"

    # Logging & UI
    LOG_LEVEL_STR: str = Field("INFO", alias="NAMEFORGE_LOG_LEVEL")
    LOG_FORMAT: str = (
        "%(asctime)s - %(levelname)s - [%(name)s:%(funcName)s:%(lineno)d] - %(message)s"
    )
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
    LOG_FILE: str | None = "nameforge_run.log"
    ENABLE_RICH_PROGRESS: bool = True

    @model_validator(mode="after")
    def normalize_language_and_limits(self) -> NameForgeSettings:
        language = self.LOCALISATION_LANGUAGE.strip().rstrip(":")
        if not language.startswith("l_"):
            language = f"l_{language}"
        self.LOCALISATION_LANGUAGE = language
        if self.MAX_CONCURRENT_GENERATIONS < 1:
            logger.warning(
                "MAX_CONCURRENT_GENERATIONS below 1; using sequential generation.",
                configured=self.MAX_CONCURRENT_GENERATIONS,
            )
            self.MAX_CONCURRENT_GENERATIONS = 1
        if self.OPENAI_API_KEY == "nope":
            logger.warning(
                "OPENAI_API_KEY is not set; provider calls will likely be rejected."
            )
        return self

    model_config = SettingsConfigDict(
        env_prefix="", env_file=".env", extra="ignore", populate_by_name=True
    )


settings = NameForgeSettings()
