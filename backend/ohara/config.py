"""
Configuration management for the application.

Loads environment variables and provides centralized config access.
"""

import os
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Application configuration"""

    # Flask settings
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    DEBUG: bool = FLASK_ENV == "development"
    FRONTEND_URL: Optional[str] = os.getenv("FRONTEND_URL")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Editor stats
    READING_WORDS_PER_MINUTE: int = int(os.getenv("READING_WORDS_PER_MINUTE", "200"))

    # Markdown renderer features
    MARKDOWN_ENABLE_TABLES: bool = _env_flag("MARKDOWN_ENABLE_TABLES", True)
    MARKDOWN_ENABLE_MATH: bool = _env_flag("MARKDOWN_ENABLE_MATH", True)
    MARKDOWN_ENABLE_MERMAID: bool = _env_flag("MARKDOWN_ENABLE_MERMAID", True)
    MARKDOWN_GROUP_LISTS: bool = _env_flag("MARKDOWN_GROUP_LISTS", True)

    # Preview requests larger than this are rejected by the API (~ a few hundred KB of notes)
    MAX_PREVIEW_CHARS: int = int(os.getenv("MAX_PREVIEW_CHARS", "500000"))

    @classmethod
    def validate(cls):
        """Validate required configuration"""
        errors = []

        if cls.READING_WORDS_PER_MINUTE <= 0:
            errors.append("READING_WORDS_PER_MINUTE must be positive")
        if cls.MAX_PREVIEW_CHARS <= 0:
            errors.append("MAX_PREVIEW_CHARS must be positive")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

    @classmethod
    def renderer_options(cls):
        """Build renderer options from the MARKDOWN_* settings"""
        from .services.markdown import RendererOptions

        return RendererOptions(
            tables=cls.MARKDOWN_ENABLE_TABLES,
            math=cls.MARKDOWN_ENABLE_MATH,
            mermaid=cls.MARKDOWN_ENABLE_MERMAID,
            group_lists=cls.MARKDOWN_GROUP_LISTS,
        )


# Create config instance
config = Config()
