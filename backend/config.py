# backend/config.py
"""
Configuration for the document assistant
Values come from the environment or a .env file; LangChain tracing is
switched on from the same settings
"""

import logging
import os
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variables"""

    # LLM (OPENAI_API_KEY, OPENAI_MODEL, ...)
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.0
    openai_max_tokens: int = 2048
    llm_enabled: bool = True

    # LangChain tracing, off unless LANGCHAIN_TRACING_V2=true
    langchain_tracing_v2: bool = False
    langchain_endpoint: Optional[str] = None
    langchain_api_key: Optional[str] = None
    langchain_project: str = "legal-doc-assistant"

    # Server
    port: int = 8000
    debug: bool = False
    log_level: str = "INFO"

    # Uploads and sessions
    max_file_size_mb: int = 50
    allowed_file_types: List[str] = [".docx"]
    session_timeout_minutes: int = 60

    # Detection and generation
    default_document_type: str = "SAFE"
    compression_level: int = 6

    class Config:
        env_file = ".env"
        case_sensitive = False


def apply_langchain_tracing(config: Settings) -> None:
    """Export tracing settings where LangChain reads them"""
    if not config.langchain_tracing_v2:
        return
    exported = {
        "LANGCHAIN_TRACING_V2": "true",
        "LANGCHAIN_ENDPOINT": config.langchain_endpoint,
        "LANGCHAIN_API_KEY": config.langchain_api_key,
        "LANGCHAIN_PROJECT": config.langchain_project,
    }
    os.environ.update({name: value for name, value in exported.items() if value})


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging; DEBUG wins over LOG_LEVEL"""
    if level is None:
        level = "DEBUG" if settings.debug else settings.log_level
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


settings = Settings()
apply_langchain_tracing(settings)
