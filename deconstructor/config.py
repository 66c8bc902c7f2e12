"""Configuration from environment variables."""

import os
from pathlib import Path
from typing import Any, Dict, Optional

from .analysis.summarizer import SummarizerConfig


def _optional_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value else None


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


def get_env_config() -> Dict[str, Any]:
    """Get configuration from environment variables."""
    return {
        "llm_provider": os.getenv("LLM_PROVIDER", "ollama"),
        "ollama_host": os.getenv("OLLAMA_HOST", "http://localhost:11434"),
        "ollama_model": os.getenv("OLLAMA_MODEL", "qwen3:30b-a3b-q8_0"),
        "llm_api_base": os.getenv("LLM_API_BASE", "https://api.openai.com/v1"),
        "llm_api_key": os.getenv("LLM_API_KEY"),
        "llm_model": os.getenv("LLM_MODEL", "gpt-4o-mini"),
        "llm_temperature": float(os.getenv("LLM_TEMPERATURE", "0.1")),
        "llm_max_tokens": _optional_int(os.getenv("LLM_MAX_TOKENS")),
        "llm_request_timeout": float(os.getenv("LLM_REQUEST_TIMEOUT", "600")),
        "max_concurrent": int(os.getenv("MAX_CONCURRENT_REQUESTS", "4")),
        "output_dir": Path(os.getenv("OUTPUT_DIR", "./output")),
        "chunk_size": int(os.getenv("CHUNK_SIZE", "3500")),
        "overlap_size": int(os.getenv("OVERLAP_SIZE", "100")),
        "recursion_limit": int(os.getenv("RECURSION_LIMIT", "3")),
        "context_limit_threshold": int(os.getenv("CONTEXT_LIMIT_THRESHOLD", "3800")),
        "max_retries": int(os.getenv("MAX_RETRIES", "3")),
        "inter_call_delay": float(os.getenv("INTER_CALL_DELAY", "1.0")),
        "analysis_timeout": _optional_float(os.getenv("ANALYSIS_TIMEOUT")),
        "strict_parse": os.getenv("STRICT_PARSE", "true").lower() == "true",
        "add_doc_stubs": os.getenv("ADD_DOC_STUBS", "true").lower() == "true",
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_file": os.getenv("LOG_FILE", "/tmp/deconstructor.log"),
    }


def build_summarizer_config(config: Dict[str, Any]) -> SummarizerConfig:
    """Build the summarizer budget from a configuration dict.

    Args:
        config: Configuration dict as returned by get_env_config()

    Returns:
        SummarizerConfig with the configured budget
    """
    return SummarizerConfig(
        chunk_size=config.get("chunk_size", 3500),
        overlap_size=config.get("overlap_size", 100),
        recursion_limit=config.get("recursion_limit", 3),
        context_limit_threshold=config.get("context_limit_threshold", 3800),
    )
