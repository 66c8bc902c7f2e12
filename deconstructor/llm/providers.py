"""Select the language-model backend from configuration."""

import logging
from typing import Any, Dict

from .base import LLMProvider
from .offline import OfflineProvider
from .ollama import OllamaProvider
from .remote import ChatCompletionsProvider

logger = logging.getLogger(__name__)

PROVIDER_NAMES = ("ollama", "openai", "offline")


def create_provider(config: Dict[str, Any]) -> LLMProvider:
    """Create the configured provider.

    Args:
        config: Configuration dict as returned by get_env_config()

    Returns:
        Provider instance

    Raises:
        ValueError: If the provider name is unknown
    """
    provider_name = config.get("llm_provider", "ollama").lower()
    common = {
        "temperature": config.get("llm_temperature", 0.1),
        "max_tokens": config.get("llm_max_tokens"),
    }

    if provider_name == "ollama":
        provider: LLMProvider = OllamaProvider(
            host=config.get("ollama_host", "http://localhost:11434"),
            model=config.get("ollama_model", "qwen3:30b-a3b-q8_0"),
            timeout=config.get("llm_request_timeout", 600.0),
            **common,
        )
    elif provider_name == "openai":
        provider = ChatCompletionsProvider(
            base_url=config.get("llm_api_base", "https://api.openai.com/v1"),
            model=config.get("llm_model", "gpt-4o-mini"),
            api_key=config.get("llm_api_key"),
            max_concurrent=config.get("max_concurrent", 4),
            timeout=config.get("llm_request_timeout", 120.0),
            **common,
        )
    elif provider_name == "offline":
        provider = OfflineProvider(**common)
    else:
        raise ValueError(
            f"Unknown LLM provider '{provider_name}'. Expected one of: {', '.join(PROVIDER_NAMES)}"
        )

    logger.info(f"Using LLM provider: {provider.name}")
    return provider
