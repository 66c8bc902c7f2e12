"""Local Ollama chat backend."""

import logging
from typing import Any, Dict, List, Optional

from .base import HTTPProvider, decode_body

logger = logging.getLogger(__name__)


class OllamaProvider(HTTPProvider):
    """Chat completions from a local Ollama server.

    A local server runs one model worker, so calls are issued one at a time.
    """

    supports_concurrency = False

    def __init__(
        self,
        host: str = "http://localhost:11434",
        model: str = "qwen3:30b-a3b-q8_0",
        timeout: float = 600.0,
        **kwargs,
    ):
        """Initialize Ollama provider.

        Args:
            host: Ollama API host URL
            model: Name of the chat model to use
            timeout: Per-request timeout in seconds
        """
        super().__init__(timeout=timeout, **kwargs)
        self.host = host.rstrip("/")
        self.model = model
        logger.info(f"Initialized Ollama provider with model: {model}")

    @property
    def name(self) -> str:
        return f"Ollama({self.model})"

    async def _request(
        self, messages: List[Dict[str, str]], temperature: float, max_tokens: Optional[int]
    ) -> Any:
        options: Dict[str, Any] = {"temperature": temperature}
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        client = self._get_client()
        response = await client.post(
            f"{self.host}/api/chat",
            json={"model": self.model, "messages": messages, "stream": False, "options": options},
        )
        response.raise_for_status()
        return decode_body(response)

    async def health_check(self) -> bool:
        """Check if Ollama is running and the model is available.

        Returns:
            True if healthy, False otherwise
        """
        try:
            client = self._get_client()
            response = await client.get(f"{self.host}/api/tags")
            response.raise_for_status()

            models = response.json().get("models", [])
            model_names = [m["name"] for m in models]

            # Check for exact match or match with :latest suffix
            if self.model not in model_names and f"{self.model}:latest" not in model_names:
                logger.warning(
                    f"Model '{self.model}' not found in Ollama. Available models: {model_names}"
                )
                logger.info(f"Run: ollama pull {self.model}")
                return False

            logger.info(f"Ollama health check passed. Model '{self.model}' is available.")
            return True

        except Exception as e:
            logger.error(f"Ollama health check failed: {e}")
            return False
