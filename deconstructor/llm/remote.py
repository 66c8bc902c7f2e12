"""Remote OpenAI-compatible chat-completions backend."""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..errors import BackendError
from .base import HTTPProvider, decode_body

logger = logging.getLogger(__name__)


class ChatCompletionsProvider(HTTPProvider):
    """Hosted chat-completions API; serves several requests at once."""

    supports_concurrency = True

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: Optional[str] = None,
        max_concurrent: int = 4,
        timeout: float = 120.0,
        **kwargs,
    ):
        """Initialize remote provider.

        Args:
            base_url: API base URL (e.g. https://api.deepseek.com/v1)
            model: Model name
            api_key: Bearer token for the API
            max_concurrent: Maximum requests in flight
            timeout: Per-request timeout in seconds
        """
        super().__init__(timeout=timeout, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.model = model
        self._api_key = api_key
        self.max_concurrent = max_concurrent
        self._semaphore: Optional[asyncio.Semaphore] = None

    @property
    def name(self) -> str:
        return f"ChatCompletions({self.model})"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }

    async def _request(
        self, messages: List[Dict[str, str]], temperature: float, max_tokens: Optional[int]
    ) -> Any:
        if not self._api_key:
            raise BackendError("LLM_API_KEY environment variable not set")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrent)

        client = self._get_client()
        async with self._semaphore:
            response = await client.post(
                f"{self.base_url}/chat/completions",
                headers=self._headers(),
                json=payload,
            )
        response.raise_for_status()
        return decode_body(response)

    async def health_check(self) -> bool:
        """Check that the API key is set and the models endpoint answers."""
        if not self._api_key:
            logger.warning("LLM_API_KEY not set; remote provider unavailable")
            return False
        try:
            client = self._get_client()
            response = await client.get(f"{self.base_url}/models", headers=self._headers())
            response.raise_for_status()
            logger.info(f"{self.name} health check passed")
            return True
        except Exception as e:
            logger.error(f"{self.name} health check failed: {e}")
            return False
