"""Provider interface normalizing language-model backends to plain text."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

import httpx

from ..errors import BackendError

logger = logging.getLogger(__name__)

# Returned instead of raising when a response has no recognizable content
UNEXPECTED_FORMAT = "Unexpected response format"

# Wrappers that nest the content field one level down
_CONTENT_WRAPPERS = ("message", "lc_kwargs", "data")


def _get(obj: Any, key: str) -> Any:
    if obj is None or isinstance(obj, str):
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    return getattr(obj, key, None)


def _as_text(value: Any) -> Optional[str]:
    """Coerce a content value to text; lists of text parts are joined."""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        parts = []
        for part in value:
            if isinstance(part, str):
                parts.append(part)
            else:
                text = _get(part, "text")
                if isinstance(text, str):
                    parts.append(text)
        return "".join(parts) if parts else None
    return None


def extract_content(response: Any) -> str:
    """Extract the text of a backend response.

    Recognizes a bare string, a direct `content` field, a content field
    wrapped in `message`/`lc_kwargs`/`data`, and chat-completions `choices`.

    Args:
        response: Raw response object or decoded JSON

    Returns:
        Response text, or UNEXPECTED_FORMAT for any other shape
    """
    if isinstance(response, str):
        return response

    text = _as_text(_get(response, "content"))
    if text is not None:
        return text

    for wrapper in _CONTENT_WRAPPERS:
        text = _as_text(_get(_get(response, wrapper), "content"))
        if text is not None:
            return text

    choices = _get(response, "choices")
    if isinstance(choices, list) and choices:
        first = choices[0]
        text = _as_text(_get(_get(first, "message"), "content"))
        if text is None:
            text = _as_text(_get(first, "text"))
        if text is not None:
            return text

    return UNEXPECTED_FORMAT


class LLMProvider(ABC):
    """Abstract base class for language-model backends."""

    # Backends that can serve several requests at once get fanned-out calls
    supports_concurrency: bool = False

    def __init__(self, temperature: float = 0.1, max_tokens: Optional[int] = None):
        """Initialize provider.

        Args:
            temperature: Default sampling temperature
            max_tokens: Default maximum tokens in a response (None for backend default)
        """
        self.temperature = temperature
        self.max_tokens = max_tokens

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging/display."""

    @abstractmethod
    async def _request(
        self, messages: List[Dict[str, str]], temperature: float, max_tokens: Optional[int]
    ) -> Any:
        """Send one chat request and return the raw response."""

    async def invoke(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Call the backend with a list of messages.

        Args:
            messages: List of message dicts with 'role' and 'content' keys
            temperature: Sampling temperature (defaults to the provider's)
            max_tokens: Maximum tokens in the response (defaults to the provider's)

        Returns:
            Response text, or UNEXPECTED_FORMAT if the response shape is unknown

        Raises:
            BackendError: If the request fails
        """
        try:
            response = await self._request(
                messages,
                self.temperature if temperature is None else temperature,
                self.max_tokens if max_tokens is None else max_tokens,
            )
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"{self.name} returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BackendError(f"{self.name} request failed: {e}") from e

        content = extract_content(response)
        if content == UNEXPECTED_FORMAT:
            logger.warning(f"{self.name} returned a response in an unexpected format")
        return content

    async def health_check(self) -> bool:
        """Check if the backend is reachable and configured."""
        return True

    async def close(self) -> None:
        """Release any open connections."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


class HTTPProvider(LLMProvider):
    """Provider talking to its backend over an httpx client."""

    def __init__(
        self,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_loop_id: Optional[int] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create an httpx client for the current event loop.

        Returns:
            httpx.AsyncClient instance for current event loop
        """
        loop_id = id(asyncio.get_running_loop())
        if self._client is None or self._client_loop_id != loop_id:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
            self._client_loop_id = loop_id
            logger.debug(f"Created new httpx client for {self.name} on event loop {loop_id}")
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            try:
                await self._client.aclose()
            except RuntimeError as e:
                logger.warning(f"Error closing httpx client: {e}")
            self._client = None


def decode_body(response: httpx.Response) -> Any:
    """Decode a JSON body, falling back to the raw text."""
    try:
        return response.json()
    except ValueError:
        return response.text
