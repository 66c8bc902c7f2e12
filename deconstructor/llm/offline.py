"""Backend stand-in for runs without any language model."""

import logging
from typing import Any, Dict, List, Optional

from ..errors import BackendError
from .base import LLMProvider

logger = logging.getLogger(__name__)


class OfflineProvider(LLMProvider):
    """Every call fails, so the orchestrator serves fallback content only."""

    supports_concurrency = True

    @property
    def name(self) -> str:
        return "Offline"

    async def _request(
        self, messages: List[Dict[str, str]], temperature: float, max_tokens: Optional[int]
    ) -> Any:
        raise BackendError("No language-model backend configured (offline mode)")

    async def health_check(self) -> bool:
        logger.info("Offline provider selected; analysis will use fallback content")
        return True
