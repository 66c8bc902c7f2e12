"""Shared fixtures: fake providers, recorded sleeps and sample sources."""

import asyncio
from typing import Any, Callable, Dict, List, Optional

import pytest

from deconstructor.llm.base import LLMProvider
from deconstructor.partition.extractor import PartitionExtractor

THREE_FUNCTIONS = """function alpha(a) {
  return a + 1;
}

function beta(b) {
  return b * 2;
}

function gamma(c) {
  return c - 3;
}
"""


class FakeProvider(LLMProvider):
    """Provider that records every call and answers from a handler."""

    def __init__(
        self,
        handler: Optional[Callable[[str], Any]] = None,
        concurrent: bool = False,
        delay: float = 0.0,
    ):
        super().__init__()
        self.supports_concurrency = concurrent
        self.handler = handler
        self.delay = delay
        self.calls: List[List[Dict[str, str]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    @property
    def name(self) -> str:
        return "Fake"

    @property
    def prompts(self) -> List[str]:
        return [messages[-1]["content"] for messages in self.calls]

    async def _request(self, messages, temperature, max_tokens):
        self.calls.append(messages)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            else:
                await asyncio.sleep(0)
            if self.handler is None:
                return {"message": {"content": "model output"}}
            return self.handler(messages[-1]["content"])
        finally:
            self.in_flight -= 1


class RecordingSleep:
    """Stands in for asyncio.sleep, recording requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def extractor() -> PartitionExtractor:
    return PartitionExtractor()


@pytest.fixture
def three_functions(extractor):
    return extractor.extract(THREE_FUNCTIONS)
