"""Token-budgeted chunking and recursive map-reduce summarization."""

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..errors import BackendError
from ..llm.base import UNEXPECTED_FORMAT, LLMProvider

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

DEFAULT_PROMPT = "Please summarize this text:"
SEGMENT_PROMPT = "Summarize the key points of this segment:"
ESCALATED_PROMPT = "Please create a high-level summary of these summaries:"

# Preferred split points, strongest first: paragraph, line, sentence, statement
SPLIT_BOUNDARIES = ("\n\n", "\n", ". ", ";")


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text at four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def chunk_text(text: str, chunk_size: int, overlap_size: int) -> List[str]:
    """Split text into overlapping chunks of at most chunk_size tokens.

    Each chunk ends at the strongest boundary found in the back half of its
    window, or is cut hard when there is none. Every chunk after the first
    starts with the last overlap_size * 4 characters of the previous one.

    Args:
        text: Text to split
        chunk_size: Maximum tokens per chunk
        overlap_size: Tokens shared between consecutive chunks

    Returns:
        List of chunks in order

    Raises:
        ValueError: If chunk_size is not larger than overlap_size
    """
    if chunk_size <= overlap_size:
        raise ValueError(
            f"chunk_size ({chunk_size}) must be larger than overlap_size ({overlap_size})"
        )
    if not text:
        return []

    max_chars = chunk_size * CHARS_PER_TOKEN
    overlap_chars = overlap_size * CHARS_PER_TOKEN
    chunks = []
    start = 0

    while start < len(text):
        end = min(start + max_chars, len(text))
        if end < len(text):
            end = _snap_to_boundary(text, start, end, overlap_chars)
        chunks.append(text[start:end])
        if end >= len(text):
            break
        start = max(end - overlap_chars, start + 1)

    return chunks


def _snap_to_boundary(text: str, start: int, end: int, overlap_chars: int) -> int:
    """Move a chunk end back to the last boundary in the window's back half."""
    # Stay past the overlap so the next chunk still moves forward
    lower = start + max((end - start) // 2, overlap_chars + 1)
    for separator in SPLIT_BOUNDARIES:
        index = text.rfind(separator, lower, end)
        if index != -1:
            return index + len(separator)
    return end


@dataclass(frozen=True)
class SummarizerConfig:
    """Token budget for summarization."""

    chunk_size: int = 3500  # maximum tokens per chunk
    overlap_size: int = 100  # tokens shared between chunks
    recursion_limit: int = 3  # reduce levels before forced truncation
    context_limit_threshold: int = 3800  # maximum tokens sent in one call

    def __post_init__(self):
        if self.chunk_size <= self.overlap_size:
            raise ValueError(
                f"chunk_size ({self.chunk_size}) must be larger than overlap_size ({self.overlap_size})"
            )
        if self.recursion_limit < 0:
            raise ValueError("recursion_limit must not be negative")


@dataclass(frozen=True)
class Summary:
    """Result of a summarization."""

    text: str
    levels: int  # levels of backend calls issued
    calls: int  # backend calls issued
    dropped_chunks: int = 0  # chunks whose summary failed and was left out
    degraded: bool = False  # input was truncated at the recursion limit


class RollingSummarizer:
    """Compress arbitrarily long text into one model response."""

    def __init__(self, provider: LLMProvider, config: Optional[SummarizerConfig] = None):
        """Initialize summarizer.

        Args:
            provider: Backend used for every call
            config: Default token budget
        """
        self.provider = provider
        self.config = config or SummarizerConfig()

    async def summarize(
        self,
        text: str,
        prompt: str = DEFAULT_PROMPT,
        depth: int = 0,
        config: Optional[SummarizerConfig] = None,
    ) -> Summary:
        """Summarize text, chunking and reducing when it exceeds the budget.

        Args:
            text: Text to summarize
            prompt: Instruction placed before the text
            depth: Current reduce level
            config: Budget overriding the summarizer's default

        Returns:
            Summary of the text

        Raises:
            BackendError: If a direct or final call fails, or every chunk fails
        """
        config = config or self.config
        tokens = estimate_tokens(text)

        if tokens <= config.context_limit_threshold:
            content = await self._call(prompt, text)
            return Summary(text=content, levels=1, calls=1)

        if depth >= config.recursion_limit:
            logger.warning(
                f"Reached recursion limit ({config.recursion_limit}), truncating "
                f"{tokens} tokens to {config.context_limit_threshold}"
            )
            truncated = text[: config.context_limit_threshold * CHARS_PER_TOKEN]
            content = await self._call(prompt, truncated)
            return Summary(text=content, levels=1, calls=1, degraded=True)

        chunks = chunk_text(text, config.chunk_size, config.overlap_size)
        logger.info(f"Split {tokens} tokens into {len(chunks)} chunks at level {depth}")

        results = await self._map(chunks, depth)
        survivors = [result for result in results if result is not None]
        dropped = len(chunks) - len(survivors)
        if not survivors:
            raise BackendError(f"All {len(chunks)} chunk summaries failed at level {depth}")
        if dropped:
            logger.warning(f"Dropped {dropped}/{len(chunks)} failed chunk summaries at level {depth}")

        combined = "\n\n".join(survivors)
        combined_tokens = estimate_tokens(combined)

        if combined_tokens > config.context_limit_threshold:
            logger.info(
                f"Combined summaries still too large ({combined_tokens} tokens), "
                f"recursing to level {depth + 1}"
            )
            inner = await self.summarize(combined, f"{ESCALATED_PROMPT}\n\n{prompt}", depth + 1, config)
            return Summary(
                text=inner.text,
                levels=inner.levels + 1,
                calls=len(chunks) + inner.calls,
                dropped_chunks=dropped + inner.dropped_chunks,
                degraded=inner.degraded,
            )

        content = await self._call(prompt, combined)
        return Summary(text=content, levels=2, calls=len(chunks) + 1, dropped_chunks=dropped)

    async def summarize_documents(
        self, documents: Iterable[Tuple[str, str]], prompt: str = DEFAULT_PROMPT
    ) -> Summary:
        """Summarize several named documents as one text.

        Args:
            documents: (name, content) pairs
            prompt: Instruction placed before the combined text

        Returns:
            Summary of the combined documents
        """
        combined = "".join(f"\n\n--- File: {name} ---\n\n{content}" for name, content in documents)
        if not combined:
            return Summary(text="No documents to summarize", levels=0, calls=0)

        logger.info(f"Combined documents estimated at {estimate_tokens(combined)} tokens")
        return await self.summarize(combined, prompt)

    async def summarize_directory(self, directory: Path, prompt: Optional[str] = None) -> Summary:
        """Summarize every JavaScript file in a directory.

        Args:
            directory: Directory holding the files
            prompt: Instruction (defaults to one naming the directory)

        Returns:
            Summary of the directory's files
        """
        directory = Path(directory)
        files = sorted(path for path in directory.glob("*.js") if path.is_file())
        if not files:
            return Summary(text="No JavaScript files found in directory", levels=0, calls=0)

        logger.info(f"Found {len(files)} JavaScript files in {directory}")
        documents = []
        for path in files:
            try:
                content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            except OSError as e:
                logger.error(f"Error reading {path}: {e}")
                continue
            documents.append((path.name, content))

        prompt = prompt or (
            f"Please analyze these {directory.name} and explain their purpose, "
            "patterns, and relationships:"
        )
        return await self.summarize_documents(documents, prompt)

    async def _map(self, chunks: List[str], depth: int) -> List[Optional[str]]:
        if self.provider.supports_concurrency:
            return list(
                await asyncio.gather(
                    *(self._summarize_chunk(chunk, i, len(chunks), depth) for i, chunk in enumerate(chunks))
                )
            )

        results = []
        for i, chunk in enumerate(chunks):
            results.append(await self._summarize_chunk(chunk, i, len(chunks), depth))
        return results

    async def _summarize_chunk(self, chunk: str, index: int, total: int, depth: int) -> Optional[str]:
        """Summarize one chunk; None when the call fails or yields nothing usable."""
        logger.debug(f"Processing chunk {index + 1}/{total} at level {depth} ({estimate_tokens(chunk)} tokens)")
        try:
            content = await self._call(SEGMENT_PROMPT, chunk)
        except BackendError as e:
            logger.warning(f"Chunk {index + 1}/{total} at level {depth} failed: {e}")
            return None

        if not content.strip() or content == UNEXPECTED_FORMAT:
            logger.warning(f"Chunk {index + 1}/{total} at level {depth} returned no usable content")
            return None
        return content

    async def _call(self, prompt: str, text: str) -> str:
        return await self.provider.invoke([{"role": "user", "content": f"{prompt}\n\n{text}"}])
