"""Tests for token budgeting, chunking and recursive summarization."""

import math

import pytest

from deconstructor.analysis.summarizer import (
    DEFAULT_PROMPT,
    SEGMENT_PROMPT,
    RollingSummarizer,
    SummarizerConfig,
    chunk_text,
    estimate_tokens,
)
from deconstructor.errors import BackendError

from conftest import FakeProvider


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_estimate_tokens_is_monotonic():
    estimates = [estimate_tokens("x" * n) for n in range(200)]
    assert estimates == sorted(estimates)


class TestChunkText:
    def test_twelve_thousand_tokens(self):
        text = "x" * 48000

        chunks = chunk_text(text, 3500, 100)

        assert all(estimate_tokens(chunk) <= 3500 for chunk in chunks)
        expected = math.ceil(len(text) / ((3500 - 100) * 4))
        assert abs(len(chunks) - expected) <= 1

    def test_consecutive_chunks_overlap(self):
        chunks = chunk_text("x" * 48000, 3500, 100)

        for previous, current in zip(chunks, chunks[1:]):
            assert current.startswith(previous[-400:])

    def test_snaps_to_line_boundaries(self):
        text = "".join(f"line {i:05d} of the text\n" for i in range(200))

        chunks = chunk_text(text, 100, 10)

        assert len(chunks) > 1
        for chunk in chunks[:-1]:
            assert chunk.endswith("\n")
            assert estimate_tokens(chunk) <= 100
        for previous, current in zip(chunks, chunks[1:]):
            assert current.startswith(previous[-40:])

    def test_covers_whole_text(self):
        text = "abc. " * 1000
        chunks = chunk_text(text, 50, 5)

        assert chunks[0] == text[: len(chunks[0])]
        assert text.endswith(chunks[-1])

    def test_rejects_overlap_not_smaller_than_chunk(self):
        with pytest.raises(ValueError):
            chunk_text("text", 10, 10)

    def test_empty_text(self):
        assert chunk_text("", 10, 1) == []


def test_config_validates_overlap():
    with pytest.raises(ValueError):
        SummarizerConfig(chunk_size=100, overlap_size=100)


class TestSummarize:
    @pytest.mark.asyncio
    async def test_small_text_is_one_call(self):
        provider = FakeProvider()
        summary = await RollingSummarizer(provider).summarize("short text")

        assert summary.text == "model output"
        assert summary.levels == 1
        assert summary.calls == 1
        assert provider.prompts == [f"{DEFAULT_PROMPT}\n\nshort text"]

    @pytest.mark.asyncio
    async def test_long_text_maps_then_reduces_with_original_prompt(self):
        provider = FakeProvider()
        summary = await RollingSummarizer(provider).summarize("x" * 48000, "Explain this:")

        assert summary.calls == 5
        assert summary.levels == 2
        assert all(p.startswith(SEGMENT_PROMPT) for p in provider.prompts[:4])
        assert provider.prompts[-1].startswith("Explain this:")

    @pytest.mark.asyncio
    async def test_recursion_is_bounded(self):
        # Summaries longer than their input never converge
        provider = FakeProvider(handler=lambda content: "y" * (len(content) + 10))
        config = SummarizerConfig(
            chunk_size=100, overlap_size=10, recursion_limit=2, context_limit_threshold=120
        )

        summary = await RollingSummarizer(provider, config).summarize("z" * 4000)

        assert summary.degraded
        assert summary.levels == config.recursion_limit + 1
        assert len(provider.prompts[-1]) <= len(DEFAULT_PROMPT) + 2 + 120 * 4 + 200

    @pytest.mark.asyncio
    async def test_failed_chunks_are_dropped(self):
        calls = {"n": 0}

        def handler(content):
            calls["n"] += 1
            if calls["n"] == 2:
                raise BackendError("boom")
            return "ok"

        provider = FakeProvider(handler=handler)
        summary = await RollingSummarizer(provider).summarize("x" * 48000)

        assert summary.dropped_chunks == 1
        assert summary.calls == 5
        assert summary.text == "ok"

    @pytest.mark.asyncio
    async def test_unusable_chunk_results_are_dropped(self):
        responses = iter([{"weird": True}, "", "good", "good", "final"])
        provider = FakeProvider(handler=lambda content: next(responses))

        summary = await RollingSummarizer(provider).summarize("x" * 48000)

        assert summary.dropped_chunks == 2
        assert summary.text == "final"

    @pytest.mark.asyncio
    async def test_every_chunk_failing_raises(self):
        def handler(content):
            raise BackendError("down")

        provider = FakeProvider(handler=handler)
        with pytest.raises(BackendError):
            await RollingSummarizer(provider).summarize("x" * 48000)

    @pytest.mark.asyncio
    async def test_per_call_config_override(self):
        provider = FakeProvider()
        summarizer = RollingSummarizer(provider)

        summary = await summarizer.summarize(
            "x" * 400,
            config=SummarizerConfig(chunk_size=50, overlap_size=5, context_limit_threshold=60),
        )

        assert summary.levels == 2
        assert summary.calls > 2

    @pytest.mark.asyncio
    async def test_concurrent_provider_maps_in_parallel(self):
        provider = FakeProvider(concurrent=True, delay=0.01)
        await RollingSummarizer(provider).summarize("x" * 48000)

        assert provider.max_in_flight > 1

    @pytest.mark.asyncio
    async def test_sequential_provider_maps_one_at_a_time(self):
        provider = FakeProvider(concurrent=False, delay=0.01)
        await RollingSummarizer(provider).summarize("x" * 48000)

        assert provider.max_in_flight == 1


class TestDocuments:
    @pytest.mark.asyncio
    async def test_documents_are_combined_with_separators(self):
        provider = FakeProvider()
        summary = await RollingSummarizer(provider).summarize_documents(
            [("a.js", "var a;"), ("b.js", "var b;")], "Describe:"
        )

        assert summary.calls == 1
        prompt = provider.prompts[0]
        assert "--- File: a.js ---" in prompt
        assert "--- File: b.js ---" in prompt
        assert prompt.startswith("Describe:")

    @pytest.mark.asyncio
    async def test_no_documents(self):
        provider = FakeProvider()
        summary = await RollingSummarizer(provider).summarize_documents([])

        assert summary.calls == 0
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_directory_reads_only_javascript(self, tmp_path):
        (tmp_path / "one.js").write_text("function one() {}")
        (tmp_path / "two.js").write_text("function two() {}")
        (tmp_path / "notes.txt").write_text("ignore me")
        provider = FakeProvider()

        await RollingSummarizer(provider).summarize_directory(tmp_path)

        prompt = provider.prompts[0]
        assert "--- File: one.js ---" in prompt
        assert "--- File: two.js ---" in prompt
        assert "ignore me" not in prompt
        assert f"Please analyze these {tmp_path.name}" in prompt
