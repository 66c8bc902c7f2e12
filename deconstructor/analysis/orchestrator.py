"""Run analysis categories against a provider and synthesize the results."""

import asyncio
import logging
from dataclasses import replace
from typing import Awaitable, Callable, List, Optional, Sequence

from ..errors import BackendError, is_retryable
from ..graph.dependency_resolver import DependencyGraph
from ..llm.base import UNEXPECTED_FORMAT, LLMProvider
from ..partition.artifacts import ArtifactStore
from ..partition.models import PartitionResult
from .categories import (
    DEFAULT_CATEGORIES,
    AnalysisCategory,
    PromptContext,
    compute_stats,
    fallback_content,
    format_analysis_block,
    format_sample,
    select_samples,
    synthesis_fallback,
)
from .models import AnalysisReport, AnalysisResult, AnalysisStatus
from .summarizer import CHARS_PER_TOKEN, RollingSummarizer, estimate_tokens

logger = logging.getLogger(__name__)

# Whole-run ceilings per backend class, in seconds
REMOTE_TIMEOUT = 600.0
LOCAL_TIMEOUT = 1800.0

SAMPLE_COMPRESSION_PROMPT = (
    "Summarize these JavaScript code samples. Keep unit names, call patterns "
    "and notable constructs:"
)

Sleep = Callable[[float], Awaitable[None]]


class AnalysisOrchestrator:
    """Fan out analysis categories, then synthesize them behind a barrier.

    Concurrent providers get every category at once; single-worker providers
    get them one at a time with a pause in between. The synthesis category
    (the last one) runs only after every other category has a result.
    """

    def __init__(
        self,
        provider: LLMProvider,
        summarizer: Optional[RollingSummarizer] = None,
        store: Optional[ArtifactStore] = None,
        categories: Sequence[AnalysisCategory] = DEFAULT_CATEGORIES,
        max_retries: int = 3,
        inter_call_delay: float = 1.0,
        timeout: Optional[float] = None,
        use_fallback: bool = True,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize orchestrator.

        Args:
            provider: Backend used for every call
            summarizer: Compresses oversized prompt sections (defaults to one on `provider`)
            store: Artifact store to read sampled unit files from (None to use unit code)
            categories: Categories to run; the last one is the synthesis
            max_retries: Attempts per category call
            inter_call_delay: Pause between calls for single-worker providers, in seconds
            timeout: Whole-run ceiling in seconds (defaults by provider class)
            use_fallback: Substitute statistical content when a category fails
            sleep: Awaitable sleep, replaceable in tests
        """
        if not categories:
            raise ValueError("At least one analysis category is required")
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        self.provider = provider
        self.summarizer = summarizer or RollingSummarizer(provider)
        self.store = store
        self.categories = tuple(categories)
        self.max_retries = max_retries
        self.inter_call_delay = inter_call_delay
        self.timeout = timeout
        self.use_fallback = use_fallback
        self._sleep = sleep

    @property
    def orchestration_timeout(self) -> float:
        if self.timeout is not None:
            return self.timeout
        return REMOTE_TIMEOUT if self.provider.supports_concurrency else LOCAL_TIMEOUT

    @property
    def context_limit(self) -> int:
        return self.summarizer.config.context_limit_threshold

    async def analyze(
        self, partition: PartitionResult, graph: Optional[DependencyGraph] = None
    ) -> AnalysisReport:
        """Run every category within the whole-run timeout.

        Args:
            partition: Partition result to analyze
            graph: Dependency graph for the structural category

        Returns:
            AnalysisReport; a placeholder with timed_out set if the ceiling is hit
        """
        timeout = self.orchestration_timeout
        task = asyncio.ensure_future(self._run(partition, graph))
        try:
            done, _ = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            # The caller gave up on the run; stop issuing backend calls
            task.cancel()
            raise

        if task in done:
            return task.result()

        logger.warning(
            f"Analysis did not finish within {timeout:g}s using {self.provider.name}; "
            "writing placeholder report"
        )
        task.add_done_callback(_discard_result)
        return AnalysisReport.placeholder(timeout, provider=self.provider.name)

    async def invoke_with_retry(
        self,
        prompt: str,
        category_name: str,
        max_retries: Optional[int] = None,
        fallback: Optional[Callable[[], str]] = None,
    ) -> AnalysisResult:
        """Call the provider, backing off 2**attempt seconds between attempts.

        Args:
            prompt: Prompt text
            category_name: Category the call is for
            max_retries: Attempts before giving up (defaults to the orchestrator's)
            fallback: Generator of substitute content for failed or unusable responses

        Returns:
            AnalysisResult with status ok, or fallback when the generator was used

        Raises:
            BackendError: If every attempt fails and no fallback is supplied
            ValueError: If max_retries is less than 1
        """
        if max_retries is None:
            max_retries = self.max_retries
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")
        last_error: Optional[Exception] = None
        attempts = 0

        for attempt in range(1, max_retries + 1):
            attempts = attempt
            try:
                content = await self.provider.invoke([{"role": "user", "content": prompt}])
            except BackendError as e:
                last_error = e
                if not is_retryable(e):
                    logger.warning(f"{category_name} got a non-retryable error: {e}")
                    break
                if attempt < max_retries:
                    delay = 2**attempt
                    logger.warning(
                        f"Retry {attempt}/{max_retries} for {category_name} in {delay}s: {e}"
                    )
                    await self._sleep(delay)
                continue

            if content.strip() and content != UNEXPECTED_FORMAT:
                return AnalysisResult(
                    category=category_name,
                    content=content,
                    status=AnalysisStatus.OK,
                    attempts=attempt,
                )

            last_error = BackendError(f"{category_name} returned no usable content")
            if fallback is not None:
                logger.warning(f"{last_error}; using fallback content")
                return AnalysisResult(
                    category=category_name,
                    content=fallback(),
                    status=AnalysisStatus.FALLBACK,
                    attempts=attempt,
                    error=str(last_error),
                )
            if attempt < max_retries:
                await self._sleep(2**attempt)

        if fallback is not None:
            logger.warning(
                f"{category_name} failed after {attempts} attempts ({last_error}); "
                "using fallback content"
            )
            return AnalysisResult(
                category=category_name,
                content=fallback(),
                status=AnalysisStatus.FALLBACK,
                attempts=attempts,
                error=str(last_error),
            )

        raise BackendError(
            f"{category_name} failed after {attempts} attempts: {last_error}"
        ) from last_error

    async def run_category(self, category: AnalysisCategory, context: PromptContext) -> AnalysisResult:
        """Build one category's prompt and call the provider.

        Args:
            category: Category to run
            context: Shared prompt context

        Returns:
            AnalysisResult titled with the category title
        """
        prompt = await self._build_prompt(category, context)

        fallback = None
        if self.use_fallback:

            def fallback() -> str:
                return fallback_content(category, context.units_by_kind, context.stats.line_count)

        try:
            result = await self.invoke_with_retry(prompt, category.name, fallback=fallback)
        except BackendError as e:
            logger.error(f"Analysis category {category.name} failed: {e}")
            result = AnalysisResult(
                category=category.name,
                content="",
                status=AnalysisStatus.ERROR,
                attempts=self.max_retries,
                error=str(e),
            )

        logger.info(f"Category {category.name} finished with status {result.status.value}")
        return replace(result, title=category.title)

    async def _run(self, partition: PartitionResult, graph: Optional[DependencyGraph]) -> AnalysisReport:
        units_by_kind = partition.units_by_kind()
        context = PromptContext(
            original_file=partition.original_file,
            units_by_kind=units_by_kind,
            stats=compute_stats(units_by_kind, partition.line_count),
            graph=graph,
            partition=partition,
        )

        *analysis_categories, synthesis_category = self.categories
        logger.info(
            f"Running {len(analysis_categories)} analysis categories with {self.provider.name} "
            f"({'concurrent' if self.provider.supports_concurrency else 'sequential'})"
        )

        results: List[AnalysisResult]
        if self.provider.supports_concurrency:
            results = list(
                await asyncio.gather(*(self.run_category(c, context) for c in analysis_categories))
            )
        else:
            results = []
            for i, category in enumerate(analysis_categories):
                if i > 0:
                    await self._sleep(self.inter_call_delay)
                results.append(await self.run_category(category, context))
            if results:
                await self._sleep(self.inter_call_delay)

        synthesis = await self._synthesize(synthesis_category, results, context)
        return AnalysisReport(
            results=tuple(results),
            synthesis=synthesis,
            provider=self.provider.name,
        )

    async def _synthesize(
        self,
        category: AnalysisCategory,
        results: List[AnalysisResult],
        context: PromptContext,
    ) -> AnalysisResult:
        """Run the synthesis category over exactly one block per prior result."""
        block_budget = max(self.context_limit // max(len(results), 1), 1)
        blocks = []
        for result in results:
            blocks.append(format_analysis_block(result, await self._condense(result, block_budget)))

        prompt = category.prompt_builder(replace(context, prior_blocks=tuple(blocks)))
        fallback = None
        if self.use_fallback:

            def fallback() -> str:
                return synthesis_fallback(results)

        try:
            synthesis = await self.invoke_with_retry(prompt, category.name, fallback=fallback)
        except BackendError as e:
            logger.error(f"Synthesis failed: {e}")
            synthesis = AnalysisResult(
                category=category.name,
                content="",
                status=AnalysisStatus.ERROR,
                attempts=self.max_retries,
                error=str(e),
            )
        return replace(synthesis, title=category.title)

    async def _condense(self, result: AnalysisResult, budget: int) -> str:
        """Shrink an oversized result before it enters the synthesis prompt."""
        content = result.content if result.status != AnalysisStatus.ERROR else f"Failed: {result.error}"
        if estimate_tokens(content) <= budget:
            return content

        logger.info(f"Condensing {result.category} result ({estimate_tokens(content)} tokens)")
        try:
            summary = await self.summarizer.summarize(
                content, f"Condense this {result.display_title} analysis, keeping its key findings:"
            )
        except BackendError as e:
            logger.warning(f"Could not condense {result.category} result, truncating: {e}")
            return content[: budget * CHARS_PER_TOKEN]
        return summary.text

    async def _build_prompt(self, category: AnalysisCategory, context: PromptContext) -> str:
        """Build a category prompt, compressing its samples when it is too long."""
        samples = await self._sample_block(category, context)
        prompt = category.prompt_builder(replace(context, samples=samples))
        if not samples or estimate_tokens(prompt) <= self.context_limit:
            return prompt

        logger.info(
            f"Prompt for {category.name} is {estimate_tokens(prompt)} tokens, compressing samples"
        )
        try:
            summary = await self.summarizer.summarize(samples, SAMPLE_COMPRESSION_PROMPT)
            samples = summary.text
        except BackendError as e:
            logger.warning(f"Could not compress samples for {category.name}, dropping them: {e}")
            samples = ""
        return category.prompt_builder(replace(context, samples=samples))

    async def _sample_block(self, category: AnalysisCategory, context: PromptContext) -> str:
        units = select_samples(context.units_by_kind, category.kinds, category.sample_limit)
        sections = []
        for unit in units:
            code: Optional[str] = unit.code
            if self.store is not None and context.partition is not None:
                code = await self.store.read_unit(context.partition.entry_for(unit))
                if code is None:
                    continue
            sections.append(format_sample(unit, code))
        return "\n\n".join(sections)


def _discard_result(task: "asyncio.Future") -> None:
    """Consume the outcome of an abandoned analysis run."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.debug(f"Abandoned analysis run failed: {error}")
    else:
        logger.debug("Abandoned analysis run finished; result discarded")
