"""Run the deconstruction stages in order: partition, artifacts, dependencies, analysis."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from .analysis.models import AnalysisReport
from .analysis.orchestrator import AnalysisOrchestrator, Sleep
from .analysis.summarizer import RollingSummarizer, SummarizerConfig
from .config import build_summarizer_config
from .graph.dependency_resolver import DependencyGraph, DependencyResolver
from .llm.base import LLMProvider
from .partition.artifacts import ArtifactStore
from .partition.extractor import PartitionExtractor
from .partition.models import PartitionResult

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    """Pipeline stages, in execution order."""

    PARTITION = "partition"
    ARTIFACTS = "artifacts"
    DEPENDENCIES = "dependencies"
    ANALYSIS = "analysis"


ProgressCallback = Callable[[PipelineStage, Dict[str, Any]], Awaitable[None]]


@dataclass(frozen=True)
class PipelineResult:
    """Results of every stage of one run."""

    partition: PartitionResult
    graph: DependencyGraph
    report: AnalysisReport
    output_dir: Path
    unit_files: Tuple[Path, ...]
    sourcemap_path: Path
    dependency_graph_path: Path
    analysis_path: Path

    def to_dict(self) -> Dict[str, Any]:
        """Summary suitable for tool responses."""
        return {
            "original_file": self.partition.original_file,
            "output_dir": str(self.output_dir),
            "line_count": self.partition.line_count,
            "units": len(self.partition.units),
            "units_by_kind": {
                kind.value: len(units) for kind, units in self.partition.units_by_kind().items()
            },
            "edges": len(self.graph.edges),
            "distinct_edges": len(self.graph.unique_edges()),
            "analysis_timed_out": self.report.timed_out,
            "fallback_categories": self.report.fallback_categories,
            "sourcemap": str(self.sourcemap_path),
            "dependency_graph": str(self.dependency_graph_path),
            "analysis": str(self.analysis_path),
        }


class DeconstructionPipeline:
    """Partition a JavaScript file, write its artifacts and analyze it."""

    def __init__(
        self,
        provider: LLMProvider,
        extractor: Optional[PartitionExtractor] = None,
        resolver: Optional[DependencyResolver] = None,
        summarizer_config: Optional[SummarizerConfig] = None,
        max_retries: int = 3,
        inter_call_delay: float = 1.0,
        analysis_timeout: Optional[float] = None,
        doc_stubs: bool = True,
        sleep: Sleep = asyncio.sleep,
    ):
        """Initialize pipeline.

        Args:
            provider: Language-model backend for the analysis stage
            extractor: Partition extractor (defaults to strict JavaScript)
            resolver: Dependency resolver
            summarizer_config: Token budget for summarization
            max_retries: Attempts per analysis call
            inter_call_delay: Pause between calls for single-worker providers
            analysis_timeout: Whole-analysis ceiling (defaults by provider class)
            doc_stubs: Insert documentation stubs into unit files
            sleep: Awaitable sleep, replaceable in tests
        """
        self.provider = provider
        self.extractor = extractor or PartitionExtractor()
        self.resolver = resolver or DependencyResolver()
        self.summarizer = RollingSummarizer(provider, summarizer_config)
        self.max_retries = max_retries
        self.inter_call_delay = inter_call_delay
        self.analysis_timeout = analysis_timeout
        self.doc_stubs = doc_stubs
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: Dict[str, Any], provider: LLMProvider) -> "DeconstructionPipeline":
        """Create a pipeline from a configuration dict.

        Args:
            config: Configuration dict as returned by get_env_config()
            provider: Language-model backend

        Returns:
            Configured pipeline
        """
        return cls(
            provider=provider,
            extractor=PartitionExtractor(strict=config.get("strict_parse", True)),
            summarizer_config=build_summarizer_config(config),
            max_retries=config.get("max_retries", 3),
            inter_call_delay=config.get("inter_call_delay", 1.0),
            analysis_timeout=config.get("analysis_timeout"),
            doc_stubs=config.get("add_doc_stubs", True),
        )

    async def run(
        self,
        source_path: Union[str, Path],
        output_dir: Union[str, Path],
        progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """Deconstruct a source file.

        Args:
            source_path: JavaScript file to deconstruct
            output_dir: Directory for this run's artifacts
            progress: Awaited after each stage with the stage and its counts

        Returns:
            PipelineResult with every stage's output

        Raises:
            OSError: If the source file cannot be read
            ParseError: If the source cannot be partitioned
        """
        source_path = Path(source_path)
        try:
            source = await asyncio.to_thread(source_path.read_bytes)
        except OSError as e:
            logger.error(f"Error reading source file {source_path}: {e}")
            raise

        return await self.run_source(source, output_dir, source_path.name, progress)

    async def run_source(
        self,
        source: Union[str, bytes],
        output_dir: Union[str, Path],
        original_file: str = "input.js",
        progress: Optional[ProgressCallback] = None,
    ) -> PipelineResult:
        """Deconstruct a source text.

        Args:
            source: JavaScript source text
            output_dir: Directory for this run's artifacts
            original_file: Name recorded as the text's origin
            progress: Awaited after each stage with the stage and its counts

        Returns:
            PipelineResult with every stage's output
        """
        output_dir = Path(output_dir)
        logger.info(f"Deconstructing {original_file} into {output_dir}")

        partition = await asyncio.to_thread(self.extractor.extract, source, original_file)
        await _report(progress, PipelineStage.PARTITION, {"units": len(partition.units)})

        store = ArtifactStore(output_dir, doc_stubs=self.doc_stubs, parser=self.extractor.parser)
        unit_files = await store.write_units(partition)
        sourcemap_path = await store.write_sourcemap(partition)
        await _report(progress, PipelineStage.ARTIFACTS, {"unit_files": len(unit_files)})

        graph = await asyncio.to_thread(self.resolver.resolve, partition.units)
        dependency_graph_path = await store.write_dependency_graph(graph, partition)
        await _report(progress, PipelineStage.DEPENDENCIES, {"edges": len(graph.edges)})

        orchestrator = AnalysisOrchestrator(
            self.provider,
            summarizer=self.summarizer,
            store=store,
            max_retries=self.max_retries,
            inter_call_delay=self.inter_call_delay,
            timeout=self.analysis_timeout,
            sleep=self._sleep,
        )
        report = await orchestrator.analyze(partition, graph)
        analysis_path = await store.write_analysis(report, partition.original_file)
        await _report(
            progress,
            PipelineStage.ANALYSIS,
            {"categories": len(report.results), "timed_out": report.timed_out},
        )

        logger.info(f"Deconstruction of {original_file} complete")
        return PipelineResult(
            partition=partition,
            graph=graph,
            report=report,
            output_dir=output_dir,
            unit_files=tuple(unit_files),
            sourcemap_path=sourcemap_path,
            dependency_graph_path=dependency_graph_path,
            analysis_path=analysis_path,
        )


async def _report(
    progress: Optional[ProgressCallback], stage: PipelineStage, counts: Dict[str, Any]
) -> None:
    logger.info(f"Stage {stage.value} complete: {counts}")
    if progress is not None:
        await progress(stage, counts)
