"""Analysis categories: unit sampling, prompts and statistical fallbacks."""

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..graph.dependency_resolver import DependencyGraph
from ..partition.models import PartitionResult, Unit, UnitKind
from .models import AnalysisResult

# Separates one category's result inside the synthesis prompt
ANALYSIS_BLOCK_MARKER = "--- Analysis: {title} ---"

SOURCE_CONTEXT = (
    "The original code was minified (short variable names, no whitespace) and obfuscated. "
    "It was formatted, deobfuscated, and split with tree-sitter into named units "
    "(functions, methods, classes, variables, constants, imports, exports, and a base unit "
    "holding everything else)."
)


@dataclass(frozen=True)
class UnitStats:
    """Aggregate counts over a partition."""

    counts: Dict[str, int]
    total: int
    dominant_kind: Optional[str]
    covered_lines: int  # lines claimed by top-level units
    line_count: int

    @property
    def coverage_percent(self) -> float:
        if self.line_count == 0:
            return 0.0
        return 100.0 * self.covered_lines / self.line_count


def compute_stats(units_by_kind: Dict[UnitKind, List[Unit]], line_count: int) -> UnitStats:
    """Count units per kind and measure how much of the source they claim.

    Args:
        units_by_kind: Units grouped by kind
        line_count: Number of lines in the source

    Returns:
        UnitStats for the partition
    """
    counts = {kind.value: len(units) for kind, units in units_by_kind.items() if units}
    non_base = Counter({kind: n for kind, n in counts.items() if kind != UnitKind.BASE.value})
    dominant = non_base.most_common(1)[0][0] if non_base else None

    covered = set()
    for kind, units in units_by_kind.items():
        if kind == UnitKind.BASE:
            continue
        for unit in units:
            if unit.is_top_level:
                covered.update(range(unit.start_line, unit.end_line + 1))

    return UnitStats(
        counts=counts,
        total=sum(counts.values()),
        dominant_kind=dominant,
        covered_lines=len(covered),
        line_count=line_count,
    )


@dataclass(frozen=True)
class PromptContext:
    """Everything a prompt builder may draw on."""

    original_file: str
    units_by_kind: Dict[UnitKind, List[Unit]]
    stats: UnitStats
    graph: Optional[DependencyGraph] = None
    samples: str = ""
    prior_blocks: Tuple[str, ...] = ()
    partition: Optional[PartitionResult] = None


@dataclass(frozen=True)
class AnalysisCategory:
    """One facet of the analysis."""

    name: str
    title: str
    kinds: Tuple[UnitKind, ...]  # kinds sampled into the prompt
    sample_limit: int  # samples per kind
    prompt_builder: Callable[[PromptContext], str]


def select_samples(
    units_by_kind: Dict[UnitKind, List[Unit]], kinds: Sequence[UnitKind], limit: int
) -> List[Unit]:
    """Pick up to `limit` representative units per kind, largest first."""
    samples = []
    for kind in kinds:
        units = units_by_kind.get(kind, [])
        ranked = sorted(units, key=lambda u: (-len(u.code), u.id))
        samples.extend(ranked[:limit])
    return samples


def format_sample(unit: Unit, code: str) -> str:
    return (
        f"### {unit.kind.value}: {unit.name} (lines {unit.start_line}-{unit.end_line})\n"
        f"```javascript\n{code}\n```"
    )


def format_counts(stats: UnitStats) -> str:
    lines = [f"- {kind}: {count}" for kind, count in sorted(stats.counts.items())]
    lines.append(f"- total: {stats.total}")
    return "\n".join(lines)


def format_analysis_block(result: AnalysisResult, content: Optional[str] = None) -> str:
    marker = ANALYSIS_BLOCK_MARKER.format(title=result.display_title)
    return f"{marker}\n{result.content if content is None else content}"


def _samples_section(context: PromptContext) -> str:
    if not context.samples:
        return ""
    return f"\n**Representative units**:\n\n{context.samples}\n"


def _build_architecture_prompt(context: PromptContext) -> str:
    graph_lines = ["- (no dependency graph)"]
    if context.graph is not None:
        unique = context.graph.unique_edges()
        graph_lines = [
            f"- {len(context.graph.nodes)} nodes, {len(context.graph.edges)} references, "
            f"{len(unique)} distinct edges"
        ]
        for name, count in context.graph.most_referenced(10):
            graph_lines.append(f"- `{name}` is referenced by {count} units")

    return f"""
Analyze the overall architecture of the JavaScript program {context.original_file}.

**Context**:
- {SOURCE_CONTEXT}
- The source has {context.stats.line_count} lines; top-level units cover {context.stats.coverage_percent:.1f}% of them.

**Unit counts**:
{format_counts(context.stats)}

**Dependency graph** (lexical identifier matches between units):
{chr(10).join(graph_lines)}
{_samples_section(context)}
**Tasks**:
1. **Structure**: Describe the high-level structure and main subsystems.
2. **Entry points**: Identify likely entry points and central units.
3. **Coupling**: Point out tightly coupled groups of units in the graph.
4. **Hypotheses**: If unclear, hypothesize what the program does.

**Output**: A concise Markdown section.
"""


def _kind_prompt(subject: str, tasks: Sequence[str]) -> Callable[[PromptContext], str]:
    def build(context: PromptContext) -> str:
        numbered = "\n".join(f"{i}. {task}" for i, task in enumerate(tasks, start=1))
        return f"""
Analyze the {subject} of the JavaScript program {context.original_file}.

**Context**:
- {SOURCE_CONTEXT}

**Unit counts**:
{format_counts(context.stats)}
{_samples_section(context)}
**Tasks**:
{numbered}

**Output**: A concise Markdown section.
"""

    return build


def _build_synthesis_prompt(context: PromptContext) -> str:
    blocks = "\n\n".join(context.prior_blocks)
    return f"""
Combine the following {len(context.prior_blocks)} analyses of the JavaScript program {context.original_file} into one coherent overview.

{blocks}

**Tasks**:
1. **Purpose**: What does the program do?
2. **Design**: How do its parts fit together?
3. **Challenges**: What makes the code hard to understand without a source map?
4. **Improvements**: What would make it easier to maintain?

**Output**: A concise Markdown overview.
"""


DEFAULT_CATEGORIES: Tuple[AnalysisCategory, ...] = (
    AnalysisCategory(
        name="architecture",
        title="Architecture",
        kinds=(UnitKind.CLASS, UnitKind.FUNCTION),
        sample_limit=2,
        prompt_builder=_build_architecture_prompt,
    ),
    AnalysisCategory(
        name="functions",
        title="Functions",
        kinds=(UnitKind.FUNCTION, UnitKind.ARROW_FUNCTION),
        sample_limit=5,
        prompt_builder=_kind_prompt(
            "functions",
            [
                "**Purpose**: What do the main functions do?",
                "**Patterns**: Identify notable patterns (callbacks, factories, module wrappers).",
                "**Utilities**: Which functions are general-purpose helpers?",
            ],
        ),
    ),
    AnalysisCategory(
        name="classes",
        title="Classes",
        kinds=(UnitKind.CLASS, UnitKind.METHOD),
        sample_limit=3,
        prompt_builder=_kind_prompt(
            "classes and methods",
            [
                "**Responsibilities**: What does each class model?",
                "**Hierarchy**: Describe inheritance and composition.",
                "**Key methods**: Which methods carry the core logic?",
            ],
        ),
    ),
    AnalysisCategory(
        name="state",
        title="State and Data",
        kinds=(UnitKind.VARIABLE, UnitKind.CONSTANT),
        sample_limit=5,
        prompt_builder=_kind_prompt(
            "variables and constants",
            [
                "**Configuration**: Which constants hold configuration or lookup tables?",
                "**Shared state**: Which variables hold state shared across units?",
                "**Data shapes**: Describe notable data structures.",
            ],
        ),
    ),
    AnalysisCategory(
        name="modules",
        title="Modules and Interfaces",
        kinds=(UnitKind.IMPORT, UnitKind.EXPORT, UnitKind.BASE),
        sample_limit=3,
        prompt_builder=_kind_prompt(
            "imports, exports and top-level glue code",
            [
                "**Dependencies**: Which external modules are used and for what?",
                "**Public surface**: What does the program export?",
                "**Glue code**: What does the remaining top-level code do?",
            ],
        ),
    ),
    AnalysisCategory(
        name="synthesis",
        title="Codebase Overview",
        kinds=(),
        sample_limit=0,
        prompt_builder=_build_synthesis_prompt,
    ),
)


def fallback_content(
    category: AnalysisCategory, units_by_kind: Dict[UnitKind, List[Unit]], line_count: int
) -> str:
    """Templated statistics standing in for a model response.

    Args:
        category: Category the content is for
        units_by_kind: Units grouped by kind
        line_count: Number of lines in the source

    Returns:
        Deterministic Markdown text
    """
    stats = compute_stats(units_by_kind, line_count)
    kinds = category.kinds or tuple(UnitKind)

    lines = [f"Statistical summary of {category.title.lower()}."]
    lines.append("")
    for kind in kinds:
        lines.append(f"- {kind.value} units: {len(units_by_kind.get(kind, []))}")
    lines.append(f"- Total units: {stats.total}")
    if stats.dominant_kind is not None:
        lines.append(
            f"- Dominant kind: {stats.dominant_kind} ({stats.counts[stats.dominant_kind]} units)"
        )
    lines.append(
        f"- Line coverage: {stats.covered_lines}/{stats.line_count} lines "
        f"({stats.coverage_percent:.1f}%) claimed by top-level units"
    )

    largest = sorted(
        (u for kind in kinds if kind != UnitKind.BASE for u in units_by_kind.get(kind, [])),
        key=lambda u: (-u.line_count, u.id),
    )[:3]
    if largest:
        described = ", ".join(f"`{u.name}` ({u.line_count} lines)" for u in largest)
        lines.append(f"- Largest: {described}")

    return "\n".join(lines)


def synthesis_fallback(results: Sequence[AnalysisResult]) -> str:
    """Overview assembled from the category results themselves."""
    lines = [f"Overview assembled from {len(results)} category analyses."]
    for result in results:
        lines.append("")
        lines.append(f"### {result.display_title} ({result.status.value})")
        lines.append("")
        lines.append(result.content)
    return "\n".join(lines)
