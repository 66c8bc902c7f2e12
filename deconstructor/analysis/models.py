"""Data models for analysis results."""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple


class AnalysisStatus(str, Enum):
    """How an analysis result was produced."""

    OK = "ok"  # model response
    FALLBACK = "fallback"  # templated statistics
    ERROR = "error"  # failed without fallback


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of one analysis category."""

    category: str
    content: str
    status: AnalysisStatus
    attempts: int = 0
    error: Optional[str] = None
    title: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title or self.category.replace("_", " ").title()


@dataclass(frozen=True)
class AnalysisReport:
    """All category results plus the synthesis."""

    results: Tuple[AnalysisResult, ...]
    synthesis: Optional[AnalysisResult]
    timed_out: bool = False
    provider: str = ""
    timeout_seconds: Optional[float] = None

    @classmethod
    def placeholder(cls, timeout_seconds: float, provider: str = "") -> "AnalysisReport":
        """Report standing in for an analysis that did not finish in time."""
        return cls(
            results=(),
            synthesis=None,
            timed_out=True,
            provider=provider,
            timeout_seconds=timeout_seconds,
        )

    @property
    def fallback_categories(self) -> List[str]:
        return [r.category for r in self.results if r.status == AnalysisStatus.FALLBACK]

    def to_dict(self) -> dict:
        def result_dict(result: AnalysisResult) -> dict:
            return {
                "category": result.category,
                "title": result.display_title,
                "status": result.status.value,
                "attempts": result.attempts,
                "error": result.error,
                "content": result.content,
            }

        return {
            "provider": self.provider,
            "timed_out": self.timed_out,
            "results": [result_dict(r) for r in self.results],
            "synthesis": result_dict(self.synthesis) if self.synthesis else None,
        }

    def to_markdown(self, original_file: str) -> str:
        """Render the report as the analysis markdown document.

        Args:
            original_file: Name of the analyzed source file

        Returns:
            Markdown text
        """
        parts = [f"# LLM Analysis of {original_file}\n"]

        if self.timed_out:
            parts.append("## Analysis timed out\n")
            parts.append(
                f"The analysis did not finish within {self.timeout_seconds:g} seconds "
                f"using {self.provider or 'the configured provider'}. "
                "Unit files, the sourcemap and the dependency graph are still available.\n"
            )
            return "\n".join(parts)

        if self.provider:
            parts.append(f"_Provider: {self.provider}_\n")

        for result in self.results:
            parts.append(f"## {result.display_title}\n")
            parts.append(_render_content(result))

        if self.synthesis is not None:
            parts.append(f"## {self.synthesis.display_title}\n")
            parts.append(_render_content(self.synthesis))

        return "\n".join(parts)


def _render_content(result: AnalysisResult) -> str:
    if result.status == AnalysisStatus.ERROR:
        return f"**Error**: Failed to analyze due to {result.error}\n"
    if result.status == AnalysisStatus.FALLBACK:
        return f"_Generated from unit statistics; the model was unavailable._\n\n{result.content}\n"
    return f"{result.content}\n"
