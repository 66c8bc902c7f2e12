"""Data models for source partitioning."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple


class UnitKind(str, Enum):
    """Kinds of logical units a source text is split into."""

    FUNCTION = "function"
    METHOD = "method"
    ARROW_FUNCTION = "arrow_function"
    CLASS = "class"
    VARIABLE = "variable"
    CONSTANT = "constant"
    IMPORT = "import"
    EXPORT = "export"
    BASE = "base"

    @property
    def directory(self) -> str:
        """Output directory name for units of this kind."""
        return f"{self.value}s"


@dataclass(frozen=True)
class Unit:
    """A named, typed, contiguous slice of the source text."""

    id: int
    name: str
    kind: UnitKind
    start_line: int  # 1-based, inclusive
    end_line: int  # 1-based, inclusive
    start_byte: int
    end_byte: int
    code: str
    parent_name: Optional[str] = None  # nearest named ancestor
    depth: int = 0  # number of enclosing units, 0 for top-level
    spans: Tuple[Tuple[int, int], ...] = ()  # covered line ranges

    @property
    def is_top_level(self) -> bool:
        return self.depth == 0

    @property
    def line_count(self) -> int:
        return sum(end - start + 1 for start, end in self.spans)


@dataclass(frozen=True)
class PositionEntry:
    """Maps a unit to its original location and its output file."""

    id: int
    name: str
    kind: UnitKind
    file: str  # path relative to the unit output directory
    start_line: int
    end_line: int
    fingerprint: str  # blake3 digest of the unit code

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.kind.value,
            "file": self.file,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "fingerprint": self.fingerprint,
        }


@dataclass(frozen=True)
class PartitionResult:
    """Output of the partition stage: units plus their position map."""

    units: Tuple[Unit, ...]
    position_map: Tuple[PositionEntry, ...]
    line_count: int
    original_file: str = "input.js"
    parse_errors: bool = False

    @property
    def names(self) -> List[str]:
        return [unit.name for unit in self.units]

    @property
    def top_level_units(self) -> List[Unit]:
        return [unit for unit in self.units if unit.is_top_level and unit.kind != UnitKind.BASE]

    @property
    def base_unit(self) -> Optional[Unit]:
        for unit in self.units:
            if unit.kind == UnitKind.BASE:
                return unit
        return None

    def units_by_kind(self) -> Dict[UnitKind, List[Unit]]:
        """Group units by kind, preserving discovery order within each kind."""
        grouped: Dict[UnitKind, List[Unit]] = {}
        for unit in self.units:
            grouped.setdefault(unit.kind, []).append(unit)
        return grouped

    def entry_for(self, unit: Unit) -> PositionEntry:
        return self.position_map[unit.id]

    def to_sourcemap(self) -> Dict[str, object]:
        return {
            "originalFile": self.original_file,
            "lineCount": self.line_count,
            "chunks": [entry.to_dict() for entry in self.position_map],
        }

