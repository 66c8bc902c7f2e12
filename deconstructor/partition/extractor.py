"""Syntax-tree partitioning of a source text into typed, named units."""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Set, Tuple, Union

import blake3
from tree_sitter import Parser

from ..errors import ParseError
from .grammars import JAVASCRIPT, ChunkType, LanguageConfig, NamingStrategy, get_parser
from .models import PartitionResult, PositionEntry, Unit, UnitKind

logger = logging.getLogger(__name__)

_INVALID_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_]")
_REPEATED_UNDERSCORES = re.compile(r"_+")


def sanitize_filename(name: str) -> str:
    """Turn a unit name into a safe file stem.

    Args:
        name: Unit name

    Returns:
        Name with every character outside [A-Za-z0-9_] replaced by an underscore,
        repeats collapsed and edges stripped, or "unnamed" if nothing is left
    """
    cleaned = _REPEATED_UNDERSCORES.sub("_", _INVALID_FILENAME_CHARS.sub("_", name))
    return cleaned.strip("_") or "unnamed"


def count_lines(text: str) -> int:
    """Count lines the way tree-sitter numbers rows, ignoring a trailing newline."""
    if not text:
        return 0
    lines = text.split("\n")
    if len(lines) > 1 and lines[-1] == "":
        lines.pop()
    return len(lines)


@dataclass
class _Draft:
    """A matched node before ids and output paths are assigned."""

    name: str
    kind: UnitKind
    start_byte: int
    end_byte: int
    start_line: int
    end_line: int
    parent_name: Optional[str]
    depth: int


class PartitionExtractor:
    """Partition source text into units using tree-sitter."""

    def __init__(
        self,
        language: LanguageConfig = JAVASCRIPT,
        parser: Optional[Parser] = None,
        strict: bool = True,
    ):
        """Initialize the extractor.

        Args:
            language: Grammar configuration with the node-type table
            parser: Tree-sitter parser (defaults to the shared JavaScript parser)
            strict: Raise ParseError when the tree contains syntax errors
        """
        self.language = language
        self.parser = parser or get_parser()
        self.strict = strict

    def extract_file(self, file_path: str) -> PartitionResult:
        """Read and partition a source file.

        Args:
            file_path: Path to the source file

        Returns:
            Partition result for the file

        Raises:
            OSError: If the file cannot be read
            ParseError: If the file cannot be parsed
        """
        try:
            with open(file_path, "rb") as f:
                source = f.read()
        except OSError as e:
            logger.error(f"Error reading source file {file_path}: {e}")
            raise

        return self.extract(source, original_file=Path(file_path).name)

    def extract(self, source: Union[str, bytes], original_file: str = "input.js") -> PartitionResult:
        """Partition a source text into units and a position map.

        Args:
            source: Source text (str or UTF-8 bytes)
            original_file: Name of the file the text came from

        Returns:
            PartitionResult with units in discovery order, the base unit last

        Raises:
            ParseError: If the text is not valid UTF-8, or has syntax errors in strict mode
        """
        if isinstance(source, bytes):
            source_bytes = source
            try:
                text = source.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(f"{original_file} is not valid UTF-8: {e}") from e
        else:
            text = source
            source_bytes = source.encode("utf-8")

        tree = self.parser.parse(source_bytes)
        if tree is None:
            raise ParseError(f"Parser returned no tree for {original_file}")

        root_node = tree.root_node
        if root_node.has_error:
            error_line = self._first_error_line(root_node)
            if self.strict:
                raise ParseError(f"Syntax error in {original_file} near line {error_line}")
            logger.warning(f"Parse errors in {original_file} (first near line {error_line})")

        drafts = self._traverse_ast(root_node)
        line_count = count_lines(text)

        units: List[Unit] = []
        for draft in drafts:
            units.append(
                Unit(
                    id=len(units),
                    name=draft.name,
                    kind=draft.kind,
                    start_line=draft.start_line,
                    end_line=draft.end_line,
                    start_byte=draft.start_byte,
                    end_byte=draft.end_byte,
                    code=source_bytes[draft.start_byte : draft.end_byte].decode("utf-8", errors="replace"),
                    parent_name=draft.parent_name,
                    depth=draft.depth,
                    spans=((draft.start_line, draft.end_line),),
                )
            )

        base_unit = self._build_base_unit(units, text, line_count)
        if base_unit is not None:
            units.append(base_unit)

        position_map = self._build_position_map(units)

        logger.info(
            f"Extracted {len(units)} units from {original_file} "
            f"({len([u for u in units if u.is_top_level])} top-level, {line_count} lines)"
        )
        return PartitionResult(
            units=tuple(units),
            position_map=tuple(position_map),
            line_count=line_count,
            original_file=original_file,
            parse_errors=root_node.has_error,
        )

    def _traverse_ast(self, root_node: Any) -> List[_Draft]:
        """Depth-first, pre-order traversal returning every matched node.

        Nodes whose type has no table entry are not emitted but their children
        are still visited. Uses an explicit stack so nesting depth is bounded
        only by memory.

        Args:
            root_node: Tree-sitter node to start from

        Returns:
            Drafts for the node and its descendants in discovery order
        """
        drafts: List[_Draft] = []
        # (node, nearest named ancestor, number of enclosing units)
        stack: List[Tuple[Any, Optional[str], int]] = [(root_node, None, 0)]

        while stack:
            node, parent_name, depth = stack.pop()
            child_parent = parent_name
            child_depth = depth

            chunk_type = self.language.get_chunk_type(node.type)
            if chunk_type is not None:
                name, declared = self._extract_node_name(node, chunk_type, parent_name)
                drafts.append(
                    _Draft(
                        name=name,
                        kind=chunk_type.kind,
                        start_byte=node.start_byte,
                        end_byte=node.end_byte,
                        start_line=node.start_point[0] + 1,  # tree-sitter rows are 0-based
                        end_line=node.end_point[0] + 1,
                        parent_name=parent_name,
                        depth=depth,
                    )
                )
                logger.debug(f"Matched {node.type} '{name}' at line {node.start_point[0] + 1}")
                if declared:
                    child_parent = name
                child_depth = depth + 1
            else:
                own_name = self._field_text(node, "name")
                if own_name:
                    child_parent = own_name

            # Reversed so the first child is visited first
            stack.extend((child, child_parent, child_depth) for child in reversed(node.children))

        return drafts

    def _extract_node_name(
        self, node: Any, chunk_type: ChunkType, parent_name: Optional[str]
    ) -> Tuple[str, bool]:
        """Derive a unit name for a matched node.

        Args:
            node: Tree-sitter node
            chunk_type: Table entry for the node type
            parent_name: Nearest named ancestor, if any

        Returns:
            Tuple of (name, whether the name was declared in the source)
        """
        if chunk_type.naming == NamingStrategy.DECLARED:
            name = self._field_text(node, chunk_type.name_field or "name")
            return (name, True) if name else ("anonymous", False)

        if chunk_type.naming == NamingStrategy.DECLARATORS:
            names: List[str] = []
            for child in node.children:
                if child.type != "variable_declarator":
                    continue
                name_node = child.child_by_field_name("name")
                if name_node is not None:
                    names.extend(self._binding_names(name_node))
            return ("_".join(names), True) if names else ("anonymous", False)

        if chunk_type.naming == NamingStrategy.STATEMENT:
            first_named = next(
                (child for child in node.children if child.is_named and child.type != "comment"),
                None,
            )
            suffix = first_named.type if first_named is not None else "default"
            return f"{chunk_type.kind.value}_{suffix}", False

        # Arrow functions take the nearest named ancestor
        if parent_name:
            return f"{parent_name}_arrow", False
        return "anonymous_arrow", False

    def _binding_names(self, node: Any) -> List[str]:
        """Collect identifiers bound by a declarator name or destructuring pattern."""
        if node.type in self.language.binding_pattern_types:
            return [node.text.decode("utf-8")]

        if node.type in ("assignment_pattern", "object_assignment_pattern"):
            left = node.child_by_field_name("left")
            return self._binding_names(left) if left is not None else []

        if node.type == "pair_pattern":
            value = node.child_by_field_name("value")
            return self._binding_names(value) if value is not None else []

        names = []
        for child in node.named_children:
            names.extend(self._binding_names(child))
        return names

    def _field_text(self, node: Any, field: str) -> Optional[str]:
        """Text of a node's field child, skipping destructuring patterns."""
        child = node.child_by_field_name(field)
        if child is None or child.type.endswith("_pattern"):
            return None
        text = child.text.decode("utf-8").strip()
        return text or None

    def _first_error_line(self, root_node: Any) -> int:
        """Find the 1-based line of the first ERROR or missing node."""
        stack = [root_node]
        while stack:
            node = stack.pop()
            if node.type == "ERROR" or node.is_missing:
                return node.start_point[0] + 1
            if node.has_error:
                stack.extend(reversed(node.children))
        return root_node.start_point[0] + 1

    def _build_base_unit(self, units: List[Unit], text: str, line_count: int) -> Optional[Unit]:
        """Synthesize the filler unit covering every line no top-level unit claims.

        Args:
            units: Units extracted from the tree
            text: Source text
            line_count: Number of lines in the source

        Returns:
            The base unit, or None when every line is covered
        """
        ranges = sorted((u.start_line, u.end_line) for u in units if u.is_top_level)
        spans = collect_uncovered_spans(ranges, line_count)
        if not spans:
            return None

        lines = text.split("\n")
        code = "\n".join("\n".join(lines[start - 1 : end]) for start, end in spans)

        line_offsets = _line_byte_offsets(lines)
        first_line, last_line = spans[0][0], spans[-1][1]
        start_byte = line_offsets[first_line - 1]
        end_byte = line_offsets[last_line - 1] + len(lines[last_line - 1].encode("utf-8"))

        logger.debug(f"Base unit covers {len(spans)} uncovered spans")
        return Unit(
            id=len(units),
            name="base",
            kind=UnitKind.BASE,
            start_line=first_line,
            end_line=last_line,
            start_byte=start_byte,
            end_byte=end_byte,
            code=code,
            parent_name=None,
            depth=0,
            spans=tuple(spans),
        )

    def _build_position_map(self, units: List[Unit]) -> List[PositionEntry]:
        """Assign output paths, adding ordinals where sanitized names collide."""
        used_paths: Set[str] = set()
        entries = []

        for unit in units:
            stem = f"{unit.kind.directory}/{sanitize_filename(unit.name)}"
            file_path = f"{stem}.js"
            ordinal = 1
            while file_path in used_paths:
                ordinal += 1
                file_path = f"{stem}_{ordinal}.js"
            used_paths.add(file_path)

            entries.append(
                PositionEntry(
                    id=unit.id,
                    name=unit.name,
                    kind=unit.kind,
                    file=file_path,
                    start_line=unit.start_line,
                    end_line=unit.end_line,
                    fingerprint=blake3.blake3(unit.code.encode("utf-8")).hexdigest()[:16],
                )
            )

        return entries


def collect_uncovered_spans(ranges: List[Tuple[int, int]], line_count: int) -> List[Tuple[int, int]]:
    """Walk sorted line ranges and return the gaps plus any trailing tail.

    Args:
        ranges: (start_line, end_line) pairs sorted by start line
        line_count: Total number of lines

    Returns:
        Uncovered (start_line, end_line) spans in order
    """
    spans = []
    next_line = 1
    for start, end in ranges:
        if start > next_line:
            spans.append((next_line, start - 1))
        next_line = max(next_line, end + 1)

    if next_line <= line_count:
        spans.append((next_line, line_count))

    return spans


def _line_byte_offsets(lines: List[str]) -> List[int]:
    offsets: List[int] = []
    position = 0
    for line in lines:
        offsets.append(position)
        position += len(line.encode("utf-8")) + 1
    return offsets
