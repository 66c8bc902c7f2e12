"""Approximate dependency graph from lexical identifier matches between units."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple

from tree_sitter import Parser

from ..partition.grammars import JAVASCRIPT, LanguageConfig, get_parser
from ..partition.models import Unit, UnitKind

logger = logging.getLogger(__name__)

# Node types whose `name` field declares rather than references an identifier
DECLARATION_NODE_TYPES = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "class_declaration",
        "class",
        "variable_declarator",
    }
)

# Method snippets are not valid programs on their own
_METHOD_WRAPPER_PREFIX = b"class __unit__ {\n"
_METHOD_WRAPPER_SUFFIX = b"\n}"


@dataclass(frozen=True)
class DependencyGraph:
    """Directed graph of identifier references between units.

    Edges keep one entry per matching identifier occurrence, so repeated
    pairs carry a reference count; self-loops mark recursive references.
    """

    nodes: Tuple[str, ...]
    edges: Tuple[Tuple[str, str], ...]

    def edge_counts(self) -> Counter:
        """Number of references per (from, to) pair."""
        return Counter(self.edges)

    def unique_edges(self) -> List[Tuple[str, str]]:
        """Edges without repeats, in first-seen order."""
        return list(dict.fromkeys(self.edges))

    def dependencies_of(self, name: str) -> List[str]:
        return [target for source, target in self.unique_edges() if source == name]

    def dependents_of(self, name: str) -> List[str]:
        return [source for source, target in self.unique_edges() if target == name]

    def most_referenced(self, limit: int = 10) -> List[Tuple[str, int]]:
        """Units referenced by the most distinct other units."""
        in_degree: Counter = Counter(
            target for source, target in self.unique_edges() if source != target
        )
        return in_degree.most_common(limit)

    def to_dict(self, files: Optional[Dict[str, List[str]]] = None) -> Dict[str, Any]:
        """Serialize as {"nodes": [{"id", "files"}], "edges": [{"from", "to"}]}.

        Args:
            files: Output files per unit name; several units may share a name
        """
        files = files or {}
        return {
            "nodes": [{"id": name, "files": files.get(name, [])} for name in self.nodes],
            "edges": [{"from": source, "to": target} for source, target in self.edges],
        }


class DependencyResolver:
    """Build a dependency graph by matching identifiers against unit names.

    No scope, shadowing or binding resolution is performed: any identifier
    whose text equals a unit name counts as a reference to that unit.
    """

    def __init__(self, language: LanguageConfig = JAVASCRIPT, parser: Optional[Parser] = None):
        """Initialize dependency resolver.

        Args:
            language: Grammar configuration listing identifier node types
            parser: Tree-sitter parser (defaults to the shared JavaScript parser)
        """
        self.language = language
        self.parser = parser or get_parser()

    def resolve(self, units: Sequence[Unit], names: Optional[Iterable[str]] = None) -> DependencyGraph:
        """Build the dependency graph for a set of units.

        Args:
            units: Units to scan
            names: Known unit names (defaults to the names of `units`)

        Returns:
            DependencyGraph with every unit name as a node
        """
        known: Set[str] = set(names) if names is not None else {unit.name for unit in units}
        nodes = list(dict.fromkeys(unit.name for unit in units))
        nodes.extend(sorted(known.difference(nodes)))

        edges: List[Tuple[str, str]] = []
        for unit in units:
            for identifier in self._scan_identifiers(unit):
                if identifier in known:
                    edges.append((unit.name, identifier))

        logger.info(
            f"Resolved {len(edges)} references ({len(set(edges))} distinct) between {len(nodes)} units"
        )
        return DependencyGraph(nodes=tuple(nodes), edges=tuple(edges))

    def _scan_identifiers(self, unit: Unit) -> List[str]:
        """Return the text of every identifier reference in a unit's code.

        Args:
            unit: Unit to scan

        Returns:
            Identifier texts in source order, one per occurrence
        """
        source = unit.code.encode("utf-8")
        if unit.kind == UnitKind.METHOD:
            source = _METHOD_WRAPPER_PREFIX + source + _METHOD_WRAPPER_SUFFIX

        tree = self.parser.parse(source)
        identifiers = []
        stack = [tree.root_node]

        while stack:
            node = stack.pop()
            if node.type in self.language.identifier_types and not _is_declared_name(node):
                identifiers.append(node.text.decode("utf-8"))
            stack.extend(reversed(node.children))

        logger.debug(f"Scanned {len(identifiers)} identifiers in {unit.kind.value} '{unit.name}'")
        return identifiers


def _is_declared_name(node: Any) -> bool:
    """Whether an identifier is the declared name of its parent declaration."""
    parent = node.parent
    if parent is None or parent.type not in DECLARATION_NODE_TYPES:
        return False
    name_node = parent.child_by_field_name("name")
    return (
        name_node is not None
        and name_node.start_byte == node.start_byte
        and name_node.end_byte == node.end_byte
    )
