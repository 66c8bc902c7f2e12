"""Grammar configuration mapping tree-sitter node types to unit kinds."""

import logging
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

import tree_sitter_javascript as tsjavascript
from tree_sitter import Language, Parser

from .models import UnitKind

logger = logging.getLogger(__name__)


class NamingStrategy(str, Enum):
    """How a unit's name is derived from its node."""

    DECLARED = "declared"  # the node's `name` field
    DECLARATORS = "declarators"  # identifiers bound by every declarator
    STATEMENT = "statement"  # {kind}_{first named child type}
    ARROW = "arrow"  # {nearest named ancestor}_arrow


class ChunkType:
    """How one tree-sitter node type becomes a unit."""

    def __init__(self, kind: UnitKind, naming: NamingStrategy, name_field: Optional[str] = "name"):
        self.kind = kind
        self.naming = naming
        self.name_field = name_field


class LanguageConfig:
    """Configuration for a grammar."""

    def __init__(
        self,
        name: str,
        extensions: List[str],
        chunk_types: Dict[str, ChunkType],
        identifier_types: FrozenSet[str],
        binding_pattern_types: FrozenSet[str],
    ):
        """Initialize language configuration.

        Args:
            name: Language name
            extensions: List of file extensions
            chunk_types: Mapping of AST node types to how they become units
            identifier_types: Node types that count as identifier references
            binding_pattern_types: Node types that bind names inside destructuring patterns
        """
        self.name = name
        self.extensions = extensions
        self.chunk_types = chunk_types
        self.identifier_types = identifier_types
        self.binding_pattern_types = binding_pattern_types

    def get_chunk_type(self, node_type: str) -> Optional[ChunkType]:
        """Get the chunk configuration for a node type, or None if not chunked."""
        return self.chunk_types.get(node_type)

    def is_supported_file(self, file_path: str) -> bool:
        """Check if a file has one of this grammar's extensions.

        Args:
            file_path: Path to the file

        Returns:
            True if the file can be partitioned with this grammar
        """
        return Path(file_path).suffix.lower() in self.extensions


JAVASCRIPT = LanguageConfig(
    name="javascript",
    extensions=[".js", ".mjs", ".cjs", ".jsx"],
    chunk_types={
        "function_declaration": ChunkType(UnitKind.FUNCTION, NamingStrategy.DECLARED),
        "generator_function_declaration": ChunkType(UnitKind.FUNCTION, NamingStrategy.DECLARED),
        "method_definition": ChunkType(UnitKind.METHOD, NamingStrategy.DECLARED),
        "arrow_function": ChunkType(UnitKind.ARROW_FUNCTION, NamingStrategy.ARROW, None),
        "class_declaration": ChunkType(UnitKind.CLASS, NamingStrategy.DECLARED),
        "variable_declaration": ChunkType(UnitKind.VARIABLE, NamingStrategy.DECLARATORS, None),
        "lexical_declaration": ChunkType(UnitKind.CONSTANT, NamingStrategy.DECLARATORS, None),
        "import_statement": ChunkType(UnitKind.IMPORT, NamingStrategy.STATEMENT, None),
        "export_statement": ChunkType(UnitKind.EXPORT, NamingStrategy.STATEMENT, None),
    },
    identifier_types=frozenset({"identifier", "shorthand_property_identifier"}),
    binding_pattern_types=frozenset({"identifier", "shorthand_property_identifier_pattern"}),
)


_parser: Optional[Parser] = None


def get_parser() -> Parser:
    """Get the shared tree-sitter parser for JavaScript.

    Returns:
        Parser instance with the JavaScript grammar loaded
    """
    global _parser
    if _parser is None:
        language = Language(tsjavascript.language())
        _parser = Parser()
        _parser.language = language
        logger.debug("Initialized tree-sitter parser for javascript")
    return _parser
