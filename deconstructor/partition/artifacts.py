"""On-disk storage for unit files, the sourcemap and analysis output."""

import asyncio
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from tree_sitter import Parser

from ..errors import ArtifactError
from .grammars import get_parser
from .models import PartitionResult, PositionEntry, Unit

if TYPE_CHECKING:
    from ..analysis.models import AnalysisReport
    from ..graph.dependency_resolver import DependencyGraph

logger = logging.getLogger(__name__)

UNITS_DIRNAME = "3_tree_sitter"
SOURCEMAP_FILENAME = "sourcemap.json"
DEPENDENCY_GRAPH_FILENAME = "dependency_graph.json"
ANALYSIS_FILENAME = "llm_analysis.md"

# Declarations that receive a documentation stub in unit files
DOC_STUB_NODE_TYPES = ("function_declaration", "method_definition")


def format_code_with_comments(code: str, unit: Unit, original_file: str) -> str:
    """Prefix unit code with a header naming its kind and original lines."""
    return f"// {unit.kind.value}: {unit.name}\n// Lines {unit.start_line}-{unit.end_line} from {original_file}\n\n{code}"


def add_doc_stubs(code: str, parser: Optional[Parser] = None) -> str:
    """Insert a JSDoc-style stub before each top-level function or method.

    Args:
        code: Unit file contents
        parser: Tree-sitter parser (defaults to the shared JavaScript parser)

    Returns:
        Code with stub comments inserted
    """
    parser = parser or get_parser()
    source = code.encode("utf-8")
    tree = parser.parse(source)

    insertions = []
    for node in tree.root_node.children:
        if node.type not in DOC_STUB_NODE_TYPES:
            continue

        name_node = node.child_by_field_name("name")
        name = name_node.text.decode("utf-8") if name_node is not None else "anonymous"

        params: List[str] = []
        params_node = node.child_by_field_name("parameters")
        if params_node is not None:
            params = [c.text.decode("utf-8") for c in params_node.children if c.type == "identifier"]

        lines = ["/**", f" * Function {name}"]
        lines.extend(f" * @param {{any}} {param}" for param in params)
        lines.extend([" * @returns {any}", " */", ""])
        insertions.append((node.start_byte, "\n".join(lines).encode("utf-8")))

    # Insert back to front so earlier offsets stay valid
    for offset, stub in sorted(insertions, reverse=True):
        source = source[:offset] + stub + source[offset:]

    return source.decode("utf-8")


class ArtifactStore:
    """Reads and writes the artifacts of one deconstruction run."""

    def __init__(self, output_dir: Path, doc_stubs: bool = True, parser: Optional[Parser] = None):
        """Initialize artifact store.

        Args:
            output_dir: Directory for this run's artifacts
            doc_stubs: Insert documentation stubs into unit files
            parser: Tree-sitter parser used for documentation stubs
        """
        self.output_dir = Path(output_dir)
        self.units_dir = self.output_dir / UNITS_DIRNAME
        self.doc_stubs = doc_stubs
        self.parser = parser

    def unit_path(self, entry: PositionEntry) -> Path:
        return self.units_dir / entry.file

    async def write_units(self, partition: PartitionResult) -> List[Path]:
        """Write every unit to its own file under the units directory.

        Args:
            partition: Partition result with units and position map

        Returns:
            Paths of the written files
        """
        written = []
        for unit in partition.units:
            entry = partition.entry_for(unit)
            path = self.unit_path(entry)
            content = format_code_with_comments(unit.code, unit, partition.original_file)
            if self.doc_stubs:
                content = add_doc_stubs(content, self.parser)
            await self._write_text(path, content)
            logger.debug(f"Saved {path}")
            written.append(path)

        logger.info(f"Wrote {len(written)} unit files to {self.units_dir}")
        return written

    async def write_sourcemap(self, partition: PartitionResult) -> Path:
        path = self.output_dir / SOURCEMAP_FILENAME
        await self._write_json(path, partition.to_sourcemap())
        logger.info(f"Saved {path}")
        return path

    async def write_dependency_graph(self, graph: "DependencyGraph", partition: PartitionResult) -> Path:
        path = self.output_dir / DEPENDENCY_GRAPH_FILENAME
        files: Dict[str, List[str]] = {}
        for entry in partition.position_map:
            files.setdefault(entry.name, []).append(f"{UNITS_DIRNAME}/{entry.file}")
        await self._write_json(path, graph.to_dict(files))
        logger.info(f"Saved {path}")
        return path

    async def write_analysis(self, report: "AnalysisReport", original_file: str) -> Path:
        path = self.output_dir / ANALYSIS_FILENAME
        await self._write_text(path, report.to_markdown(original_file))
        logger.info(f"Saved {path}")
        return path

    async def read_unit(self, entry: PositionEntry) -> Optional[str]:
        """Read a unit file; a missing or unreadable file is skipped.

        Args:
            entry: Position map entry of the unit

        Returns:
            File contents, or None if the file could not be read
        """
        path = self.unit_path(entry)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Skipping unreadable unit file {path}: {e}")
            return None

    async def read_sourcemap(self) -> Dict[str, Any]:
        """Read the sourcemap of this run.

        Raises:
            ArtifactError: If the sourcemap is missing or malformed
        """
        path = self.output_dir / SOURCEMAP_FILENAME
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
            return json.loads(text)
        except (OSError, ValueError) as e:
            raise ArtifactError(f"Cannot read sourcemap {path}: {e}") from e

    async def _write_json(self, path: Path, data: Dict[str, Any]) -> None:
        await self._write_text(path, json.dumps(data, indent=2))

    async def _write_text(self, path: Path, content: str) -> None:
        try:
            await asyncio.to_thread(_write_file, path, content)
        except OSError as e:
            logger.error(f"Error writing {path}: {e}")
            raise ArtifactError(f"Cannot write {path}: {e}") from e


def _write_file(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
