"""Tests for partitioning source text into units."""

import pytest

from deconstructor.errors import ParseError
from deconstructor.partition.extractor import (
    PartitionExtractor,
    collect_uncovered_spans,
    count_lines,
    sanitize_filename,
)
from deconstructor.partition.models import UnitKind

from conftest import THREE_FUNCTIONS

MIXED_SOURCE = """import fs from "fs";
var counter = 0;

const x = 1, y = 2;
class Greeter {
  greet(name) {
    return "hi " + name;
  }
}
const handler = () => 42;
console.log(counter);
export function shout(s) {
  return s.toUpperCase();
}
"""


def covered_lines(partition):
    lines = set()
    for unit in partition.top_level_units:
        lines.update(range(unit.start_line, unit.end_line + 1))
    return lines


def base_lines(partition):
    base = partition.base_unit
    if base is None:
        return set()
    lines = set()
    for start, end in base.spans:
        lines.update(range(start, end + 1))
    return lines


class TestSanitizeFilename:
    def test_replaces_and_collapses_invalid_characters(self):
        assert sanitize_filename("a$b..c") == "a_b_c"

    def test_strips_edge_underscores(self):
        assert sanitize_filename("__x__") == "x"

    def test_falls_back_to_unnamed(self):
        assert sanitize_filename("$$") == "unnamed"
        assert sanitize_filename("") == "unnamed"


def test_count_lines_ignores_trailing_newline():
    assert count_lines("") == 0
    assert count_lines("a") == 1
    assert count_lines("a\n") == 1
    assert count_lines("a\nb") == 2


def test_collect_uncovered_spans_includes_gaps_and_tail():
    assert collect_uncovered_spans([(1, 3), (5, 7)], 10) == [(4, 4), (8, 10)]
    assert collect_uncovered_spans([(2, 4), (3, 6)], 6) == [(1, 1)]
    assert collect_uncovered_spans([], 3) == [(1, 3)]


class TestThreeFunctions:
    def test_yields_three_functions_and_at_most_one_base(self, three_functions):
        kinds = [unit.kind for unit in three_functions.units]

        assert kinds.count(UnitKind.FUNCTION) == 3
        assert kinds.count(UnitKind.BASE) <= 1
        assert [u.name for u in three_functions.top_level_units] == ["alpha", "beta", "gamma"]

    def test_code_is_exact_source_slice(self, three_functions):
        source = THREE_FUNCTIONS.encode("utf-8")
        for unit in three_functions.top_level_units:
            assert unit.code == source[unit.start_byte : unit.end_byte].decode("utf-8")

    def test_base_unit_holds_blank_separator_lines(self, three_functions):
        base = three_functions.base_unit

        assert base is not None
        assert base.name == "base"
        assert base.spans == ((4, 4), (8, 8))

    def test_position_map_matches_units(self, three_functions):
        entries = three_functions.position_map

        assert [e.id for e in entries] == [u.id for u in three_functions.units]
        assert entries[0].file == "functions/alpha.js"
        assert entries[0].start_line == 1
        assert entries[0].end_line == 3
        assert len(entries[0].fingerprint) == 16


class TestCoverage:
    @pytest.mark.parametrize(
        "source",
        [
            THREE_FUNCTIONS,
            MIXED_SOURCE,
            "console.log(1);\nconsole.log(2);\n",
            "var only = 1;\n",
            "",
        ],
    )
    def test_top_level_units_and_base_cover_every_line_once(self, extractor, source):
        partition = extractor.extract(source)
        covered = covered_lines(partition)
        filler = base_lines(partition)

        assert covered | filler == set(range(1, partition.line_count + 1))
        assert not covered & filler

    def test_top_level_units_do_not_overlap(self, extractor):
        partition = extractor.extract(MIXED_SOURCE + "var a = 1; var b = 2;\n")
        ranges = sorted((u.start_byte, u.end_byte) for u in partition.top_level_units)

        for (_, end), (start, _) in zip(ranges, ranges[1:]):
            assert end <= start

    def test_fully_covered_source_has_no_base(self, extractor):
        partition = extractor.extract("var only = 1;\n")

        assert partition.base_unit is None
        assert [u.name for u in partition.units] == ["only"]


class TestNaming:
    @pytest.fixture
    def partition(self, extractor):
        return extractor.extract(MIXED_SOURCE)

    def by_name(self, partition, name):
        return next(u for u in partition.units if u.name == name)

    def test_import_named_after_first_child(self, partition):
        unit = self.by_name(partition, "import_import_clause")
        assert unit.kind == UnitKind.IMPORT

    def test_declarators_joined(self, partition):
        assert self.by_name(partition, "x_y").kind == UnitKind.CONSTANT
        assert self.by_name(partition, "counter").kind == UnitKind.VARIABLE

    def test_method_nested_in_class(self, partition):
        method = self.by_name(partition, "greet")

        assert method.kind == UnitKind.METHOD
        assert method.parent_name == "Greeter"
        assert method.depth == 1
        assert self.by_name(partition, "Greeter").depth == 0

    def test_arrow_named_after_enclosing_declaration(self, partition):
        arrow = self.by_name(partition, "handler_arrow")

        assert arrow.kind == UnitKind.ARROW_FUNCTION
        assert arrow.depth == 1

    def test_export_named_after_exported_declaration(self, partition):
        export = self.by_name(partition, "export_function_declaration")
        nested = self.by_name(partition, "shout")

        assert export.kind == UnitKind.EXPORT
        assert nested.kind == UnitKind.FUNCTION
        assert nested.depth == 1

    def test_destructuring_contributes_bound_names(self, extractor):
        partition = extractor.extract("const { a, b: c } = obj;\n")
        assert partition.units[0].name == "a_c"

    def test_anonymous_arrow(self, extractor):
        partition = extractor.extract("[1, 2].map((n) => n * 2);\n")
        arrows = [u for u in partition.units if u.kind == UnitKind.ARROW_FUNCTION]
        assert [u.name for u in arrows] == ["anonymous_arrow"]

    def test_colliding_names_get_ordinal_paths(self, extractor):
        partition = extractor.extract("var dup = 1;\nvar dup = 2;\n")

        assert [u.name for u in partition.units] == ["dup", "dup"]
        assert [e.file for e in partition.position_map] == ["variables/dup.js", "variables/dup_2.js"]


def test_deeply_nested_expression_is_partitioned(extractor):
    # Left-associative concatenation nests one binary_expression per term
    source = "var s = " + " + ".join(["'a'"] * 1500) + ";\n"

    partition = extractor.extract(source)

    assert not partition.parse_errors
    assert [u.name for u in partition.units] == ["s"]
    assert partition.units[0].kind == UnitKind.VARIABLE


def test_traversal_keeps_discovery_order(extractor):
    partition = extractor.extract(MIXED_SOURCE)

    starts = [u.start_byte for u in partition.units if u.kind != UnitKind.BASE]
    assert starts == sorted(starts)
    assert [u.name for u in partition.units][:3] == ["import_import_clause", "counter", "x_y"]


class TestParseErrors:
    def test_strict_mode_raises(self, extractor):
        with pytest.raises(ParseError):
            extractor.extract("function (\n")

    def test_lenient_mode_partitions_anyway(self):
        partition = PartitionExtractor(strict=False).extract("function ok() {}\nfunction (\n")

        assert partition.parse_errors
        assert any(u.name == "ok" for u in partition.units)

    def test_invalid_utf8_raises(self, extractor):
        with pytest.raises(ParseError):
            extractor.extract(b"var a = '\xff';")

    def test_extract_file_reads_from_disk(self, extractor, tmp_path):
        path = tmp_path / "bundle.js"
        path.write_text(THREE_FUNCTIONS)

        partition = extractor.extract_file(str(path))

        assert partition.original_file == "bundle.js"
        assert len(partition.top_level_units) == 3
