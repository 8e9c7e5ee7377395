"""
Unit tests for source discovery and incremental ingestion.
"""

import os
import shutil
import tempfile
import textwrap
import unittest
from pathlib import Path

from codegraph.core.config import IndexConfig
from codegraph.graph.entities import EdgeKind, NodeKind
from codegraph.ingestion.scanner import SourceFile, SourceScanner
from codegraph.ingestion.sync import IngestionPipeline
from codegraph.resolution.resolver import ReferenceResolver
from codegraph.storage.store import GraphStore

MATH_UTILS = textwrap.dedent('''
    def add(a, b):
        return a + b


    def quickMath(x):
        return add(x, 1)
''')


def write_file(root, relative, content=""):
    path = Path(root) / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content))
    return path


class TestSourceScanner(unittest.TestCase):
    """Tests for source file discovery."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_scan_applies_patterns(self):
        """Test include and exclude patterns."""
        write_file(self.tmpdir, "pkg/__init__.py")
        write_file(self.tmpdir, "pkg/core.py", "x = 1\n")
        write_file(self.tmpdir, "pkg/types.pyi", "x: int\n")
        write_file(self.tmpdir, "pkg/__pycache__/core.py", "")
        write_file(self.tmpdir, ".git/hooks/pre_commit.py", "")
        write_file(self.tmpdir, "node_modules/dep/index.py", "")
        write_file(self.tmpdir, "README.md", "# readme\n")

        files = SourceScanner().scan(Path(self.tmpdir))

        self.assertEqual(
            [f.path for f in files],
            ["pkg/__init__.py", "pkg/core.py", "pkg/types.pyi"],
        )
        self.assertTrue(all(f.language == "python" for f in files))

    def test_scan_skips_large_files(self):
        """Test the file size limit."""
        write_file(self.tmpdir, "small.py", "x = 1\n")
        write_file(self.tmpdir, "large.py", "x = 1\n" * 100)

        scanner = SourceScanner(IndexConfig(max_file_size=50))
        files = scanner.scan(Path(self.tmpdir))

        self.assertEqual([f.path for f in files], ["small.py"])

    def test_custom_exclude_pattern(self):
        """Test a path-based exclude pattern."""
        write_file(self.tmpdir, "app/main.py", "")
        write_file(self.tmpdir, "app/generated/models.py", "")

        config = IndexConfig(exclude_patterns=["generated"])
        files = SourceScanner(config).scan(Path(self.tmpdir))

        self.assertEqual([f.path for f in files], ["app/main.py"])


class TestIngestionPipeline(unittest.TestCase):
    """Tests for per-file and batch ingestion."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.store = GraphStore.open(os.path.join(self.tmpdir, "g.db"))
        self.resolver = ReferenceResolver(self.store)
        self.pipeline = IngestionPipeline(self.store, IndexConfig(), resolver=self.resolver)

    def tearDown(self):
        self.store.close()
        shutil.rmtree(self.tmpdir)

    def _symbol(self, qualified_name):
        matches = self.store.find_symbols(qualified_pattern=qualified_name)
        self.assertEqual(len(matches), 1, f"no unique symbol {qualified_name}")
        return matches[0]

    def test_local_call_edge(self):
        """Test that a call within one file becomes a calls edge."""
        report = self.pipeline.ingest_file("math_utils.py", MATH_UTILS)

        self.assertEqual(report.added, ["math_utils.py"])
        add = self._symbol("math_utils.add")
        quick = self._symbol("math_utils.quickMath")

        calls = self.store.edges_from(quick.id, EdgeKind.CALLS)
        self.assertEqual(len(calls), 1)
        self.assertEqual(calls[0].target, add.id)
        self.assertEqual(self.store.unresolved_from(quick.id), [])

    def test_body_change_keeps_edge(self):
        """Test that editing a body without moving it keeps ids and edges."""
        self.pipeline.ingest_file("math_utils.py", MATH_UTILS)
        add_before = self._symbol("math_utils.add")

        changed = MATH_UTILS.replace("return a + b", "return b + a")
        report = self.pipeline.ingest_file("math_utils.py", changed)

        self.assertEqual(report.modified, ["math_utils.py"])
        add = self._symbol("math_utils.add")
        quick = self._symbol("math_utils.quickMath")
        self.assertEqual(add.id, add_before.id)

        calls = self.store.edges_from(quick.id, EdgeKind.CALLS)
        self.assertEqual([e.target for e in calls], [add.id])

    def test_unchanged_file_is_skipped(self):
        """Test that re-ingesting identical content writes nothing."""
        self.pipeline.ingest_file("math_utils.py", MATH_UTILS)
        record_before = self.store.get_file("math_utils.py")
        stats_before = self.store.get_statistics()

        report = self.pipeline.ingest_file("math_utils.py", MATH_UTILS)

        self.assertEqual(report.unchanged, ["math_utils.py"])
        self.assertFalse(report.changed)
        self.assertIsNone(report.resolution)
        record = self.store.get_file("math_utils.py")
        self.assertEqual(record.indexed_at, record_before.indexed_at)
        stats = self.store.get_statistics()
        for key in ("nodes", "edges", "unresolved", "files"):
            self.assertEqual(stats[key], stats_before[key])

    def test_force_reprocesses(self):
        """Test that force re-ingests an unchanged file with the same ids."""
        self.pipeline.ingest_file("math_utils.py", MATH_UTILS)
        ids_before = {s.id for s in self.store.symbols_in_file("math_utils.py")}

        report = self.pipeline.ingest_file("math_utils.py", MATH_UTILS, force=True)

        self.assertEqual(report.modified, ["math_utils.py"])
        ids = {s.id for s in self.store.symbols_in_file("math_utils.py")}
        self.assertEqual(ids, ids_before)

    def test_parse_error_does_not_abort_batch(self):
        """Test that one unparseable file is recorded and the rest indexed."""
        sources = [
            SourceFile("broken.py", Path("broken.py"), "python", 0, 0),
            SourceFile("math_utils.py", Path("math_utils.py"), "python", 0, 0),
        ]
        contents = {
            "broken.py": b"def broken(:\n    pass\n",
            "math_utils.py": MATH_UTILS.encode("utf-8"),
        }

        report = self.pipeline.ingest_batch(sources, contents=contents)

        self.assertIn("broken.py", report.errors)
        self.assertEqual(sorted(report.added), ["broken.py", "math_utils.py"])
        record = self.store.get_file("broken.py")
        self.assertTrue(record.has_errors)
        self.assertEqual(record.node_count, 0)
        self.assertEqual(self.store.symbols_in_file("broken.py"), [])
        self.assertEqual(self._symbol("math_utils.add").kind, NodeKind.FUNCTION)

    def test_unsupported_language_is_recorded(self):
        """Test that a file without an adapter is recorded with an error."""
        report = self.pipeline.ingest_file("notes.txt", b"hello", language="text")

        self.assertIn("notes.txt", report.errors)
        self.assertIn("text", report.errors["notes.txt"][0])

    def test_forward_reference_across_files(self):
        """Test that a reference is resolved once its target file arrives."""
        self.pipeline.ingest_file("app.py", '''from helpers import helper


def run():
    return helper()
''')
        run = self._symbol("app.run")
        self.assertEqual(self.store.edges_from(run.id, EdgeKind.CALLS), [])
        self.assertEqual(len(self.store.unresolved_from(run.id)), 1)

        report = self.pipeline.ingest_file("helpers.py", "def helper():\n    return 42\n")

        helper = self._symbol("helpers.helper")
        calls = self.store.edges_from(run.id, EdgeKind.CALLS)
        self.assertEqual([e.target for e in calls], [helper.id])
        self.assertEqual(self.store.unresolved_from(run.id), [])
        self.assertGreaterEqual(report.resolution.resolved, 2)

        imports = self.store.edges_to(helper.id, EdgeKind.IMPORTS)
        self.assertEqual(len(imports), 1)

    def test_delete_requeues_references(self):
        """Test that removing a file turns edges into it back into references."""
        self.pipeline.ingest_file("helpers.py", "def helper():\n    return 42\n")
        self.pipeline.ingest_file("app.py", "from helpers import helper\n\n\ndef run():\n    return helper()\n")
        run = self._symbol("app.run")
        self.assertEqual(len(self.store.edges_from(run.id, EdgeKind.CALLS)), 1)

        report = self.pipeline.remove_file("helpers.py")

        self.assertEqual(report.removed, ["helpers.py"])
        self.assertEqual(report.requeued, 2)
        self.assertIsNone(self.store.get_file("helpers.py"))
        self.assertEqual(self.store.edges_from(run.id, EdgeKind.CALLS), [])
        refs = self.store.unresolved_from(run.id)
        self.assertEqual([(r.reference_name, r.reference_kind) for r in refs],
                         [("helper", EdgeKind.CALLS)])

        self.pipeline.ingest_file("helpers.py", "def helper():\n    return 42\n")
        self.assertEqual(len(self.store.edges_from(run.id, EdgeKind.CALLS)), 1)

    def test_modified_target_is_rebound(self):
        """Test that edges into a changed file are re-bound to its new symbols."""
        self.pipeline.ingest_file("helpers.py", "def helper():\n    return 42\n")
        self.pipeline.ingest_file("app.py", "from helpers import helper\n\n\ndef run():\n    return helper()\n")
        run = self._symbol("app.run")

        self.pipeline.ingest_file("helpers.py", "# moved down\n\ndef helper():\n    return 43\n")

        helper = self._symbol("helpers.helper")
        self.assertEqual(helper.start_line, 3)
        calls = self.store.edges_from(run.id, EdgeKind.CALLS)
        self.assertEqual([e.target for e in calls], [helper.id])

    def test_remove_unknown_file(self):
        """Test removing a file that is not indexed."""
        report = self.pipeline.remove_file("missing.py")
        self.assertEqual(report.removed, [])

    def test_sync_directory(self):
        """Test syncing additions, modifications and deletions from disk."""
        root = Path(self.tmpdir) / "project"
        write_file(root, "math_utils.py", MATH_UTILS)
        write_file(root, "extra.py", "def spare():\n    pass\n")

        first = self.pipeline.sync_directory(root)
        self.assertEqual(sorted(first.added), ["extra.py", "math_utils.py"])

        write_file(root, "math_utils.py", MATH_UTILS + "\n\ndef twice(x):\n    return add(x, x)\n")
        os.remove(root / "extra.py")

        second = self.pipeline.sync_directory(root)
        self.assertEqual(second.modified, ["math_utils.py"])
        self.assertEqual(second.removed, ["extra.py"])
        self.assertEqual(self.store.file_paths(), ["math_utils.py"])

        twice = self._symbol("math_utils.twice")
        self.assertEqual(len(self.store.edges_from(twice.id, EdgeKind.CALLS)), 1)

        third = self.pipeline.sync_directory(root)
        self.assertEqual(third.unchanged, ["math_utils.py"])
        self.assertFalse(third.changed)

    def test_report_to_dict(self):
        """Test batch report serialization."""
        report = self.pipeline.ingest_file("math_utils.py", MATH_UTILS)
        data = report.to_dict()

        self.assertEqual(data["files_added"], 1)
        self.assertEqual(data["nodes"], 3)
        self.assertIn("resolution", data)

    def test_file_symbol_contains_definitions(self):
        """Test containment from the file symbol."""
        self.pipeline.ingest_file("math_utils.py", MATH_UTILS)
        file_symbol = self.store.symbols_in_file("math_utils.py", kinds=[NodeKind.FILE])[0]

        contained = self.store.edges_from(file_symbol.id, EdgeKind.CONTAINS)
        self.assertEqual(len(contained), 2)


if __name__ == "__main__":
    unittest.main()
