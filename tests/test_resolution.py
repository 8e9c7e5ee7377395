"""
Unit tests for import hints and cross-file reference resolution.
"""

import os
import shutil
import tempfile
import unittest

from codegraph.core.config import IndexConfig, ProjectConfig, ResolutionConfig
from codegraph.core.pipeline import PipelineState
from codegraph.graph.entities import CALLABLE_KINDS, EdgeKind, NodeKind, Symbol
from codegraph.ingestion.sync import BatchReport, IngestionPipeline
from codegraph.resolution.hints import (
    ImportHint,
    arity_matches,
    hints_from_imports,
    module_file_paths,
    parse_import_signature,
    path_matches_module,
    signature_arity,
)
from codegraph.resolution.resolver import ReferenceResolver, ResolutionStage, is_compatible
from codegraph.storage.store import GraphStore


class TestImportHints(unittest.TestCase):
    """Tests for import signature parsing and module matching."""

    def test_parse_import_signature(self):
        """Test splitting import signatures."""
        self.assertEqual(parse_import_signature("pkg.mod|export=name"), ("pkg.mod", "name"))
        self.assertEqual(parse_import_signature("pkg|export="), ("pkg", None))
        self.assertIsNone(parse_import_signature("(a, b)"))
        self.assertIsNone(parse_import_signature(None))

    def test_hints_from_imports(self):
        """Test indexing import symbols by local name."""
        imports = [
            Symbol(
                kind=NodeKind.IMPORT,
                name="P",
                qualified_name="app:import:geometry.Point",
                file_path="app.py",
                language="python",
                start_line=1,
                end_line=1,
                signature="geometry|export=Point",
            ),
            Symbol(
                kind=NodeKind.FUNCTION,
                name="run",
                qualified_name="app.run",
                file_path="app.py",
                language="python",
                start_line=3,
                end_line=4,
                signature="()",
            ),
        ]
        hints = hints_from_imports(imports)

        self.assertEqual(list(hints), ["P"])
        self.assertEqual(hints["P"], ImportHint("P", "geometry", "Point"))
        self.assertEqual(hints["P"].lookup_name, "Point")
        self.assertEqual(ImportHint("np", "numpy").lookup_name, "np")

    def test_path_matches_module(self):
        """Test matching file paths against dotted modules."""
        self.assertTrue(path_matches_module("pkg/util.py", "pkg.util"))
        self.assertTrue(path_matches_module("src/pkg/util.py", "pkg.util"))
        self.assertTrue(path_matches_module("pkg/__init__.py", "pkg"))
        self.assertFalse(path_matches_module("pkg/other.py", "pkg.util"))
        self.assertFalse(path_matches_module("mypkg/util.py", "pkg.util"))
        self.assertFalse(path_matches_module("pkg/util.py", ""))

    def test_module_file_paths(self):
        """Test candidate file paths of a module."""
        self.assertEqual(
            module_file_paths("pkg.util"),
            ["pkg/util.py", "pkg/util.pyi", "pkg/util/__init__.py"],
        )

    def test_signature_arity(self):
        """Test argument count ranges of signatures."""
        self.assertEqual(signature_arity("(a, b)"), (2, 2))
        self.assertEqual(signature_arity("(self, a, b=1, *args) -> int"), (1, None))
        self.assertEqual(signature_arity("(cls)"), (0, 0))
        self.assertEqual(signature_arity("(a, *, key=None)"), (1, 2))
        self.assertEqual(signature_arity("(x: Dict[str, int], y=(1, 2))"), (1, 2))
        self.assertEqual(signature_arity("(**kwargs)"), (0, None))
        self.assertIsNone(signature_arity("module|export="))
        self.assertIsNone(signature_arity(None))

    def test_arity_matches(self):
        """Test call arity against signatures."""
        self.assertTrue(arity_matches("(a, b)", 2))
        self.assertFalse(arity_matches("(a, b)", 3))
        self.assertTrue(arity_matches("(a, b=1)", 1))
        self.assertTrue(arity_matches("(*args)", 7))
        self.assertFalse(arity_matches("(a, b)", None))
        self.assertFalse(arity_matches(None, 1))


class TestCompatibility(unittest.TestCase):
    """Tests for reference/target kind compatibility."""

    def test_calls(self):
        """Test targets of calls."""
        self.assertTrue(is_compatible(EdgeKind.CALLS, NodeKind.FUNCTION))
        self.assertTrue(is_compatible(EdgeKind.CALLS, NodeKind.CLASS))
        self.assertFalse(is_compatible(EdgeKind.CALLS, NodeKind.VARIABLE))
        self.assertFalse(is_compatible(EdgeKind.CALLS, NodeKind.IMPORT))

    def test_calls_cover_callables(self):
        """Test that every callable kind and class-like kind can be called."""
        for kind in CALLABLE_KINDS | {NodeKind.STRUCT, NodeKind.ENUM}:
            self.assertTrue(is_compatible(EdgeKind.CALLS, kind), kind)
        self.assertFalse(is_compatible(EdgeKind.CALLS, NodeKind.INTERFACE))

    def test_extends(self):
        """Test targets of inheritance."""
        self.assertTrue(is_compatible(EdgeKind.EXTENDS, NodeKind.PROTOCOL))
        self.assertFalse(is_compatible(EdgeKind.EXTENDS, NodeKind.FUNCTION))

    def test_unlisted_kind(self):
        """Test that other references accept any definition."""
        self.assertTrue(is_compatible(EdgeKind.IMPORTS, NodeKind.FILE))
        self.assertTrue(is_compatible(EdgeKind.REFERENCES, NodeKind.VARIABLE))
        self.assertFalse(is_compatible(EdgeKind.IMPORTS, NodeKind.IMPORT))


class TestReferenceResolver(unittest.TestCase):
    """Tests for candidate scoring and resolution passes."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.store = GraphStore.open(os.path.join(self.tmpdir, "g.db"))
        self.resolver = ReferenceResolver(self.store, ResolutionConfig())
        # Resolution runs explicitly in these tests
        self.pipeline = IngestionPipeline(self.store, IndexConfig())

    def tearDown(self):
        self.store.close()
        shutil.rmtree(self.tmpdir)

    def _ingest(self, files):
        for path, content in files.items():
            self.pipeline.ingest_file(path, content)

    def _symbol(self, qualified_name):
        matches = self.store.find_symbols(qualified_pattern=qualified_name)
        self.assertEqual(len(matches), 1, f"no unique symbol {qualified_name}")
        return matches[0]

    def _call_targets(self, symbol):
        return [
            e.target for e in self.store.edges_from(symbol.id)
            if e.kind in (EdgeKind.CALLS, EdgeKind.INSTANTIATES)
        ]

    def test_same_directory_preferred(self):
        """Test that a definition next to the caller wins."""
        self._ingest({
            "svc/util.py": "def helper(x):\n    return x\n",
            "lib/util.py": "def helper(x):\n    return -x\n",
            "svc/main.py": "def run():\n    return helper(1)\n",
        })

        report = self.resolver.resolve_all()

        run = self._symbol("svc.main.run")
        self.assertEqual(self._call_targets(run), [self._symbol("svc.util.helper").id])
        self.assertEqual(report.resolved, 1)

    def test_import_hint_preferred(self):
        """Test that the imported module wins over an equally placed one."""
        self._ingest({
            "alpha/tasks.py": "def process(item):\n    return item\n",
            "beta/tasks.py": "def process(item):\n    return None\n",
            "main.py": "from alpha.tasks import process\n\n\ndef run(x):\n    return process(x)\n",
        })

        self.resolver.resolve_all()

        run = self._symbol("main.run")
        alpha = self._symbol("alpha.tasks.process")
        self.assertEqual(self._call_targets(run), [alpha.id])
        self.assertEqual(len(self.store.edges_to(alpha.id, EdgeKind.IMPORTS)), 1)
        self.assertEqual(self.store.fetch_unresolved(), [])

    def test_import_alias(self):
        """Test that an aliased import is looked up by its exported name."""
        self._ingest({
            "geometry/point.py": "class Point:\n    pass\n",
            "app.py": "from geometry.point import Point as P\n\n\ndef origin():\n    return P()\n",
        })

        self.resolver.resolve_all()

        origin = self._symbol("app.origin")
        point = self._symbol("geometry.point.Point")
        edges = self.store.edges_from(origin.id, EdgeKind.INSTANTIATES)
        self.assertEqual([e.target for e in edges], [point.id])

    def test_module_import_binds_to_file(self):
        """Test that a whole-module import resolves to the file symbol."""
        self._ingest({
            "geometry/point.py": "ORIGIN = (0, 0)\n",
            "app.py": "import geometry.point\n",
        })

        self.resolver.resolve_all()

        file_symbol = self._symbol("geometry/point.py")
        self.assertEqual(file_symbol.kind, NodeKind.FILE)
        imports = self.store.edges_to(file_symbol.id, EdgeKind.IMPORTS)
        self.assertEqual(len(imports), 1)

    def test_arity_breaks_tie(self):
        """Test that a matching argument count decides between candidates."""
        self._ingest({
            "one/ops.py": "def combine(a):\n    return a\n",
            "two/ops.py": "def combine(a, b, c):\n    return a + b + c\n",
            "app.py": "def run():\n    return combine(1, 2, 3)\n",
        })

        self.resolver.resolve_all()

        run = self._symbol("app.run")
        edges = self.store.edges_from(run.id, EdgeKind.CALLS)
        self.assertEqual([e.target for e in edges], [self._symbol("two.ops.combine").id])
        self.assertEqual(edges[0].metadata["arity"], 3)
        self.assertEqual(edges[0].metadata["resolved_by"], "resolver")

    def test_ambiguous_keeps_candidates(self):
        """Test that tied candidates are stored instead of guessed."""
        self._ingest({
            "alpha/tasks.py": "def process(item):\n    return item\n",
            "beta/tasks.py": "def process(item):\n    return None\n",
            "main.py": "def run(x):\n    return process(x)\n",
        })

        report = self.resolver.resolve_all()

        self.assertEqual(report.ambiguous, 1)
        self.assertEqual(report.resolved, 0)
        run = self._symbol("main.run")
        self.assertEqual(self._call_targets(run), [])

        refs = self.store.unresolved_from(run.id)
        self.assertEqual(len(refs), 1)
        self.assertEqual(
            [c.node_id for c in refs[0].candidates],
            [self._symbol("alpha.tasks.process").id, self._symbol("beta.tasks.process").id],
        )
        self.assertEqual(refs[0].candidates[0].score, refs[0].candidates[1].score)

    def test_resolution_is_idempotent(self):
        """Test that a second pass changes nothing."""
        self._ingest({
            "alpha/tasks.py": "def process(item):\n    return item\n",
            "beta/tasks.py": "def process(item):\n    return None\n",
            "main.py": "def run(x):\n    return process(x)\n\n\ndef go():\n    return other()\n",
            "svc/other.py": "def other():\n    pass\n",
        })

        first = self.resolver.resolve_all()
        stats = self.store.get_statistics()
        refs = [r.to_dict() for r in self.store.fetch_unresolved()]

        second = self.resolver.resolve_all()

        self.assertEqual(first.resolved, 1)
        self.assertEqual(second.resolved, 0)
        self.assertEqual(self.store.get_statistics()["edges"], stats["edges"])
        self.assertEqual([r.to_dict() for r in self.store.fetch_unresolved()], refs)

    def test_rank_candidates_is_deterministic(self):
        """Test candidate order for equal scores."""
        self._ingest({
            "beta/tasks.py": "def process(item):\n    return None\n",
            "alpha/tasks.py": "def process(item):\n    return item\n",
            "main.py": "def run(x):\n    return process(x)\n",
        })
        ref = self.store.fetch_unresolved()[0]

        first = self.resolver.rank_candidates(ref)
        second = self.resolver.rank_candidates(ref)

        self.assertEqual([c.to_dict() for c in first], [c.to_dict() for c in second])
        self.assertEqual(first[0].node_id, self._symbol("alpha.tasks.process").id)

    def test_unmatched_reference_stays(self):
        """Test that a reference with no candidate remains unresolved."""
        self._ingest({"main.py": "def run():\n    return nowhere()\n"})

        report = self.resolver.resolve_all()

        self.assertEqual(report.unmatched, 1)
        self.assertEqual(len(self.store.fetch_unresolved()), 1)

    def test_inheritance_across_files(self):
        """Test that a base class in another file becomes an extends edge."""
        self._ingest({
            "models/base.py": "class Model:\n    pass\n",
            "models/user.py": "from models.base import Model\n\n\nclass User(Model):\n    pass\n",
        })

        self.resolver.resolve_all()

        user = self._symbol("models.user.User")
        edges = self.store.edges_from(user.id, EdgeKind.EXTENDS)
        self.assertEqual([e.target for e in edges], [self._symbol("models.base.Model").id])

    def test_small_batches(self):
        """Test that resolution pages through references in chunks."""
        resolver = ReferenceResolver(self.store, ResolutionConfig(batch_size=1))
        self._ingest({
            "lib.py": "def a():\n    pass\n\n\ndef b():\n    pass\n",
            "app.py": "def run():\n    a()\n    b()\n",
        })

        report = resolver.resolve_all()

        self.assertEqual(report.processed, 2)
        self.assertEqual(report.resolved, 2)
        self.assertEqual(self.store.fetch_unresolved(), [])


class TestResolutionStage(unittest.TestCase):
    """Tests for the resolution pipeline stage."""

    def setUp(self):
        self.stage = ResolutionStage(ProjectConfig())

    def test_runs_after_changes(self):
        """Test that the stage runs only when ingestion changed something."""
        state = PipelineState(run_id="r", project_root=".")
        self.assertFalse(self.stage.should_run(state))

        state.data["ingest"] = BatchReport(unchanged=["a.py"])
        self.assertFalse(self.stage.should_run(state))

        state.data["ingest"] = BatchReport(added=["a.py"])
        self.assertTrue(self.stage.should_run(state))

        state.data["ingest"] = BatchReport(requeued=1)
        self.assertTrue(self.stage.should_run(state))

    def test_forced_run(self):
        """Test that a forced index always resolves."""
        state = PipelineState(run_id="r", project_root=".", force=True)
        state.data["ingest"] = BatchReport()
        self.assertTrue(self.stage.should_run(state))
        self.assertEqual(self.stage.dependencies, ["ingest"])


if __name__ == "__main__":
    unittest.main()
