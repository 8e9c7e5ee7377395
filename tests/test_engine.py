"""
Integration tests for the engine facade and the command-line interface.
"""

import os
import re
import shutil
import tempfile
import textwrap
import unittest
import zlib
from pathlib import Path
from unittest import mock

import numpy as np
from click.testing import CliRunner

from codegraph.cli import cli
from codegraph.core.config import Config, ProjectConfig
from codegraph.core.exceptions import StoreUnavailableError
from codegraph.embedding.provider import EmbeddingProvider
from codegraph.engine import CodeGraphEngine

FILES = {
    "math_utils.py": '''
        def add(a, b):
            """Add two numbers."""
            return a + b


        def quickMath(x):
            return add(x, 1)
    ''',
    "report.py": '''
        from math_utils import quickMath


        def summarize(values):
            return [quickMath(v) for v in values]
    ''',
}


class WordProvider(EmbeddingProvider):
    """Bag-of-words vectors from word checksums."""

    @property
    def model_name(self):
        return "words"

    @property
    def dimension(self):
        return 256

    def embed(self, text):
        vector = np.zeros(self.dimension, dtype=np.float32)
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            vector[zlib.crc32(word.encode("utf-8")) % self.dimension] += 1.0
        return vector


def write_project(root):
    for relative, content in FILES.items():
        path = Path(root) / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content).lstrip("\n"))


class TestCodeGraphEngine(unittest.TestCase):
    """Tests for the engine lifecycle, indexing and queries."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.root = Path(self.tmpdir) / "project"
        self.root.mkdir()
        write_project(self.root)
        self.config = ProjectConfig()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _symbol(self, engine, qualified_name):
        matches = engine.find_symbols(qualified_pattern=qualified_name)
        self.assertEqual(len(matches), 1)
        return matches[0]

    def test_init_and_open(self):
        """Test project initialization and reopening."""
        self.assertFalse(CodeGraphEngine.is_initialized(str(self.root), self.config))

        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            self.assertEqual(engine.data_dir, self.root.resolve() / ".codegraph")
            self.assertTrue((engine.data_dir / "config.json").exists())

        self.assertTrue(CodeGraphEngine.is_initialized(str(self.root), self.config))
        with CodeGraphEngine.open(str(self.root), self.config) as engine:
            self.assertEqual(engine.stats()["files"], 0)

    def test_open_uninitialized(self):
        """Test that opening a project without a graph fails."""
        with self.assertRaises(StoreUnavailableError):
            CodeGraphEngine.open(str(self.root), self.config)

    def test_index_all(self):
        """Test a full index of the project."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            report = engine.index_all()

            self.assertEqual(sorted(report.added), ["math_utils.py", "report.py"])
            self.assertIsNotNone(report.resolution)
            self.assertTrue((engine.data_dir / "last_run.json").exists())

            quick = self._symbol(engine, "math_utils.quickMath")
            callers = [n.symbol.qualified_name for n in engine.callers(quick.id)]
            self.assertEqual(callers, ["report.summarize"])

            stats = engine.stats()
            self.assertEqual(stats["files"], 2)
            self.assertEqual(stats["unresolved"], 0)
            self.assertIsNone(stats["embedding_model"])

    def test_force_rebuild(self):
        """Test that a forced index rebuilds the graph."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            engine.index_all()
            ids = {s.id for s in engine.find_symbols(name_pattern="*")}

            report = engine.index_all(force=True)

            self.assertEqual(sorted(report.added), ["math_utils.py", "report.py"])
            self.assertEqual({s.id for s in engine.find_symbols(name_pattern="*")}, ids)

    def test_sync_picks_up_changes(self):
        """Test incremental sync after edits on disk."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            engine.index_all()
            (self.root / "report.py").unlink()
            (self.root / "extra.py").write_text(
                "from math_utils import add\n\n\ndef double(x):\n    return add(x, x)\n"
            )

            report = engine.sync()

            self.assertEqual(report.added, ["extra.py"])
            self.assertEqual(report.removed, ["report.py"])
            add = self._symbol(engine, "math_utils.add")
            callers = {n.symbol.qualified_name for n in engine.callers(add.id)}
            self.assertEqual(callers, {"math_utils.quickMath", "extra.double"})

    def test_impact_and_context(self):
        """Test impact and context queries through the engine."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            engine.index_all()
            add = self._symbol(engine, "math_utils.add")

            impact = {e.symbol.qualified_name: e.depth for e in engine.impact(add.id, 2)}
            self.assertEqual(impact["math_utils.quickMath"], 1)
            self.assertEqual(impact["report.summarize"], 2)

            context = engine.build_context(query="add numbers")
            self.assertEqual(context.nodes[0].symbol.id, add.id)
            self.assertTrue(context.code_blocks)

            detail = engine.node_detail(add.id)
            self.assertEqual(detail.ancestors[0].qualified_name, "math_utils.py")

    def test_ingest_and_remove_file(self):
        """Test single-file updates from memory."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            engine.index_all()

            engine.ingest_file("virtual.py", b"def ghost():\n    return add(1, 2)\n")
            ghost = self._symbol(engine, "virtual.ghost")
            self.assertEqual(len(engine.callees(ghost.id)), 1)

            report = engine.remove_file("virtual.py")
            self.assertEqual(report.removed, ["virtual.py"])
            self.assertEqual(engine.find_symbols(qualified_pattern="virtual.*"), [])

    def test_embeddings_during_index(self):
        """Test that a provider enables the embedding stage and semantic search."""
        with CodeGraphEngine.init(str(self.root), self.config, provider=WordProvider()) as engine:
            engine.index_all()

            self.assertGreater(engine.stats()["vectors"], 0)
            self.assertEqual(engine.stats()["embedding_model"], "words")

            hits = engine.search("quickMath", mode="semantic", limit=3)
            self.assertTrue(hits)
            self.assertEqual(engine.embed_symbols().embedded, 0)

    def test_embed_on_demand(self):
        """Test embedding after indexing and purging vectors."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            engine.index_all()
            self.assertEqual(engine.stats()["vectors"], 0)

            report = engine.embed_symbols(provider=WordProvider())

            self.assertGreater(report.embedded, 0)
            self.assertEqual(engine.searcher.provider.model_name, "words")
            self.assertEqual(engine.purge_embeddings(except_model="words"), 0)
            self.assertEqual(engine.purge_embeddings(), report.embedded)

    def test_memories(self):
        """Test that memories live in the data directory."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            engine.memory.write("decisions", "Use SQLite.")
            self.assertTrue((engine.data_dir / "memories" / "decisions.md").exists())

    def test_init_seeds_memories(self):
        """Test that init writes template memories once."""
        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            names = {m.name for m in engine.memory.list()}
            self.assertIn("project_overview", names)
            self.assertIn("style_conventions", names)
            self.assertIn("suggested_commands", names)
            self.assertIn("# project", engine.memory.read("project_overview"))
            engine.memory.delete("style_conventions")

        with CodeGraphEngine.init(str(self.root), self.config) as engine:
            self.assertFalse(engine.memory.exists("style_conventions"))


class TestCli(unittest.TestCase):
    """Tests for the command-line interface."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.root = Path(self.tmpdir) / "project"
        self.root.mkdir()
        write_project(self.root)
        self.runner = CliRunner()
        self.env = mock.patch.dict(os.environ, {"CODEGRAPH_EMBEDDINGS": "false"})
        self.env.start()
        Config.reset()

    def tearDown(self):
        self.env.stop()
        Config.reset()
        shutil.rmtree(self.tmpdir)

    def invoke(self, *args):
        return self.runner.invoke(cli, ["--root", str(self.root), *args], obj={})

    def test_index_and_query(self):
        """Test init, index and query commands end to end."""
        result = self.invoke("init")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Initialized code graph", result.output)

        result = self.invoke("index")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("files_added: 2", result.output)

        result = self.invoke("callers", "add")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Callers of math_utils.add:", result.output)
        self.assertIn("math_utils.quickMath", result.output)

        result = self.invoke("impact", "math_utils.add", "--depth", "2")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("report.summarize", result.output)

        result = self.invoke("search", "quickMath", "--mode", "lexical")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("math_utils.quickMath", result.output)

        result = self.invoke("status")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("nodes:", result.output)

    def test_uninitialized_project(self):
        """Test that commands fail cleanly before init."""
        result = self.invoke("status")

        self.assertEqual(result.exit_code, 1)

    def test_unknown_symbol(self):
        """Test a query for a symbol that does not exist."""
        self.invoke("init")
        self.invoke("index")

        result = self.invoke("callers", "nothing_here")

        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
