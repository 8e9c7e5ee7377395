"""
Unit tests for core module components.
"""

import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from codegraph.core.config import (
    Config,
    ContextConfig,
    IndexConfig,
    ProjectConfig,
    ResolutionConfig,
    SearchConfig,
    TraversalConfig,
)
from codegraph.core.exceptions import (
    CodeGraphError,
    GraphIntegrityError,
    LanguageNotSupportedError,
    MemoryNotFoundError,
    QueryError,
    StorageError,
    StoreUnavailableError,
)
from codegraph.core.pipeline import (
    Pipeline,
    PipelineStage,
    PipelineState,
    StageStatus,
)


class TestConfig(unittest.TestCase):
    """Tests for configuration management."""

    def tearDown(self):
        Config.reset()

    def test_default_config_creation(self):
        """Test that default configuration is created correctly."""
        config = Config.reset()

        self.assertIsInstance(config, ProjectConfig)
        self.assertIsInstance(config.index, IndexConfig)
        self.assertIsInstance(config.resolution, ResolutionConfig)
        self.assertFalse(config.embedding.enabled)

    def test_index_config_defaults(self):
        """Test index configuration defaults."""
        config = IndexConfig()

        self.assertIn("*.py", config.include_patterns)
        self.assertIn("__pycache__", config.exclude_patterns)
        self.assertIn(".git", config.exclude_patterns)
        self.assertIn(".codegraph", config.exclude_patterns)
        self.assertEqual(config.max_file_size, 1024 * 1024)
        self.assertEqual(config.batch_size, 50)

    def test_resolution_config_weights(self):
        """Test resolution scoring defaults."""
        config = ResolutionConfig()

        self.assertEqual(config.margin, 10.0)
        self.assertEqual(config.top_k, 5)
        self.assertEqual(config.same_file_weight, 100.0)
        self.assertEqual(config.import_hint_weight, 50.0)
        self.assertEqual(config.same_directory_weight, 40.0)
        self.assertEqual(config.arity_match_weight, 15.0)

    def test_search_config_weights(self):
        """Test hybrid search weights add up to one."""
        config = SearchConfig()

        self.assertAlmostEqual(config.lexical_weight + config.semantic_weight, 1.0)

    def test_traversal_and_context_defaults(self):
        """Test traversal and context budgets."""
        self.assertEqual(TraversalConfig().max_impact_depth, 5)
        self.assertIn("calls", TraversalConfig().impact_edge_kinds)
        self.assertNotIn("contains", TraversalConfig().impact_edge_kinds)
        self.assertEqual(ContextConfig().max_nodes, 20)

    def test_config_save_and_load(self):
        """Test configuration serialization and deserialization."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config_path = Path(tmpdir) / "config.json"

            config = ProjectConfig()
            config.resolution.margin = 25.0
            config.index.exclude_patterns = ["build"]
            Config.save_to_file(str(config_path), config)

            self.assertTrue(config_path.exists())
            with open(config_path) as f:
                data = json.load(f)
            self.assertIn("index", data)
            self.assertIn("resolution", data)
            self.assertIn("storage", data)

            loaded = Config.load_from_file(str(config_path))
            self.assertEqual(loaded.resolution.margin, 25.0)
            self.assertEqual(loaded.index.exclude_patterns, ["build"])
            self.assertEqual(loaded.search.default_limit, 20)

    def test_load_missing_file(self):
        """Test loading a configuration file that does not exist."""
        with self.assertRaises(FileNotFoundError):
            Config.load_from_file("/nonexistent/config.json")

    def test_for_project_without_config_file(self):
        """Test that a project without a config file gets a copy of the current config."""
        Config.get().resolution.margin = 30.0
        with tempfile.TemporaryDirectory() as tmpdir:
            config = Config.for_project(tmpdir)

        self.assertIsNot(config, Config.get())
        self.assertEqual(config.resolution.margin, 30.0)

    def test_for_project_applies_env_over_file(self):
        """Test that environment overrides win over a project's config file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            config = ProjectConfig()
            config.resolution.margin = 25.0
            Config.save_to_file(str(Path(tmpdir) / ".codegraph" / "config.json"), config)

            env = {"CODEGRAPH_EMBEDDINGS": "1", "CODEGRAPH_MODEL_NAME": "my/model"}
            with mock.patch.dict(os.environ, env), mock.patch(
                "codegraph.core.config.load_dotenv"
            ):
                Config.load_from_env()
                loaded = Config.for_project(tmpdir)

        self.assertTrue(loaded.embedding.enabled)
        self.assertEqual(loaded.embedding.model_name, "my/model")
        self.assertEqual(loaded.resolution.margin, 25.0)

    def test_for_project_leaves_global_config(self):
        """Test that one project's config file does not leak into another project."""
        with tempfile.TemporaryDirectory() as tmpdir:
            first = Path(tmpdir) / "a"
            second = Path(tmpdir) / "b"
            second.mkdir()
            config = ProjectConfig()
            config.resolution.margin = 99.0
            Config.save_to_file(str(first / ".codegraph" / "config.json"), config)

            self.assertEqual(Config.for_project(str(first)).resolution.margin, 99.0)
            self.assertEqual(Config.for_project(str(second)).resolution.margin, 10.0)
            self.assertEqual(Config.get().resolution.margin, 10.0)
    def test_load_from_env(self):
        """Test environment variable overrides."""
        env = {
            "CODEGRAPH_MODEL_NAME": "test/model",
            "CODEGRAPH_EMBEDDINGS": "true",
            "CODEGRAPH_RESOLUTION_MARGIN": "12.5",
            "CODEGRAPH_MAX_FILE_SIZE": "2048",
        }
        with mock.patch.dict(os.environ, env), mock.patch(
            "codegraph.core.config.load_dotenv"
        ):
            config = Config.load_from_env()

        self.assertEqual(config.embedding.model_name, "test/model")
        self.assertTrue(config.embedding.enabled)
        self.assertEqual(config.resolution.margin, 12.5)
        self.assertEqual(config.index.max_file_size, 2048)


class _RecordingStage(PipelineStage):
    """Stage that records its execution order."""

    def __init__(self, config, name, calls, deps=None, fail=None, run=True):
        self._name = name
        self._calls = calls
        self._deps = deps or []
        self._fail = fail
        self._run = run
        super().__init__(config)

    @property
    def name(self):
        return self._name

    @property
    def dependencies(self):
        return self._deps

    def should_run(self, state):
        return self._run

    def execute(self, state):
        self._calls.append(self._name)
        if self._fail is not None:
            raise self._fail
        return {"stage": self._name}, {"ok": True}


class TestPipeline(unittest.TestCase):
    """Tests for pipeline orchestration."""

    def setUp(self):
        self.config = ProjectConfig()
        self.calls = []

    def _pipeline(self, *stages):
        pipeline = Pipeline(self.config)
        for stage in stages:
            pipeline.register_stage(stage)
        pipeline.set_execution_order([s.name for s in stages])
        return pipeline

    def test_stages_run_in_order(self):
        """Test that stages run in the configured order."""
        pipeline = self._pipeline(
            _RecordingStage(self.config, "scan", self.calls),
            _RecordingStage(self.config, "ingest", self.calls, deps=["scan"]),
        )
        state = pipeline.run("/project", store=None)

        self.assertEqual(self.calls, ["scan", "ingest"])
        self.assertTrue(state.is_stage_completed("ingest"))
        self.assertEqual(state.data["scan"], {"stage": "scan"})
        self.assertIsNone(state.failed_stage)

    def test_failure_stops_pipeline(self):
        """Test that a failing stage stops later stages."""
        error = QueryError("boom")
        pipeline = self._pipeline(
            _RecordingStage(self.config, "scan", self.calls, fail=error),
            _RecordingStage(self.config, "ingest", self.calls, deps=["scan"]),
        )
        state = pipeline.run("/project", store=None)

        self.assertEqual(self.calls, ["scan"])
        self.assertEqual(state.get_stage_status("scan"), StageStatus.FAILED)
        self.assertIs(state.failed_stage.exception, error)
        self.assertEqual(state.get_stage_status("ingest"), StageStatus.PENDING)

    def test_unexpected_exception_is_recorded(self):
        """Test that non-engine exceptions are recorded as failures."""
        pipeline = self._pipeline(
            _RecordingStage(self.config, "scan", self.calls, fail=KeyError("x")),
        )
        state = pipeline.run("/project", store=None)

        self.assertIsInstance(state.failed_stage.exception, KeyError)

    def test_skipped_stage(self):
        """Test that a stage that does not apply is skipped."""
        pipeline = self._pipeline(
            _RecordingStage(self.config, "scan", self.calls),
            _RecordingStage(self.config, "embed", self.calls, run=False),
        )
        state = pipeline.run("/project", store=None)

        self.assertEqual(self.calls, ["scan"])
        self.assertEqual(state.get_stage_status("embed"), StageStatus.SKIPPED)

    def test_unknown_stage_in_order(self):
        """Test that ordering an unregistered stage fails."""
        pipeline = Pipeline(self.config)
        with self.assertRaises(ValueError):
            pipeline.set_execution_order(["missing"])

    def test_state_save(self):
        """Test state persistence."""
        with tempfile.TemporaryDirectory() as tmpdir:
            state = PipelineState(run_id="abc", project_root="/project", force=True)
            state.record_stage_start("scan")
            state.record_stage_completion("scan", {}, {"files_discovered": 3})

            path = Path(tmpdir) / "run" / "last_run.json"
            state.save(path)

            with open(path) as f:
                data = json.load(f)
            self.assertEqual(data["run_id"], "abc")
            self.assertTrue(data["force"])
            self.assertEqual(data["stage_results"]["scan"]["status"], "completed")
            self.assertEqual(
                data["stage_results"]["scan"]["metrics"], {"files_discovered": 3}
            )


class TestExceptions(unittest.TestCase):
    """Tests for custom exceptions."""

    def test_base_error(self):
        """Test base error formatting."""
        error = CodeGraphError("Test error", stage="test", details={"key": "value"})

        self.assertEqual(str(error), "[test] Test error")
        self.assertEqual(error.details, {"key": "value"})

    def test_base_error_without_stage(self):
        """Test base error without a stage."""
        self.assertEqual(str(CodeGraphError("plain")), "plain")

    def test_storage_hierarchy(self):
        """Test storage error subclasses."""
        error = StoreUnavailableError("/tmp/g.db", "corrupt")

        self.assertIsInstance(error, StorageError)
        self.assertEqual(error.stage, "Storage")
        self.assertIn("corrupt", str(error))
        self.assertEqual(error.details["path"], "/tmp/g.db")
        self.assertTrue(issubclass(GraphIntegrityError, StorageError))

    def test_language_not_supported_error(self):
        """Test language not supported error."""
        error = LanguageNotSupportedError("cobol")

        self.assertIn("cobol", str(error))
        self.assertEqual(error.details["language"], "cobol")

    def test_memory_not_found_error(self):
        """Test memory not found error."""
        error = MemoryNotFoundError("notes")

        self.assertEqual(error.stage, "Memory")
        self.assertEqual(error.details["name"], "notes")


if __name__ == "__main__":
    unittest.main()
