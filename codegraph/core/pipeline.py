"""
Pipeline orchestration for the Code Graph Engine.

Implements a state-machine based pipeline that coordinates the
scan, ingest, resolve and embed stages of a full index run with
clear input/output contracts and graceful failure handling.
"""

import logging
import json
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from codegraph.core.config import ProjectConfig, Config
from codegraph.core.exceptions import CodeGraphError

logger = logging.getLogger(__name__)


class StageStatus(Enum):
    """Status of a pipeline stage."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StageResult:
    """Result from a pipeline stage execution."""

    stage_name: str
    status: StageStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    output: Any = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)
    metrics: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_seconds(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "stage_name": self.stage_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error": self.error,
            "metrics": self.metrics,
        }


@dataclass
class PipelineState:
    """
    Maintains the complete state of one index run.

    The graph store handle travels with the state so every stage
    operates on the same explicitly passed store.
    """

    run_id: str
    project_root: str
    store: Any = field(default=None, repr=False)
    force: bool = False
    created_at: datetime = field(default_factory=datetime.now)
    stage_results: Dict[str, StageResult] = field(default_factory=dict)
    current_stage: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def get_stage_status(self, stage_name: str) -> StageStatus:
        """Get the status of a specific stage."""
        if stage_name in self.stage_results:
            return self.stage_results[stage_name].status
        return StageStatus.PENDING

    def is_stage_completed(self, stage_name: str) -> bool:
        """Check if a stage has completed successfully."""
        return self.get_stage_status(stage_name) == StageStatus.COMPLETED

    @property
    def failed_stage(self) -> Optional[StageResult]:
        """The first stage that failed, if any."""
        for result in self.stage_results.values():
            if result.status == StageStatus.FAILED:
                return result
        return None

    def record_stage_start(self, stage_name: str) -> None:
        """Record that a stage has started."""
        self.current_stage = stage_name
        self.stage_results[stage_name] = StageResult(
            stage_name=stage_name,
            status=StageStatus.RUNNING,
            started_at=datetime.now(),
        )

    def record_stage_completion(
        self, stage_name: str, output: Any, metrics: Dict[str, Any] = None
    ) -> None:
        """Record that a stage has completed successfully."""
        if stage_name in self.stage_results:
            result = self.stage_results[stage_name]
            result.status = StageStatus.COMPLETED
            result.completed_at = datetime.now()
            result.output = output
            result.metrics = metrics or {}

    def record_stage_skipped(self, stage_name: str, reason: str) -> None:
        """Record that a stage was skipped."""
        self.stage_results[stage_name] = StageResult(
            stage_name=stage_name,
            status=StageStatus.SKIPPED,
            started_at=datetime.now(),
            completed_at=datetime.now(),
            metrics={"reason": reason},
        )

    def record_stage_failure(
        self, stage_name: str, error: BaseException
    ) -> None:
        """Record that a stage has failed."""
        if stage_name in self.stage_results:
            result = self.stage_results[stage_name]
            result.status = StageStatus.FAILED
            result.completed_at = datetime.now()
            result.error = str(error)
            result.exception = error

    def to_dict(self) -> Dict[str, Any]:
        """Convert state to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "project_root": self.project_root,
            "force": self.force,
            "created_at": self.created_at.isoformat(),
            "current_stage": self.current_stage,
            "stage_results": {
                name: result.to_dict()
                for name, result in self.stage_results.items()
            },
        }

    def save(self, path: Path) -> None:
        """Save a summary of the run to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)
        logger.debug(f"Pipeline state saved to {path}")


class PipelineStage(ABC):
    """
    Abstract base class for pipeline stages.

    Each stage must implement the execute method and define its
    input/output contracts.
    """

    def __init__(self, config: ProjectConfig):
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{self.name}")

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this stage."""
        pass

    @property
    def dependencies(self) -> List[str]:
        """List of stage names that must complete before this stage."""
        return []

    @abstractmethod
    def execute(self, state: PipelineState) -> Tuple[Any, Dict[str, Any]]:
        """
        Execute the stage processing.

        Args:
            state: Current pipeline state with data from previous stages.

        Returns:
            Tuple of (output_data, metrics_dict).

        Raises:
            CodeGraphError: If stage execution fails.
        """
        pass

    def should_run(self, state: PipelineState) -> bool:
        """Whether the stage applies to this run."""
        return True

    def validate_inputs(self, state: PipelineState) -> bool:
        """
        Validate that required inputs are available.

        Args:
            state: Current pipeline state.

        Returns:
            True if inputs are valid, False otherwise.
        """
        for dep in self.dependencies:
            if not state.is_stage_completed(dep):
                self.logger.error(f"Dependency not met: {dep}")
                return False
        return True


class Pipeline:
    """
    Orchestrator for full index runs.

    Coordinates the execution of all stages in the correct order
    and stops at the first failing stage.
    """

    def __init__(self, config: ProjectConfig = None):
        self.config = config or Config.get()
        self.stages: Dict[str, PipelineStage] = {}
        self.execution_order: List[str] = []
        self.logger = logging.getLogger(__name__)

    def register_stage(self, stage: PipelineStage) -> None:
        """Register a stage with the pipeline."""
        self.stages[stage.name] = stage
        self.logger.debug(f"Registered stage: {stage.name}")

    def set_execution_order(self, order: List[str]) -> None:
        """
        Set the order in which stages should execute.

        Args:
            order: List of stage names in execution order.

        Raises:
            ValueError: If a stage in the order is not registered.
        """
        for stage_name in order:
            if stage_name not in self.stages:
                raise ValueError(f"Unknown stage: {stage_name}")
        self.execution_order = order

    def run(
        self,
        project_root: str,
        store: Any,
        force: bool = False,
    ) -> PipelineState:
        """
        Run every registered stage against a project.

        Args:
            project_root: Root directory of the indexed project.
            store: Open graph store the stages write to.
            force: Rebuild the graph from scratch.

        Returns:
            Final pipeline state with all results.
        """
        state = PipelineState(
            run_id=str(uuid.uuid4())[:8],
            project_root=str(project_root),
            store=store,
            force=force,
        )

        self.logger.info(f"Starting index run {state.run_id} for {project_root}")

        for stage_name in self.execution_order:
            stage = self.stages[stage_name]

            if not stage.should_run(state):
                state.record_stage_skipped(stage_name, "not applicable")
                self.logger.debug(f"Skipping stage: {stage_name}")
                continue

            if not stage.validate_inputs(state):
                self.logger.error(f"Stage {stage_name} dependencies not met")
                break

            self.logger.debug(f"Executing stage: {stage_name}")
            state.record_stage_start(stage_name)

            try:
                output, metrics = stage.execute(state)
                state.record_stage_completion(stage_name, output, metrics)
                state.data[stage_name] = output
                self.logger.info(f"Stage {stage_name} completed: {metrics}")

            except CodeGraphError as e:
                state.record_stage_failure(stage_name, e)
                self.logger.error(f"Stage {stage_name} failed: {e}")
                break

            except Exception as e:
                state.record_stage_failure(stage_name, e)
                self.logger.exception(f"Unexpected error in stage {stage_name}")
                break

        return state
