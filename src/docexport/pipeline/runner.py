"""
docexport - conversion pipeline runner.

File: src/docexport/pipeline/runner.py

Purpose
- Drive one export target through its ordered stages and publish the final
  artifact.

Functional requirements
- State machine ``idle -> running(i) -> ... -> done`` or ``failed(i)``; no
  stage runs after a failure.
- The target's output path is written only after every stage succeeded, in a
  single replace step.
- Every scratch directory acquired during the run is released when the run
  ends, success or failure, honoring the target's retention flag.
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from docexport.errors import DocExportError, StageExecutionError
from docexport.utils.fs import publish_path, remove_path

if TYPE_CHECKING:
    from collections.abc import Sequence

    from docexport.domain.models import ExportTarget, StageArtifact
    from docexport.pipeline.stages import PipelineStage
    from docexport.workspace.temp_manager import TempArtifactManager


class PipelineState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class ConversionPipeline:
    """Runs the stage sequence of exactly one export target, once."""

    def __init__(
        self,
        target: ExportTarget,
        stages: Sequence[PipelineStage],
        *,
        temp_manager: TempArtifactManager,
        logger: Any | None = None,
    ) -> None:
        if not stages:
            raise ValueError("a pipeline needs at least one stage")
        self._target = target
        self._stages = tuple(stages)
        self._temp = temp_manager
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._state = PipelineState.IDLE
        self._stage_index: int | None = None
        self._error: Exception | None = None
        self._completed: list[str] = []

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def stage_index(self) -> int | None:
        return self._stage_index

    @property
    def current_stage(self) -> str | None:
        if self._stage_index is None:
            return None
        return self._stages[self._stage_index].name

    @property
    def completed_stages(self) -> tuple[str, ...]:
        return tuple(self._completed)

    @property
    def error(self) -> Exception | None:
        return self._error

    async def run(self, source: StageArtifact) -> tuple[Path, ...]:
        """Run every stage in order; return the paths of the published deliverables."""

        if self._state is not PipelineState.IDLE:
            raise RuntimeError(f"pipeline already {self._state.value}")

        acquired: list[Path] = []
        artifact = source
        try:
            for index, stage in enumerate(self._stages):
                self._state = PipelineState.RUNNING
                self._stage_index = index
                workdir = None
                if stage.needs_workdir:
                    workdir = self._temp.acquire(f"{self._target.format.value}-{stage.name}")
                    acquired.append(workdir)

                self._logger.info("stage_started", stage=stage.name, index=index)
                try:
                    artifact = await stage.invoke(artifact, workdir)
                except Exception as exc:
                    error = (
                        exc
                        if isinstance(exc, DocExportError)
                        else StageExecutionError(stage.name, str(exc) or type(exc).__name__)
                    )
                    self._fail(stage.name, error)
                    if error is exc:
                        raise
                    raise error from exc
                self._completed.append(stage.name)
                self._logger.info("stage_completed", stage=stage.name, artifact=artifact.path)

            try:
                published = await asyncio.to_thread(self._publish, artifact)
            except OSError as exc:
                error = StageExecutionError("publish", str(exc))
                self._fail("publish", error)
                raise error from exc
        except asyncio.CancelledError:
            self._state = PipelineState.FAILED
            raise
        finally:
            self._release(acquired)

        self._state = PipelineState.DONE
        return published

    def _release(self, acquired: list[Path]) -> None:
        """Release scratch directories without masking the outcome of the run."""

        for path in acquired:
            try:
                self._temp.release(path, keep=self._target.keep_intermediate)
            except (OSError, ValueError) as exc:
                self._logger.warning("temp_release_failed", path=path, error=str(exc))

    def _fail(self, stage: str, error: Exception) -> None:
        self._state = PipelineState.FAILED
        self._error = error
        self._logger.warning("stage_failed", stage=stage, error=str(error))

    def _publish(self, artifact: StageArtifact) -> tuple[Path, ...]:
        target = self._target
        output = target.output_path
        in_place = artifact.path.resolve() == output.resolve()
        if target.clean_before_write and not in_place and remove_path(output):
            self._logger.info("output_cleaned", path=output)

        # Side artifacts keep their layout relative to the main artifact.
        base = artifact.path.parent
        for side in artifact.side_paths:
            publish_path(side, output.parent / side.relative_to(base))
        publish_path(artifact.path, output)
        self._logger.info("output_published", path=output)

        paths = [output]
        if (
            target.intermediate_path is not None
            and target.intermediate_path != output
            and target.intermediate_path.exists()
        ):
            paths.append(target.intermediate_path)
        return tuple(paths)


__all__ = ["ConversionPipeline", "PipelineState"]
