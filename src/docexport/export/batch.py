"""Concurrent execution of independent export targets."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog

from docexport.domain.models import BuildResult, ExportTarget
from docexport.domain.outcome import Failure, Success
from docexport.observability.logging import correlation_scope
from docexport.utils.concurrency import settle_all

if TYPE_CHECKING:
    from docexport.export.context import ExportContext
    from docexport.pipeline.strategies import StrategyRegistry


@dataclass(frozen=True, slots=True)
class TargetExecution:
    """A deferred pipeline run for one target."""

    target: ExportTarget
    call: Callable[[], Awaitable[BuildResult]]


class BatchExecutor:
    """
    Runs every target execution to completion, concurrently.

    A failing execution never stops a sibling from starting or finishing; its
    error is captured as that target's ``Failure``. Results keep submission
    order. Aggregate status and reporting belong to the caller.
    """

    def __init__(
        self,
        *,
        max_concurrency: int | None = None,
        logger: Any | None = None,
    ) -> None:
        self._max_concurrency = max_concurrency
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def settle(self, executions: Sequence[TargetExecution]) -> list[BuildResult]:
        outcomes = await settle_all(
            [partial(self._scoped, execution) for execution in executions],
            max_concurrency=self._max_concurrency,
        )

        results: list[BuildResult] = []
        for execution, outcome in zip(executions, outcomes, strict=True):
            if isinstance(outcome, Success):
                result = outcome.value
            else:
                result = BuildResult(target=execution.target, outcome=Failure(outcome.error))
            self._logger.info(
                "target_settled",
                target=execution.target.label,
                ok=result.ok,
                error=str(result.error) if result.error is not None else None,
            )
            results.append(result)
        return results

    async def run(
        self,
        targets: Sequence[ExportTarget],
        *,
        context: ExportContext,
        strategies: StrategyRegistry,
    ) -> list[BuildResult]:
        """Run each target through the strategy registered for its format."""

        executions = [
            TargetExecution(
                target=target,
                call=partial(strategies.get(target.format).run, target, context),
            )
            for target in targets
        ]
        return await self.settle(executions)

    async def _scoped(self, execution: TargetExecution) -> BuildResult:
        target = execution.target
        with correlation_scope(target_id=target.label, export_format=target.format.value):
            return await execution.call()


__all__ = ["BatchExecutor", "TargetExecution"]
