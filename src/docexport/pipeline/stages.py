"""Pipeline stage contract and the shared renderer-invocation step."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from docexport.errors import StageExecutionError
from docexport.pipeline.commands import CommandSpec

if TYPE_CHECKING:
    from docexport.domain.models import StageArtifact
    from docexport.pipeline.commands import CommandExecutor, CommandResult

StageInvoker = Callable[["StageArtifact", "Path | None"], Awaitable["StageArtifact"]]


@dataclass(frozen=True, slots=True)
class PipelineStage:
    """One stateless conversion step.

    ``invoke`` receives the previous stage's artifact (the source for the first
    stage) and, when ``needs_workdir`` is set, a freshly acquired scratch
    directory owned by the running pipeline.
    """

    name: str
    input_format: str
    output_format: str
    invoke: StageInvoker
    needs_workdir: bool = True


async def invoke_renderer(
    executor: CommandExecutor,
    *,
    stage: str,
    argv: tuple[str, ...],
    expected: Path,
    cwd: Path | None = None,
    timeout_seconds: float | None = None,
) -> CommandResult:
    """Run one renderer process and require that it produced ``expected``."""

    result = await executor.run(
        CommandSpec(
            argv=argv,
            cwd=cwd.as_posix() if cwd is not None else None,
            timeout_seconds=timeout_seconds,
        )
    )
    if not result.is_success:
        if result.timed_out:
            reason = "renderer timed out"
        elif result.exit_code is None:
            reason = f"renderer could not start: {result.error}"
        else:
            reason = f"renderer exited with status {result.exit_code}"
        raise StageExecutionError(
            stage, reason, diagnostics=result.diagnostics, exit_code=result.exit_code
        )
    if not expected.exists():
        raise StageExecutionError(
            stage,
            f"renderer did not produce {expected.name}",
            diagnostics=result.diagnostics,
            exit_code=result.exit_code,
        )
    return result


__all__ = ["PipelineStage", "StageInvoker", "invoke_renderer"]
