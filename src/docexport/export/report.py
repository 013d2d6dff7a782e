"""Aggregate export outcome and the process exit-code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from docexport.errors import StageExecutionError

if TYPE_CHECKING:
    from docexport.domain.models import BuildResult
    from docexport.errors import ConfigurationError


class ExitCode(IntEnum):
    """Deterministic process exit-code contract."""

    SUCCESS = 0
    EXPORT_FAILED = 1
    CONFIG_ERROR = 2


@dataclass(frozen=True, slots=True)
class ExportReport:
    """Every target's terminal record, in submission order."""

    results: tuple[BuildResult, ...] = ()
    config_error: ConfigurationError | None = None

    @property
    def ok(self) -> bool:
        return self.config_error is None and all(result.ok for result in self.results)

    @property
    def succeeded(self) -> tuple[BuildResult, ...]:
        return tuple(result for result in self.results if result.ok)

    @property
    def failed(self) -> tuple[BuildResult, ...]:
        return tuple(result for result in self.results if not result.ok)

    @property
    def exit_code(self) -> ExitCode:
        if self.config_error is not None:
            return ExitCode.CONFIG_ERROR
        if self.failed:
            return ExitCode.EXPORT_FAILED
        return ExitCode.SUCCESS

    def summary_lines(self) -> list[str]:
        if self.config_error is not None:
            return [f"configuration error: {self.config_error}"]
        lines: list[str] = []
        for result in self.results:
            target = result.target
            if result.ok:
                outputs = ", ".join(path.as_posix() for path in result.artifact_paths)
                lines.append(f"ok     {target.format.value:<12} {outputs}")
            else:
                lines.append(f"FAILED {target.format.value:<12} {result.error}")
        return lines

    def to_dict(self) -> dict[str, object]:
        targets: list[dict[str, object]] = []
        for result in self.results:
            entry: dict[str, object] = {
                "format": result.target.format.value,
                "output": result.target.output_path.as_posix(),
                "ok": result.ok,
            }
            if result.ok:
                entry["artifacts"] = [path.as_posix() for path in result.artifact_paths]
            else:
                error = result.error
                entry["error"] = str(error)
                entry["error_type"] = type(error).__name__
                if isinstance(error, StageExecutionError):
                    entry["stage"] = error.stage
                    entry["diagnostics"] = error.diagnostics
            targets.append(entry)
        return {
            "ok": self.ok,
            "exit_code": int(self.exit_code),
            "config_error": str(self.config_error) if self.config_error is not None else None,
            "targets": targets,
        }


__all__ = ["ExitCode", "ExportReport"]
