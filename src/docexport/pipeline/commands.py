"""
docexport - renderer command invocation.

File: src/docexport/pipeline/commands.py

Purpose
- Turn configured argv templates into concrete commands and run them as
  subprocesses with captured output and an optional timeout.

Functional requirements
- argv templates are rendered with jinja2 ``StrictUndefined``; an unknown
  placeholder is a ``ConfigurationError``. Arguments rendering to an empty
  string are dropped.
- Executors never raise for a failing process; the outcome is a
  ``CommandResult`` the caller inspects.
"""

from __future__ import annotations

import asyncio
import os
import time
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError

from docexport.errors import ConfigurationError
from docexport.observability.logging import redact_text

_ARGV_ENVIRONMENT = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    keep_trailing_newline=False,
)


def render_argv(template: Sequence[str], variables: Mapping[str, object]) -> tuple[str, ...]:
    """Render one argv template; empty results are omitted."""

    rendered: list[str] = []
    for index, raw in enumerate(template):
        try:
            value = _ARGV_ENVIRONMENT.from_string(raw).render(**variables).strip()
        except (UndefinedError, TemplateSyntaxError) as exc:
            raise ConfigurationError(f"renderer argv[{index}] {raw!r}: {exc}") from exc
        if value:
            rendered.append(value)
    if not rendered:
        raise ConfigurationError("renderer argv rendered to an empty command")
    return tuple(rendered)


@dataclass(frozen=True, slots=True)
class CommandSpec:
    """Portable command invocation contract used by pipeline stages."""

    argv: tuple[str, ...]
    cwd: str | None = None
    env: Mapping[str, str] = field(default_factory=dict)
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if not self.argv or not self.argv[0]:
            raise ValueError("CommandSpec.argv must name an executable")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CommandSpec.timeout_seconds must be > 0")

    def build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.env)
        return env


@dataclass(frozen=True, slots=True)
class CommandResult:
    """Deterministic command execution outcome."""

    argv: tuple[str, ...]
    exit_code: int | None
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    timed_out: bool = False
    error: str | None = None

    @property
    def is_success(self) -> bool:
        return not self.timed_out and self.error is None and self.exit_code == 0

    @property
    def diagnostics(self) -> str:
        """Combined tool output, stderr first, for error reports."""

        parts = [part for part in (self.error, self.stderr.strip(), self.stdout.strip()) if part]
        return "\n".join(parts)


@runtime_checkable
class CommandExecutor(Protocol):
    """Pluggable async command execution interface."""

    async def run(self, spec: CommandSpec) -> CommandResult: ...


class LocalSubprocessExecutor(CommandExecutor):
    """Async local subprocess executor with capture and timeout handling."""

    def __init__(
        self,
        *,
        default_timeout_seconds: float | None = None,
        max_output_chars: int | None = 200_000,
    ) -> None:
        self._default_timeout_seconds = default_timeout_seconds
        self._max_output_chars = max_output_chars

    async def run(self, spec: CommandSpec) -> CommandResult:
        started_ns = time.monotonic_ns()
        timeout = (
            spec.timeout_seconds
            if spec.timeout_seconds is not None
            else self._default_timeout_seconds
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *spec.argv,
                cwd=spec.cwd,
                env=spec.build_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            return CommandResult(
                argv=spec.argv,
                exit_code=None,
                duration_ms=_elapsed_ms(started_ns),
                error=redact_text(str(exc)),
            )

        try:
            stdout_bytes, stderr_bytes = await _communicate_with_timeout(process, timeout)
            timed_out = False
            error_text: str | None = None
            exit_code = process.returncode
        except _CommandTimeoutError as exc:
            stdout_bytes = exc.stdout
            stderr_bytes = exc.stderr
            timed_out = True
            error_text = f"command timed out after {timeout or 0.0:.3f}s"
            exit_code = None

        return CommandResult(
            argv=spec.argv,
            exit_code=exit_code,
            stdout=redact_text(_truncate_text(_decode(stdout_bytes), self._max_output_chars)),
            stderr=redact_text(_truncate_text(_decode(stderr_bytes), self._max_output_chars)),
            duration_ms=_elapsed_ms(started_ns),
            timed_out=timed_out,
            error=error_text,
        )


class _CommandTimeoutError(Exception):
    def __init__(self, stdout: bytes, stderr: bytes) -> None:
        super().__init__("command timed out")
        self.stdout = stdout
        self.stderr = stderr


async def _communicate_with_timeout(
    process: asyncio.subprocess.Process,
    timeout_seconds: float | None,
) -> tuple[bytes, bytes]:
    try:
        if timeout_seconds is None:
            return await process.communicate()
        return await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except TimeoutError as exc:
        with suppress(ProcessLookupError):
            process.kill()
        stdout_bytes, stderr_bytes = await process.communicate()
        raise _CommandTimeoutError(stdout_bytes, stderr_bytes) from exc
    except asyncio.CancelledError:
        with suppress(ProcessLookupError):
            process.kill()
        await process.communicate()
        raise


def _elapsed_ms(started_ns: int) -> int:
    return max(time.monotonic_ns() - started_ns, 0) // 1_000_000


def _decode(raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _truncate_text(text: str, max_chars: int | None) -> str:
    if max_chars is None or len(text) <= max_chars:
        return text
    omitted = len(text) - max_chars
    return f"{text[:max_chars]}\n...[truncated {omitted} chars]"


__all__ = [
    "CommandExecutor",
    "CommandResult",
    "CommandSpec",
    "LocalSubprocessExecutor",
    "render_argv",
]
