"""Error taxonomy for export orchestration.

Only ``ConfigurationError`` may abort a whole batch. Asset and stage errors are
captured at the boundary of their owning target and reported as that target's
failure.
"""

from __future__ import annotations

from enum import StrEnum


class DocExportError(Exception):
    """Base class for all export engine errors."""


class ConfigurationError(DocExportError, ValueError):
    """Missing source, template, or output path; invalid configuration."""


class AssetFetchErrorKind(StrEnum):
    NETWORK = "network"
    UNRECOGNIZED_CONTENT_TYPE = "unrecognized_content_type"
    WRITE = "write"


class AssetFetchError(DocExportError):
    """One asset could not be fetched, typed, or written."""

    def __init__(self, key: str, kind: AssetFetchErrorKind, message: str) -> None:
        self.key = key
        self.kind = kind
        super().__init__(f"asset {key!r} ({kind.value}): {message}")


class FilenameCollisionExhausted(DocExportError):
    """Every candidate filename for an asset is already taken in this build."""

    def __init__(self, key: str, candidates: tuple[str, ...]) -> None:
        self.key = key
        self.candidates = candidates
        rendered = ", ".join(candidates) if candidates else "<none>"
        super().__init__(f"asset {key!r}: all candidate filenames are taken ({rendered})")


class StageExecutionError(DocExportError):
    """An external renderer stage failed or did not produce its artifact."""

    def __init__(
        self,
        stage: str,
        message: str,
        *,
        diagnostics: str = "",
        exit_code: int | None = None,
    ) -> None:
        self.stage = stage
        self.diagnostics = diagnostics
        self.exit_code = exit_code
        super().__init__(f"stage {stage!r} failed: {message}")


__all__ = [
    "AssetFetchError",
    "AssetFetchErrorKind",
    "ConfigurationError",
    "DocExportError",
    "FilenameCollisionExhausted",
    "StageExecutionError",
]
