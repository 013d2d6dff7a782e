"""Immutable domain models for export requests, targets, assets and results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import Final

from docexport.domain.outcome import Failure, Success


class ExportFormat(StrEnum):
    TEX = "tex"
    PDFTEX = "pdftex"
    PDF = "pdf"
    DOCX = "docx"
    JATS = "jats"
    MECA = "meca"
    TYPST = "typst"
    NOTEBOOK = "notebook"
    JUPYTER_BOOK = "jupyterBook"

    @classmethod
    def parse(cls, value: ExportFormat | str) -> ExportFormat:
        """Parse a format name or one of its command-line aliases."""

        if isinstance(value, ExportFormat):
            return value
        lowered = value.strip().lower()
        for item in cls:
            if item.value.lower() == lowered:
                return item
        alias = _FORMAT_ALIASES.get(lowered)
        if alias is not None:
            return alias
        expected = ", ".join(item.value for item in cls)
        raise ValueError(f"unknown export format {value!r}; expected one of: {expected}")

    @property
    def default_suffix(self) -> str:
        return _FORMAT_SUFFIXES[self]

    @property
    def is_templated(self) -> bool:
        return self in _TEMPLATED_FORMATS

    @property
    def family(self) -> tuple[ExportFormat, ...]:
        """Formats collected together when this format is requested."""

        if self in (ExportFormat.PDF, ExportFormat.PDFTEX):
            return (ExportFormat.PDF, ExportFormat.PDFTEX)
        return (self,)


_FORMAT_ALIASES: Final[dict[str, ExportFormat]] = {
    "latex": ExportFormat.TEX,
    "word": ExportFormat.DOCX,
    "typ": ExportFormat.TYPST,
    "ipynb": ExportFormat.NOTEBOOK,
    "nb": ExportFormat.NOTEBOOK,
    "jupyterbook": ExportFormat.JUPYTER_BOOK,
    "jupyter-book": ExportFormat.JUPYTER_BOOK,
    "jb": ExportFormat.JUPYTER_BOOK,
}

_FORMAT_SUFFIXES: Final[dict[ExportFormat, str]] = {
    ExportFormat.TEX: ".tex",
    ExportFormat.PDFTEX: ".pdf",
    ExportFormat.PDF: ".pdf",
    ExportFormat.DOCX: ".docx",
    ExportFormat.JATS: ".xml",
    ExportFormat.MECA: ".zip",
    ExportFormat.TYPST: ".typ",
    ExportFormat.NOTEBOOK: ".ipynb",
    # Jupyter Book exports are directories.
    ExportFormat.JUPYTER_BOOK: "",
}

_TEMPLATED_FORMATS: Final[frozenset[ExportFormat]] = frozenset(
    {ExportFormat.TEX, ExportFormat.PDF, ExportFormat.PDFTEX, ExportFormat.TYPST}
)


@dataclass(frozen=True, slots=True)
class SourceReference:
    """A local document path or a remote document link."""

    location: str
    is_remote: bool = False

    @property
    def stem(self) -> str:
        if self.is_remote:
            tail = self.location.rstrip("/").rsplit("/", 1)[-1]
            return tail.split(":")[-1] or "article"
        return Path(self.location).stem


@dataclass(frozen=True, slots=True)
class ExportDeclaration:
    """One export declared in document frontmatter."""

    format: ExportFormat
    output: str | None = None
    template: str | None = None


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """A declarative export request as received from the caller."""

    source: str
    kind: ExportFormat | str
    output: str | Path | None = None
    template: str | None = None
    template_options: Mapping[str, object] | str | Path | None = None
    clean: bool = False
    keep_intermediate: bool = False
    converter: str | None = None
    disable_template: bool = False
    zip: bool = False


@dataclass(frozen=True, slots=True)
class ExportTarget:
    """One concrete unit of conversion work. Read-only once resolved."""

    format: ExportFormat
    source: SourceReference
    output_path: Path
    template_id: str | None = None
    template_options: Mapping[str, object] = field(default_factory=dict)
    keep_intermediate: bool = False
    clean_before_write: bool = False
    intermediate_path: Path | None = None
    converter: str | None = None
    zip: bool = False

    @property
    def label(self) -> str:
        return f"{self.format.value}:{self.output_path.name}"


@dataclass(frozen=True, slots=True)
class ContentAddress:
    """Stable identifiers of an asset version, used for the fallback filename."""

    project: str
    block: str
    version: int

    @property
    def stem(self) -> str:
        return f"{self.project}-{self.block}-v{self.version}"


@dataclass(frozen=True, slots=True)
class AssetReference:
    """An asset referenced by a document, with its ordered naming preferences."""

    key: str
    source_url: str
    content_type: str
    address: ContentAddress
    explicit_name: str | None = None
    source_filename: str | None = None
    simple_mode: bool = False

    @property
    def candidate_names(self) -> tuple[str, ...]:
        """Explicit name, source filename, then the content-addressed fallback.

        Entries may be empty; ``simple_mode`` keeps only the fallback.
        """

        fallback = self.address.stem
        if self.simple_mode:
            return (fallback,)
        return (self.explicit_name or "", self.source_filename or "", fallback)


@dataclass(frozen=True, slots=True)
class MaterializedAsset:
    key: str
    relative_path: str
    bytes_written: int


@dataclass(frozen=True, slots=True)
class StageArtifact:
    """Output of one pipeline stage, consumed by the next."""

    path: Path
    format: str
    side_paths: tuple[Path, ...] = ()
    assets: Mapping[str, str] = field(default_factory=dict)

    def with_path(self, path: Path, format: str) -> StageArtifact:
        return StageArtifact(path=path, format=format, side_paths=(), assets=self.assets)


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Terminal record of one target's execution."""

    target: ExportTarget
    outcome: Success[tuple[Path, ...]] | Failure

    @property
    def ok(self) -> bool:
        return self.outcome.ok

    @property
    def artifact_paths(self) -> tuple[Path, ...]:
        if isinstance(self.outcome, Success):
            return self.outcome.value
        return ()

    @property
    def error(self) -> Exception | None:
        if isinstance(self.outcome, Failure):
            return self.outcome.error
        return None


def posix_relative(*parts: str) -> str:
    return PurePosixPath(*(part for part in parts if part)).as_posix()


__all__ = [
    "AssetReference",
    "BuildResult",
    "ContentAddress",
    "ExportDeclaration",
    "ExportFormat",
    "ExportRequest",
    "ExportTarget",
    "MaterializedAsset",
    "SourceReference",
    "StageArtifact",
    "posix_relative",
]
