"""
docexport - explicit export context.

File: src/docexport/export/context.py

Purpose
- Carry every collaborator an export needs (settings, document layer, asset
  fetcher, renderer executor, scratch directories) as one explicit value that
  is passed through the call graph.

What should be included in this file
- ``DocumentLayer`` protocol consumed by the resolver and the pipelines.
- ``FrontmatterDocumentLayer``: default document layer reading YAML frontmatter.
- ``ExportContext`` and its ``create`` factory.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog
import yaml

from docexport.assets.fetch import AssetFetcher, HttpAssetFetcher
from docexport.domain.models import (
    AssetReference,
    ContentAddress,
    ExportDeclaration,
    ExportFormat,
    SourceReference,
)
from docexport.errors import ConfigurationError
from docexport.pipeline.commands import CommandExecutor, LocalSubprocessExecutor
from docexport.workspace.temp_manager import TempArtifactManager

if TYPE_CHECKING:
    from docexport.config.loader import ExportSettings

_FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


@runtime_checkable
class DocumentLayer(Protocol):
    """Document/session collaborator: content, declared exports and assets."""

    async def fetch_document(self, link: str) -> str: ...

    def declared_exports(self, source: SourceReference) -> Sequence[ExportDeclaration]: ...

    async def list_assets(self, source: Path) -> Mapping[str, AssetReference]: ...


class FrontmatterDocumentLayer(DocumentLayer):
    """Reads ``exports`` and ``assets`` from a document's YAML frontmatter.

    ``exports`` entries take ``format``, optional ``output`` and ``template``.
    ``assets`` entries take ``key``, ``url``, ``content_type``, ``project``,
    ``block``, ``version`` and optional ``name``/``filename``.
    """

    def __init__(self, fetcher: AssetFetcher) -> None:
        self._fetcher = fetcher

    async def fetch_document(self, link: str) -> str:
        data = await self._fetcher.fetch(link)
        return data.decode("utf-8", errors="replace")

    def declared_exports(self, source: SourceReference) -> Sequence[ExportDeclaration]:
        if source.is_remote:
            return ()
        frontmatter = _read_frontmatter(Path(source.location))
        raw_exports = frontmatter.get("exports") or []
        if not isinstance(raw_exports, list):
            raise ConfigurationError(f"{source.location}: frontmatter 'exports' must be a list")

        declarations: list[ExportDeclaration] = []
        for index, entry in enumerate(raw_exports):
            if not isinstance(entry, Mapping) or "format" not in entry:
                raise ConfigurationError(
                    f"{source.location}: exports[{index}] must be a mapping with a 'format'"
                )
            try:
                export_format = ExportFormat.parse(str(entry["format"]))
            except ValueError as exc:
                raise ConfigurationError(f"{source.location}: exports[{index}]: {exc}") from exc
            output = entry.get("output")
            template = entry.get("template")
            declarations.append(
                ExportDeclaration(
                    format=export_format,
                    output=str(output) if output is not None else None,
                    template=str(template) if template is not None else None,
                )
            )
        return tuple(declarations)

    async def list_assets(self, source: Path) -> Mapping[str, AssetReference]:
        frontmatter = _read_frontmatter(source)
        raw_assets = frontmatter.get("assets") or []
        if not isinstance(raw_assets, list):
            raise ConfigurationError(f"{source}: frontmatter 'assets' must be a list")

        assets: dict[str, AssetReference] = {}
        for index, entry in enumerate(raw_assets):
            if not isinstance(entry, Mapping):
                raise ConfigurationError(f"{source}: assets[{index}] must be a mapping")
            try:
                reference = AssetReference(
                    key=str(entry["key"]),
                    source_url=str(entry["url"]),
                    content_type=str(entry["content_type"]),
                    address=ContentAddress(
                        project=str(entry["project"]),
                        block=str(entry["block"]),
                        version=int(entry["version"]),
                    ),
                    explicit_name=_optional_str(entry.get("name")),
                    source_filename=_optional_str(entry.get("filename")),
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ConfigurationError(f"{source}: assets[{index}] is incomplete: {exc}") from exc
            assets[reference.key] = reference
        return assets


@dataclass(frozen=True, slots=True)
class ExportContext:
    """Explicit collaborators for one export invocation."""

    settings: ExportSettings
    documents: DocumentLayer
    fetcher: AssetFetcher
    executor: CommandExecutor
    temp: TempArtifactManager
    logger: Any

    @classmethod
    def create(
        cls,
        settings: ExportSettings,
        *,
        documents: DocumentLayer | None = None,
        fetcher: AssetFetcher | None = None,
        executor: CommandExecutor | None = None,
        temp: TempArtifactManager | None = None,
    ) -> ExportContext:
        resolved_fetcher = (
            fetcher
            if fetcher is not None
            else HttpAssetFetcher(timeout_seconds=settings.fetch_timeout_seconds)
        )
        return cls(
            settings=settings,
            documents=(
                documents if documents is not None else FrontmatterDocumentLayer(resolved_fetcher)
            ),
            fetcher=resolved_fetcher,
            executor=(
                executor
                if executor is not None
                else LocalSubprocessExecutor(
                    default_timeout_seconds=settings.renderer_timeout_seconds
                )
            ),
            temp=temp if temp is not None else TempArtifactManager(settings.temp_root),
            logger=structlog.get_logger("docexport.export"),
        )


def _read_frontmatter(path: Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"unable to read document {path}: {exc}") from exc
    match = _FRONTMATTER_PATTERN.match(text)
    if match is None:
        return {}
    try:
        parsed = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid frontmatter in {path}: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"frontmatter of {path} must be a mapping")
    return parsed


def _optional_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


__all__ = ["DocumentLayer", "ExportContext", "FrontmatterDocumentLayer"]
