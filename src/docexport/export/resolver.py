"""
docexport - export target resolution.

File: src/docexport/export/resolver.py

Purpose
- Expand one declarative export request into the ordered, immutable list of
  export targets it implies.

Functional requirements
- Pure expansion: only existence checks touch the filesystem.
- A request for a format also collects the document's declared exports of the
  same format family, each with its own output path.
- ``pdf`` with ``keep_intermediate`` adds a sibling ``pdftex`` target that
  retains the TeX sources in ``<stem>_pdf_tex/``.
- Missing source, template or output raises ``ConfigurationError``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from docexport.constants import RETAINED_TEX_SUFFIX
from docexport.domain.models import (
    ExportDeclaration,
    ExportFormat,
    ExportRequest,
    ExportTarget,
    SourceReference,
)
from docexport.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from docexport.config.loader import ExportSettings
    from docexport.export.context import DocumentLayer

_REMOTE_PATTERN = re.compile(r"^(?:https?://|oxa:)", re.IGNORECASE)
_ZIPPABLE: frozenset[ExportFormat] = frozenset({ExportFormat.TEX, ExportFormat.TYPST})


def is_remote_link(location: str) -> bool:
    return bool(_REMOTE_PATTERN.match(location.strip()))


def retained_tex_path(output: Path) -> Path:
    """``<dir>/<stem>_pdf_tex/<stem>.tex`` for a PDF deliverable at ``output``."""

    return output.parent / f"{output.stem}{RETAINED_TEX_SUFFIX}" / f"{output.stem}.tex"


def load_template_options(options: Mapping[str, object] | str | Path | None) -> dict[str, Any]:
    """Return template options given inline or as a path to a YAML file."""

    if options is None:
        return {}
    if isinstance(options, Mapping):
        return dict(options)

    path = Path(options).expanduser()
    if not path.is_file():
        raise ConfigurationError(f"template options file not found: {path}")
    try:
        with path.open(encoding="utf-8") as handle:
            parsed = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"invalid YAML in template options {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"unable to read template options {path}: {exc}") from exc
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ConfigurationError(f"template options in {path} must be a mapping")
    return parsed


class ExportTargetResolver:
    """Turns ``ExportRequest`` values into ``ExportTarget`` values."""

    def __init__(
        self,
        settings: ExportSettings,
        *,
        documents: DocumentLayer | None = None,
        cwd: Path | None = None,
    ) -> None:
        self._settings = settings
        self._documents = documents
        self._cwd = cwd if cwd is not None else Path.cwd()

    def resolve(self, request: ExportRequest) -> tuple[ExportTarget, ...]:
        try:
            kind = ExportFormat.parse(request.kind)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        source = self._resolve_source(request.source)
        options = load_template_options(request.template_options)

        if request.zip and kind not in _ZIPPABLE:
            raise ConfigurationError(f"zip output is only supported for tex and typst, not {kind}")

        declarations: Sequence[ExportDeclaration] = ()
        if request.output is None and self._documents is not None:
            family = kind.family
            declarations = [
                item for item in self._documents.declared_exports(source) if item.format in family
            ]
        if not declarations:
            declarations = [
                ExportDeclaration(
                    format=kind,
                    output=str(request.output) if request.output is not None else None,
                    template=request.template,
                )
            ]

        targets: list[ExportTarget] = []
        for declaration in declarations:
            targets.extend(self._expand(declaration, source, request, options))

        _reject_shared_outputs(targets)
        return tuple(targets)

    def resolve_all(self, requests: Sequence[ExportRequest]) -> tuple[ExportTarget, ...]:
        """Resolve every request before any runs; one bad request aborts them all."""

        targets: list[ExportTarget] = []
        for request in requests:
            targets.extend(self.resolve(request))
        _reject_shared_outputs(targets)
        return tuple(targets)

    def _resolve_source(self, location: str) -> SourceReference:
        text = location.strip()
        if not text:
            raise ConfigurationError("no source document given")
        if is_remote_link(text):
            return SourceReference(location=text, is_remote=True)
        path = Path(text).expanduser()
        if not path.is_absolute():
            path = self._cwd / path
        if not path.is_file():
            raise ConfigurationError(f"source document not found: {path}")
        return SourceReference(location=path.as_posix())

    def _expand(
        self,
        declaration: ExportDeclaration,
        source: SourceReference,
        request: ExportRequest,
        options: Mapping[str, Any],
    ) -> list[ExportTarget]:
        export_format = declaration.format
        output = self._output_path(declaration, source, request)
        template = self._template(export_format, declaration.template or request.template, request)

        primary = ExportTarget(
            format=export_format,
            source=source,
            output_path=output,
            template_id=template,
            template_options=options,
            keep_intermediate=request.keep_intermediate,
            clean_before_write=request.clean,
            converter=request.converter,
            zip=request.zip,
        )
        if export_format is ExportFormat.PDFTEX:
            retained = retained_tex_path(output)
            return [replace(primary, keep_intermediate=True, intermediate_path=retained)]
        if export_format is ExportFormat.PDF and request.keep_intermediate:
            retained_tex = retained_tex_path(output)
            sibling = replace(
                primary,
                format=ExportFormat.PDFTEX,
                output_path=retained_tex.with_suffix(".pdf"),
                keep_intermediate=True,
                intermediate_path=retained_tex,
            )
            return [replace(primary, keep_intermediate=False), sibling]
        return [primary]

    def _output_path(
        self,
        declaration: ExportDeclaration,
        source: SourceReference,
        request: ExportRequest,
    ) -> Path:
        export_format = declaration.format
        suffix = ".zip" if request.zip else export_format.default_suffix
        if declaration.output is None:
            return (self._settings.default_output_dir / f"{source.stem}{suffix}").absolute()

        raw = declaration.output.strip()
        if not raw:
            raise ConfigurationError(f"empty output path for {export_format} export")
        path = Path(raw).expanduser()
        if not path.is_absolute():
            # Declared outputs are relative to their document; request outputs to the caller.
            base = (
                Path(source.location).parent
                if request.output is None and not source.is_remote
                else self._cwd
            )
            path = base / path
        if path.is_dir() and export_format is not ExportFormat.JUPYTER_BOOK:
            path = path / f"{source.stem}{suffix}"
        elif suffix and path.suffix.lower() != suffix:
            path = path.with_name(f"{path.name}{suffix}")
        return path

    def _template(
        self,
        export_format: ExportFormat,
        requested: str | None,
        request: ExportRequest,
    ) -> str | None:
        if not export_format.is_templated or request.disable_template:
            return None
        if requested:
            return requested
        key = "typst" if export_format is ExportFormat.TYPST else "tex"
        configured = self._settings.templates.get(key)
        if not configured:
            raise ConfigurationError(
                f"no template given for {export_format} export and no default "
                f"configured under [templates].{key}"
            )
        return configured


def _reject_shared_outputs(targets: Sequence[ExportTarget]) -> None:
    seen: set[Path] = set()
    for target in targets:
        if target.output_path in seen:
            raise ConfigurationError(
                f"two export targets write the same output: {target.output_path}"
            )
        seen.add(target.output_path)


__all__ = [
    "ExportTargetResolver",
    "is_remote_link",
    "load_template_options",
    "retained_tex_path",
]
