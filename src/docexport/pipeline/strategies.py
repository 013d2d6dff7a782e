"""
docexport - per-format export strategies.

File: src/docexport/pipeline/strategies.py

Purpose
- One strategy per export format, selected by ``ExportFormat``; each builds the
  stage list for a target and runs it through ``ConversionPipeline``.

What should be included in this file
- Source stages (remote download), render stages (assets + renderer process),
  the TeX-to-PDF compile stage, MECA bundling and the optional zip stage.
- ``StrategyRegistry`` keyed by format.

Functional requirements
- ``run(target, context)`` always returns a ``BuildResult``; engine errors
  raised by a stage become the target's ``Failure``.
- Retained TeX goes to ``<stem>_pdf_tex/<stem>.tex`` (cleaned first when
  requested); otherwise TeX lives in a scratch directory.
"""

from __future__ import annotations

import json
import mimetypes
import zipfile
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Protocol
from xml.etree import ElementTree

import yaml

from docexport.assets.materializer import AssetMaterializationReport, AssetMaterializer
from docexport.constants import (
    ASSET_MANIFEST_FILENAME,
    MECA_MANIFEST_FILENAME,
    REMOTE_SOURCE_FILENAME,
)
from docexport.domain.models import BuildResult, ExportFormat, StageArtifact
from docexport.domain.outcome import Failure, Success
from docexport.errors import ConfigurationError, DocExportError, StageExecutionError
from docexport.pipeline.commands import render_argv
from docexport.pipeline.runner import ConversionPipeline
from docexport.pipeline.stages import PipelineStage, invoke_renderer
from docexport.utils.fs import atomic_write, remove_path

if TYPE_CHECKING:
    from docexport.domain.models import ExportTarget
    from docexport.export.context import ExportContext

_MECA_NAMESPACE = "https://manuscriptexchange.org/schema/manifest"
_TEMPLATE_OPTIONS_FILENAME = "template_options.yml"


class ExportStrategy(Protocol):
    formats: ClassVar[tuple[ExportFormat, ...]]

    async def run(self, target: ExportTarget, context: ExportContext) -> BuildResult: ...


class PipelineStrategy:
    """Shared ``run``: optional download, format stages, optional zip."""

    formats: ClassVar[tuple[ExportFormat, ...]] = ()

    def stages(self, target: ExportTarget, context: ExportContext) -> list[PipelineStage]:
        raise NotImplementedError

    async def run(self, target: ExportTarget, context: ExportContext) -> BuildResult:
        stages: list[PipelineStage] = []
        if target.source.is_remote:
            stages.append(download_stage(target, context))
        stages.extend(self.stages(target, context))
        if target.zip:
            stages.append(zip_stage(target))

        pipeline = ConversionPipeline(
            target, stages, temp_manager=context.temp, logger=context.logger
        )
        source = StageArtifact(path=Path(target.source.location), format="source")
        try:
            paths = await pipeline.run(source)
        except DocExportError as exc:
            context.logger.warning(
                "target_failed",
                target=target.label,
                failed_stage=pipeline.current_stage,
                error=str(exc),
            )
            return BuildResult(target=target, outcome=Failure(exc))

        context.logger.info("target_succeeded", target=target.label, outputs=list(paths))
        return BuildResult(target=target, outcome=Success(paths))


class TexStrategy(PipelineStrategy):
    formats = (ExportFormat.TEX,)

    def stages(self, target: ExportTarget, context: ExportContext) -> list[PipelineStage]:
        return [tex_stage(target, context)]


class PdfStrategy(PipelineStrategy):
    formats = (ExportFormat.PDF, ExportFormat.PDFTEX)

    def stages(self, target: ExportTarget, context: ExportContext) -> list[PipelineStage]:
        return [tex_stage(target, context), compile_stage(target, context)]


class RenderStrategy(PipelineStrategy):
    """Single renderer invocation producing one file or folder."""

    renderer: ClassVar[str] = ""
    publishes_assets: ClassVar[bool] = True

    def stages(self, target: ExportTarget, context: ExportContext) -> list[PipelineStage]:
        return [
            render_stage(
                target,
                context,
                name=self.renderer,
                renderer=self.renderer,
                output_format=self.formats[0].value,
                publish_assets=self.publishes_assets,
            )
        ]


class TypstStrategy(RenderStrategy):
    formats = (ExportFormat.TYPST,)
    renderer = "typst"


class DocxStrategy(RenderStrategy):
    formats = (ExportFormat.DOCX,)
    renderer = "docx"
    # Images are embedded in the document.
    publishes_assets = False


class JatsStrategy(RenderStrategy):
    formats = (ExportFormat.JATS,)
    renderer = "jats"


class NotebookStrategy(RenderStrategy):
    formats = (ExportFormat.NOTEBOOK,)
    renderer = "notebook"


class JupyterBookStrategy(RenderStrategy):
    formats = (ExportFormat.JUPYTER_BOOK,)
    renderer = "jupyter_book"
    publishes_assets = False


class MecaStrategy(PipelineStrategy):
    formats = (ExportFormat.MECA,)

    def stages(self, target: ExportTarget, context: ExportContext) -> list[PipelineStage]:
        jats = render_stage(
            target,
            context,
            name="jats",
            renderer="jats",
            output_format="jats",
            output_suffix=".xml",
        )
        return [jats, meca_bundle_stage(target)]


class StrategyRegistry:
    """Strategy lookup keyed by export format."""

    def __init__(self, strategies: Mapping[ExportFormat, ExportStrategy] | None = None) -> None:
        self._strategies: dict[ExportFormat, ExportStrategy] = dict(strategies or {})

    @classmethod
    def default(cls) -> StrategyRegistry:
        registry = cls()
        for strategy in (
            TexStrategy(),
            PdfStrategy(),
            TypstStrategy(),
            DocxStrategy(),
            JatsStrategy(),
            MecaStrategy(),
            NotebookStrategy(),
            JupyterBookStrategy(),
        ):
            registry.register(strategy)
        return registry

    def register(self, strategy: ExportStrategy) -> None:
        for export_format in strategy.formats:
            self._strategies[export_format] = strategy

    def get(self, export_format: ExportFormat) -> ExportStrategy:
        strategy = self._strategies.get(export_format)
        if strategy is None:
            raise ConfigurationError(f"no export strategy registered for {export_format}")
        return strategy

    def __contains__(self, export_format: object) -> bool:
        return export_format in self._strategies


def download_stage(target: ExportTarget, context: ExportContext) -> PipelineStage:
    link = target.source.location

    async def invoke(artifact: StageArtifact, workdir: Path | None) -> StageArtifact:
        assert workdir is not None
        try:
            content = await context.documents.fetch_document(link)
        except OSError as exc:
            raise StageExecutionError("download", f"unable to fetch {link}: {exc}") from exc
        destination = workdir / REMOTE_SOURCE_FILENAME
        atomic_write(destination, content)
        return StageArtifact(path=destination, format="source")

    return PipelineStage(
        name="download", input_format="link", output_format="source", invoke=invoke
    )


def tex_stage(target: ExportTarget, context: ExportContext) -> PipelineStage:
    retained = target.intermediate_path

    async def invoke(artifact: StageArtifact, workdir: Path | None) -> StageArtifact:
        if retained is not None:
            out_dir = retained.parent
            if target.clean_before_write and remove_path(out_dir):
                context.logger.info("intermediate_cleaned", path=out_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            output = retained
        else:
            assert workdir is not None
            output = workdir / f"{target.output_path.stem}.tex"
        return await _render(target, context, artifact, stage="tex", renderer="tex", output=output)

    return PipelineStage(
        name="tex",
        input_format="source",
        output_format="tex",
        invoke=invoke,
        needs_workdir=retained is None,
    )


def compile_stage(target: ExportTarget, context: ExportContext) -> PipelineStage:
    async def invoke(artifact: StageArtifact, workdir: Path | None) -> StageArtifact:
        tex_path = artifact.path
        pdf_path = tex_path.with_suffix(".pdf")
        argv = render_argv(
            context.settings.renderers["pdf"],
            _variables(target, input=tex_path.name, output=pdf_path, workdir=tex_path.parent),
        )
        await invoke_renderer(
            context.executor,
            stage="compile",
            argv=argv,
            expected=pdf_path,
            cwd=tex_path.parent,
            timeout_seconds=context.settings.renderer_timeout_seconds,
        )
        return artifact.with_path(pdf_path, "pdf")

    return PipelineStage(
        name="compile", input_format="tex", output_format="pdf", invoke=invoke, needs_workdir=False
    )


def render_stage(
    target: ExportTarget,
    context: ExportContext,
    *,
    name: str,
    renderer: str,
    output_format: str,
    output_suffix: str | None = None,
    publish_assets: bool = True,
) -> PipelineStage:
    suffix = output_suffix if output_suffix is not None else target.format.default_suffix

    async def invoke(artifact: StageArtifact, workdir: Path | None) -> StageArtifact:
        assert workdir is not None
        output = workdir / f"{target.output_path.stem}{suffix}"
        rendered = await _render(
            target, context, artifact, stage=name, renderer=renderer, output=output
        )
        if publish_assets:
            return rendered
        return replace(rendered, side_paths=())

    return PipelineStage(
        name=name, input_format="source", output_format=output_format, invoke=invoke
    )


def meca_bundle_stage(target: ExportTarget) -> PipelineStage:
    async def invoke(artifact: StageArtifact, workdir: Path | None) -> StageArtifact:
        assert workdir is not None
        bundle = workdir / f"{target.output_path.stem}.zip"
        base = artifact.path.parent
        members = [artifact.path, *artifact.side_paths]
        with zipfile.ZipFile(bundle, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(MECA_MANIFEST_FILENAME, _meca_manifest(members, base, artifact.path))
            for member in members:
                archive.write(member, member.relative_to(base).as_posix())
        return StageArtifact(path=bundle, format="meca", assets=artifact.assets)

    return PipelineStage(name="bundle", input_format="jats", output_format="meca", invoke=invoke)


def zip_stage(target: ExportTarget) -> PipelineStage:
    async def invoke(artifact: StageArtifact, workdir: Path | None) -> StageArtifact:
        assert workdir is not None
        archive_path = workdir / f"{target.output_path.stem}.zip"
        base = artifact.path.parent
        with zipfile.ZipFile(archive_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for member in (artifact.path, *artifact.side_paths):
                archive.write(member, member.relative_to(base).as_posix())
        return StageArtifact(path=archive_path, format="zip", assets=artifact.assets)

    return PipelineStage(name="zip", input_format="any", output_format="zip", invoke=invoke)


async def _render(
    target: ExportTarget,
    context: ExportContext,
    artifact: StageArtifact,
    *,
    stage: str,
    renderer: str,
    output: Path,
) -> StageArtifact:
    out_dir = output.parent
    report = await _materialize_assets(context, artifact.path, out_dir)
    manifest = out_dir / ASSET_MANIFEST_FILENAME
    atomic_write(manifest, json.dumps(report.paths, sort_keys=True, indent=2))
    options_file = None
    if target.template_options:
        options_file = out_dir / _TEMPLATE_OPTIONS_FILENAME
        atomic_write(options_file, yaml.safe_dump(dict(target.template_options), sort_keys=True))

    argv = render_argv(
        context.settings.renderers[renderer],
        _variables(
            target,
            input=artifact.path,
            output=output,
            workdir=out_dir,
            assets_manifest=manifest,
            options_file=options_file,
        ),
    )
    await invoke_renderer(
        context.executor,
        stage=stage,
        argv=argv,
        expected=output,
        cwd=out_dir,
        timeout_seconds=context.settings.renderer_timeout_seconds,
    )
    side_paths = tuple(dict.fromkeys(out_dir / asset.relative_path for asset in report.assets))
    return StageArtifact(path=output, format=stage, side_paths=side_paths, assets=report.paths)


async def _materialize_assets(
    context: ExportContext, source: Path, out_dir: Path
) -> AssetMaterializationReport:
    references = await context.documents.list_assets(source)
    if not references:
        return AssetMaterializationReport()
    settings = context.settings
    if settings.simple_asset_names:
        references = {key: replace(ref, simple_mode=True) for key, ref in references.items()}
    materializer = AssetMaterializer(
        out_dir,
        fetcher=context.fetcher,
        base_path=settings.asset_base_path,
        max_concurrency=settings.max_asset_concurrency,
        logger=context.logger,
    )
    report = await materializer.materialize(references)
    report.raise_for_failures()
    return report


def _variables(target: ExportTarget, **paths: Path | str | None) -> dict[str, Any]:
    variables: dict[str, Any] = {
        "format": target.format.value,
        "stem": target.output_path.stem,
        "template": target.template_id,
        "template_options": dict(target.template_options),
        "converter": target.converter,
        "assets_manifest": None,
        "options_file": None,
    }
    for key, value in paths.items():
        variables[key] = value.as_posix() if isinstance(value, Path) else value
    return variables


def _meca_manifest(members: list[Path], base: Path, article: Path) -> str:
    ElementTree.register_namespace("", _MECA_NAMESPACE)
    root = ElementTree.Element(f"{{{_MECA_NAMESPACE}}}manifest", {"version": "2.0"})
    for member in members:
        item_type = "article-metadata" if member == article else "figure"
        media_type = mimetypes.guess_type(member.name)[0] or "application/octet-stream"
        item = ElementTree.SubElement(root, f"{{{_MECA_NAMESPACE}}}item", {"item-type": item_type})
        ElementTree.SubElement(
            item,
            f"{{{_MECA_NAMESPACE}}}instance",
            {"media-type": media_type, "href": member.relative_to(base).as_posix()},
        )
    body = ElementTree.tostring(root, encoding="unicode")
    return f'<?xml version="1.0" encoding="UTF-8"?>\n{body}\n'


__all__ = [
    "DocxStrategy",
    "ExportStrategy",
    "JatsStrategy",
    "JupyterBookStrategy",
    "MecaStrategy",
    "NotebookStrategy",
    "PdfStrategy",
    "PipelineStrategy",
    "RenderStrategy",
    "StrategyRegistry",
    "TexStrategy",
    "TypstStrategy",
    "compile_stage",
    "download_stage",
    "meca_bundle_stage",
    "render_stage",
    "tex_stage",
    "zip_stage",
]
