"""Per-format strategy tests against fake renderer processes."""

from __future__ import annotations

import zipfile
from dataclasses import replace
from pathlib import Path
from typing import Any

import pytest

from docexport.domain.models import (
    AssetReference,
    ContentAddress,
    ExportFormat,
    ExportTarget,
    SourceReference,
)
from docexport.errors import AssetFetchError, ConfigurationError, StageExecutionError
from docexport.export.context import ExportContext
from docexport.export.resolver import retained_tex_path
from docexport.pipeline.strategies import PdfStrategy, StrategyRegistry


def _target(source: Path, export_format: ExportFormat, output: Path, **changes: Any):
    return ExportTarget(
        format=export_format,
        source=SourceReference(location=source.as_posix()),
        output_path=output,
        **changes,
    )


def _figure(key: str = "fig1") -> AssetReference:
    return AssetReference(
        key=key,
        source_url=f"https://cdn.example.org/{key}",
        content_type="image/png",
        address=ContentAddress(project="proj", block="blk", version=1),
        explicit_name="figure",
    )


async def _run(context: ExportContext, target: ExportTarget):
    return await StrategyRegistry.default().get(target.format).run(target, context)


async def test_pdf_export_leaves_no_tex_behind(
    context: ExportContext, fake_executor: Any, source_doc: Path, tmp_path: Path
) -> None:
    output = tmp_path / "out" / "paper.pdf"
    target = _target(source_doc, ExportFormat.PDF, output, template_id="plain_latex")

    result = await _run(context, target)

    assert result.ok, result.error
    assert result.artifact_paths == (output,)
    assert output.read_bytes().startswith(b"%PDF")
    assert sorted(p.name for p in output.parent.iterdir()) == ["paper.pdf"]
    assert fake_executor.programs() == ["render-tex", "compile-pdf"]
    assert "--template=plain_latex" in fake_executor.specs[0].argv
    assert context.temp.owned == frozenset()


async def test_pdftex_retains_tex_next_to_output(
    context: ExportContext, source_doc: Path, tmp_path: Path
) -> None:
    output = tmp_path / "out" / "paper.pdf"
    retained = retained_tex_path(output)
    retained.parent.mkdir(parents=True)
    (retained.parent / "stale.aux").write_text("old", encoding="utf-8")
    target = _target(
        source_doc,
        ExportFormat.PDFTEX,
        output,
        keep_intermediate=True,
        intermediate_path=retained,
        clean_before_write=True,
    )

    result = await _run(context, target)

    assert result.ok, result.error
    assert result.artifact_paths == (output, retained)
    assert retained.read_text(encoding="utf-8") == "render-tex:paper.md"
    assert output.exists()
    assert not (retained.parent / "stale.aux").exists()


async def test_compile_failure_reports_diagnostics_and_writes_nothing(
    context: ExportContext, fake_executor: Any, source_doc: Path, tmp_path: Path
) -> None:
    fake_executor.fail_if = lambda spec: spec.argv[0] == "compile-pdf"
    output = tmp_path / "out" / "paper.pdf"

    result = await _run(context, _target(source_doc, ExportFormat.PDF, output))

    assert not result.ok
    error = result.error
    assert isinstance(error, StageExecutionError)
    assert error.stage == "compile"
    assert error.exit_code == 1
    assert "LaTeX Error" in error.diagnostics
    assert not output.exists()
    assert context.temp.owned == frozenset()


async def test_render_exports_publish_assets_beside_output(
    context: ExportContext, fake_documents: Any, source_doc: Path, tmp_path: Path
) -> None:
    fake_documents.assets = {"fig1": _figure()}
    output = tmp_path / "out" / "paper.typ"

    result = await _run(context, _target(source_doc, ExportFormat.TYPST, output))

    assert result.ok, result.error
    assert output.read_text(encoding="utf-8") == "render-typst:paper.md"
    assert (output.parent / "images" / "figure.png").read_bytes() == (
        b"bytes:https://cdn.example.org/fig1"
    )


async def test_docx_embeds_assets_instead_of_publishing_them(
    context: ExportContext, fake_documents: Any, source_doc: Path, tmp_path: Path
) -> None:
    fake_documents.assets = {"fig1": _figure()}
    output = tmp_path / "out" / "paper.docx"

    result = await _run(context, _target(source_doc, ExportFormat.DOCX, output))

    assert result.ok, result.error
    assert sorted(p.name for p in output.parent.iterdir()) == ["paper.docx"]


async def test_asset_failure_fails_its_target(
    context: ExportContext,
    fake_documents: Any,
    fake_fetcher: Any,
    source_doc: Path,
    tmp_path: Path,
) -> None:
    fake_documents.assets = {"fig1": _figure()}
    fake_fetcher.failures = {"https://cdn.example.org/fig1": ConnectionError("reset")}
    output = tmp_path / "out" / "paper.xml"

    result = await _run(context, _target(source_doc, ExportFormat.JATS, output))

    assert isinstance(result.error, AssetFetchError)
    assert not output.exists()


async def test_meca_bundle_contains_manifest_article_and_figures(
    context: ExportContext, fake_documents: Any, source_doc: Path, tmp_path: Path
) -> None:
    fake_documents.assets = {"fig1": _figure()}
    output = tmp_path / "out" / "paper.zip"

    result = await _run(context, _target(source_doc, ExportFormat.MECA, output))

    assert result.ok, result.error
    with zipfile.ZipFile(output) as archive:
        names = set(archive.namelist())
        manifest = archive.read("manifest.xml").decode("utf-8")
    assert names == {"manifest.xml", "paper.xml", "images/figure.png"}
    assert 'href="paper.xml"' in manifest
    assert 'item-type="article-metadata"' in manifest


async def test_zipped_tex_export(
    context: ExportContext, fake_documents: Any, source_doc: Path, tmp_path: Path
) -> None:
    fake_documents.assets = {"fig1": _figure()}
    output = tmp_path / "out" / "paper.zip"

    result = await _run(
        context, _target(source_doc, ExportFormat.TEX, output, template_id="plain_latex", zip=True)
    )

    assert result.ok, result.error
    with zipfile.ZipFile(output) as archive:
        assert set(archive.namelist()) == {"paper.tex", "images/figure.png"}


async def test_jupyter_book_exports_a_folder(
    context: ExportContext, source_doc: Path, tmp_path: Path
) -> None:
    output = tmp_path / "out" / "paper"

    result = await _run(context, _target(source_doc, ExportFormat.JUPYTER_BOOK, output))

    assert result.ok, result.error
    assert (output / "index.html").exists()


async def test_remote_source_is_downloaded_first(
    context: ExportContext, fake_documents: Any, fake_executor: Any, tmp_path: Path
) -> None:
    link = "https://example.org/articles/intro"
    fake_documents.remote = {link: "# Remote\n"}
    target = ExportTarget(
        format=ExportFormat.NOTEBOOK,
        source=SourceReference(location=link, is_remote=True),
        output_path=tmp_path / "out" / "intro.ipynb",
    )

    result = await _run(context, target)

    assert result.ok, result.error
    assert target.output_path.read_text(encoding="utf-8") == "render-notebook:output.md"


async def test_unreachable_remote_source_fails_download_stage(
    context: ExportContext, tmp_path: Path
) -> None:
    target = ExportTarget(
        format=ExportFormat.JATS,
        source=SourceReference(location="oxa:missing/block", is_remote=True),
        output_path=tmp_path / "out" / "block.xml",
    )

    result = await _run(context, target)

    assert isinstance(result.error, StageExecutionError)
    assert result.error.stage == "download"


async def test_missing_renderer_command_is_a_failure_of_that_target(
    context: ExportContext, source_doc: Path, tmp_path: Path
) -> None:
    renderers = dict(context.settings.renderers)
    renderers["tex"] = ("render-tex", "{{ undefined_variable }}")
    broken = replace(context, settings=replace(context.settings, renderers=renderers))

    result = await PdfStrategy().run(
        _target(source_doc, ExportFormat.PDF, tmp_path / "out" / "paper.pdf"), broken
    )

    assert isinstance(result.error, ConfigurationError)


def test_registry_rejects_unknown_formats() -> None:
    registry = StrategyRegistry()

    assert ExportFormat.PDF not in registry
    with pytest.raises(ConfigurationError):
        registry.get(ExportFormat.PDF)
    registry.register(PdfStrategy())
    assert ExportFormat.PDFTEX in registry
