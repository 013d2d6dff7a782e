"""Tests for the frontmatter document layer and context construction."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from docexport.assets.fetch import HttpAssetFetcher
from docexport.domain.models import ContentAddress, ExportFormat, SourceReference
from docexport.errors import ConfigurationError
from docexport.export.context import ExportContext, FrontmatterDocumentLayer
from docexport.pipeline.commands import LocalSubprocessExecutor


def _document(tmp_path: Path, frontmatter: str) -> Path:
    path = tmp_path / "doc.md"
    path.write_text(f"---\n{frontmatter}\n---\n\n# Body\n", encoding="utf-8")
    return path


def test_declared_exports_are_parsed_with_aliases(tmp_path: Path, fake_fetcher: Any) -> None:
    path = _document(
        tmp_path,
        "exports:\n  - format: latex\n    template: arxiv\n  - format: word\n    output: doc.docx",
    )

    declarations = FrontmatterDocumentLayer(fake_fetcher).declared_exports(
        SourceReference(location=path.as_posix())
    )

    assert [item.format for item in declarations] == [ExportFormat.TEX, ExportFormat.DOCX]
    assert declarations[0].template == "arxiv"
    assert declarations[1].output == "doc.docx"


def test_documents_without_frontmatter_declare_nothing(
    tmp_path: Path, fake_fetcher: Any
) -> None:
    path = tmp_path / "plain.md"
    path.write_text("# No frontmatter\n", encoding="utf-8")
    layer = FrontmatterDocumentLayer(fake_fetcher)

    assert layer.declared_exports(SourceReference(location=path.as_posix())) == ()
    assert layer.declared_exports(SourceReference(location="oxa:a/b", is_remote=True)) == ()


@pytest.mark.parametrize(
    "frontmatter",
    [
        "exports: pdf",
        "exports:\n  - output: x.pdf",
        "exports:\n  - format: html",
        "title: [unclosed",
    ],
)
def test_malformed_export_declarations_are_configuration_errors(
    tmp_path: Path, fake_fetcher: Any, frontmatter: str
) -> None:
    path = _document(tmp_path, frontmatter)

    with pytest.raises(ConfigurationError):
        FrontmatterDocumentLayer(fake_fetcher).declared_exports(
            SourceReference(location=path.as_posix())
        )


async def test_assets_are_read_from_frontmatter(tmp_path: Path, fake_fetcher: Any) -> None:
    path = _document(
        tmp_path,
        "assets:\n"
        "  - key: fig1\n"
        "    url: https://cdn.example.org/fig1\n"
        "    content_type: image/png\n"
        "    project: proj\n"
        "    block: intro\n"
        "    version: 2\n"
        "    filename: upload.png",
    )

    assets = await FrontmatterDocumentLayer(fake_fetcher).list_assets(path)

    reference = assets["fig1"]
    assert reference.address == ContentAddress(project="proj", block="intro", version=2)
    assert reference.source_filename == "upload.png"
    assert reference.explicit_name is None


async def test_incomplete_assets_are_configuration_errors(
    tmp_path: Path, fake_fetcher: Any
) -> None:
    path = _document(tmp_path, "assets:\n  - key: fig1\n    url: https://cdn.example.org/fig1")

    with pytest.raises(ConfigurationError, match="incomplete"):
        await FrontmatterDocumentLayer(fake_fetcher).list_assets(path)


async def test_remote_documents_are_fetched_as_text(fake_fetcher: Any) -> None:
    fake_fetcher.payloads = {"https://example.org/doc": "# Ünïcode".encode()}

    text = await FrontmatterDocumentLayer(fake_fetcher).fetch_document("https://example.org/doc")

    assert text == "# Ünïcode"


def test_create_fills_in_default_collaborators(settings: Any) -> None:
    context = ExportContext.create(settings)

    assert isinstance(context.fetcher, HttpAssetFetcher)
    assert isinstance(context.executor, LocalSubprocessExecutor)
    assert isinstance(context.documents, FrontmatterDocumentLayer)
    context.temp.close()
    context.fetcher.close()
