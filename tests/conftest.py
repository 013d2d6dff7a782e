"""Shared fakes for renderer processes, asset fetches and the document layer."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest
import structlog

from docexport.config.loader import ExportSettings
from docexport.domain.models import AssetReference, ExportDeclaration, SourceReference
from docexport.export.context import ExportContext
from docexport.pipeline.commands import CommandExecutor, CommandResult, CommandSpec
from docexport.workspace.temp_manager import TempArtifactManager

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence

FAKE_RENDERERS: dict[str, tuple[str, ...]] = {
    "tex": (
        "render-tex",
        "{{ input }}",
        "{{ output }}",
        "{% if template %}--template={{ template }}{% endif %}",
    ),
    "pdf": ("compile-pdf", "{{ input }}"),
    "typst": ("render-typst", "{{ input }}", "{{ output }}"),
    "docx": ("render-docx", "{{ input }}", "{{ output }}"),
    "jats": ("render-jats", "{{ input }}", "{{ output }}"),
    "notebook": ("render-notebook", "{{ input }}", "{{ output }}"),
    "jupyter_book": ("render-book", "{{ input }}", "{{ output }}"),
}


class FakeFetcher:
    """In-memory ``AssetFetcher`` with per-URL delays and failures."""

    def __init__(
        self,
        payloads: Mapping[str, bytes] | None = None,
        *,
        failures: Mapping[str, Exception] | None = None,
        delays: Mapping[str, float] | None = None,
    ) -> None:
        self.payloads = dict(payloads or {})
        self.failures = dict(failures or {})
        self.delays = dict(delays or {})
        self.calls: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        await asyncio.sleep(self.delays.get(url, 0.0))
        if url in self.failures:
            raise self.failures[url]
        return self.payloads.get(url, f"bytes:{url}".encode())


class FakeExecutor(CommandExecutor):
    """Stands in for renderer binaries: writes the file the command promises.

    ``compile-pdf <name>.tex`` writes ``<name>.pdf`` in its cwd; every other
    renderer writes its second argument (a folder for ``render-book``).
    """

    def __init__(
        self,
        *,
        fail_if: Callable[[CommandSpec], bool] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.fail_if = fail_if
        self.delay_seconds = delay_seconds
        self.specs: list[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.specs.append(spec)
        await asyncio.sleep(self.delay_seconds)
        if self.fail_if is not None and self.fail_if(spec):
            return CommandResult(
                argv=spec.argv,
                exit_code=1,
                stderr="! LaTeX Error: File `missing.sty' not found.",
            )

        program = spec.argv[0]
        if program == "compile-pdf":
            assert spec.cwd is not None
            source = Path(spec.cwd) / spec.argv[1]
            source.with_suffix(".pdf").write_bytes(b"%PDF-1.7 " + source.read_bytes())
        elif program == "render-book":
            book = Path(spec.argv[2])
            book.mkdir(parents=True, exist_ok=True)
            (book / "index.html").write_text("<html></html>", encoding="utf-8")
        else:
            output = Path(spec.argv[2])
            output.write_text(f"{program}:{Path(spec.argv[1]).name}", encoding="utf-8")
        return CommandResult(argv=spec.argv, exit_code=0, stdout="ok")

    def programs(self) -> list[str]:
        return [spec.argv[0] for spec in self.specs]


@dataclass
class FakeDocuments:
    """Document layer with fixed declarations, assets and remote content."""

    exports: dict[str, list[ExportDeclaration]] = field(default_factory=dict)
    assets: dict[str, AssetReference] = field(default_factory=dict)
    remote: dict[str, str] = field(default_factory=dict)

    async def fetch_document(self, link: str) -> str:
        if link not in self.remote:
            raise ConnectionError(f"no such document: {link}")
        return self.remote[link]

    def declared_exports(self, source: SourceReference) -> Sequence[ExportDeclaration]:
        return self.exports.get(source.location, [])

    async def list_assets(self, source: Path) -> Mapping[str, AssetReference]:
        return dict(self.assets)


def make_settings(root: Path, **changes: Any) -> ExportSettings:
    settings = ExportSettings(
        build_root=root / "_build",
        temp_root=root / "tmp",
        asset_base_path="images",
        simple_asset_names=False,
        fetch_timeout_seconds=5.0,
        max_asset_concurrency=None,
        default_output_dir=root / "exports",
        max_concurrent_targets=None,
        templates={"tex": "plain_latex", "typst": "plain_typst"},
        renderers=dict(FAKE_RENDERERS),
        renderer_timeout_seconds=30.0,
        log_dir=root / "logs",
    )
    return replace(settings, **changes) if changes else settings


@pytest.fixture
def settings(tmp_path: Path) -> ExportSettings:
    return make_settings(tmp_path)


@pytest.fixture
def settings_factory() -> Callable[..., ExportSettings]:
    return make_settings


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def fake_documents() -> FakeDocuments:
    return FakeDocuments()


@pytest.fixture
def temp_manager(tmp_path: Path) -> Iterator[TempArtifactManager]:
    manager = TempArtifactManager(tmp_path / "tmp")
    yield manager
    manager.close()


@pytest.fixture
def context(
    settings: ExportSettings,
    fake_documents: FakeDocuments,
    fake_fetcher: FakeFetcher,
    fake_executor: FakeExecutor,
    temp_manager: TempArtifactManager,
) -> ExportContext:
    return ExportContext(
        settings=settings,
        documents=fake_documents,
        fetcher=fake_fetcher,
        executor=fake_executor,
        temp=temp_manager,
        logger=structlog.get_logger("tests"),
    )


@pytest.fixture
def source_doc(tmp_path: Path) -> Path:
    path = tmp_path / "docs" / "paper.md"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("---\ntitle: Paper\n---\n\n# Paper\n", encoding="utf-8")
    return path
