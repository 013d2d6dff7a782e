"""
docexport - export orchestrator facade.

File: src/docexport/export/orchestrator.py

Purpose
- Resolve requests into targets, run the targets as one concurrent batch and
  report every outcome.

Functional requirements
- All requests are resolved before any target runs; a ``ConfigurationError``
  aborts the whole export.
- Target failures never abort the batch; they appear in the report.
- ``run_export`` is the synchronous entrypoint for callers outside the engine:
  it loads config, sets up logging and maps the result onto ``ExitCode``.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from docexport.assets.fetch import HttpAssetFetcher
from docexport.config.loader import ExportSettings, load_config
from docexport.config.schema import redact_config
from docexport.errors import ConfigurationError
from docexport.export.batch import BatchExecutor
from docexport.export.context import ExportContext
from docexport.export.report import ExportReport
from docexport.export.resolver import ExportTargetResolver
from docexport.observability.logging import setup_logging, shutdown_logging
from docexport.pipeline.strategies import StrategyRegistry
from docexport.workspace.temp_manager import TempArtifactManager

if TYPE_CHECKING:
    from collections.abc import Sequence

    from docexport.assets.fetch import AssetFetcher
    from docexport.domain.models import ExportRequest, ExportTarget
    from docexport.export.context import DocumentLayer
    from docexport.pipeline.commands import CommandExecutor

logger = structlog.get_logger(__name__)


class ExportOrchestrator:
    """Resolver, strategy registry and batch executor bound to one context."""

    def __init__(
        self,
        context: ExportContext,
        *,
        strategies: StrategyRegistry | None = None,
        resolver: ExportTargetResolver | None = None,
        batch: BatchExecutor | None = None,
    ) -> None:
        self._context = context
        self._strategies = strategies if strategies is not None else StrategyRegistry.default()
        self._resolver = (
            resolver
            if resolver is not None
            else ExportTargetResolver(context.settings, documents=context.documents)
        )
        self._batch = (
            batch
            if batch is not None
            else BatchExecutor(
                max_concurrency=context.settings.max_concurrent_targets,
                logger=context.logger,
            )
        )

    @property
    def context(self) -> ExportContext:
        return self._context

    def resolve(self, requests: Sequence[ExportRequest]) -> tuple[ExportTarget, ...]:
        targets = self._resolver.resolve_all(requests)
        for target in targets:
            self._strategies.get(target.format)
        return targets

    async def export(self, *requests: ExportRequest) -> ExportReport:
        """Resolve every request, then run all resulting targets concurrently."""

        targets = self.resolve(requests)
        self._context.logger.info(
            "export_resolved",
            requests=len(requests),
            targets=[target.label for target in targets],
        )
        results = await self._batch.run(
            targets, context=self._context, strategies=self._strategies
        )
        report = ExportReport(results=tuple(results))
        self._context.logger.info(
            "export_finished",
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            exit_code=int(report.exit_code),
        )
        return report


def new_run_id() -> str:
    stamp = datetime.now(UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid.uuid4().hex[:8]}"


def run_export(
    requests: Sequence[ExportRequest],
    *,
    config_path: str | Path | None = None,
    profile: str | None = None,
    overrides: Mapping[str, object] | None = None,
    run_id: str | None = None,
    documents: DocumentLayer | None = None,
    fetcher: AssetFetcher | None = None,
    executor: CommandExecutor | None = None,
) -> ExportReport:
    """Load config, export every request and return the aggregate report."""

    try:
        config = load_config(config_path, profile=profile, cli_overrides=overrides)
        settings = ExportSettings.from_config(config)
    except ConfigurationError as exc:
        return ExportReport(config_error=exc)

    handle = setup_logging(
        {
            "log_level": settings.log_level,
            "log_format": settings.log_format,
            "log_dir": settings.log_dir,
            "redact_secrets": settings.redact_secrets,
        },
        run_id=run_id or new_run_id(),
    )
    logger.debug("config_loaded", config=redact_config(config))
    owned_fetcher: HttpAssetFetcher | None = None
    if fetcher is None:
        owned_fetcher = HttpAssetFetcher(timeout_seconds=settings.fetch_timeout_seconds)
    try:
        with TempArtifactManager(settings.temp_root) as temp:
            context = ExportContext.create(
                settings,
                documents=documents,
                fetcher=fetcher if fetcher is not None else owned_fetcher,
                executor=executor,
                temp=temp,
            )
            try:
                return asyncio.run(ExportOrchestrator(context).export(*requests))
            except ConfigurationError as exc:
                logger.error("export_aborted", error=str(exc))
                return ExportReport(config_error=exc)
    finally:
        if owned_fetcher is not None:
            owned_fetcher.close()
        shutdown_logging(handle)


__all__ = ["ExportOrchestrator", "new_run_id", "run_export"]
