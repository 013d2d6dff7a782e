"""
docexport - asset materialization.

File: src/docexport/assets/materializer.py

Purpose
- Fetch every asset referenced by a document and write it under the build
  folder with a unique, human-meaningful filename.

Functional requirements
- Fetches run concurrently; one asset's failure never aborts its siblings.
- Name selection and the "taken" set update happen inside one critical
  section, so two assets can never claim the same relative path.
- An asset sharing a content address with one already written reuses that
  file unless one of its own preferred names is still free.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

import structlog

from docexport.assets.mime import extension_for
from docexport.constants import IMAGES_DIR
from docexport.domain.models import (
    AssetReference,
    ContentAddress,
    MaterializedAsset,
    posix_relative,
)
from docexport.domain.outcome import Failure, Success
from docexport.errors import AssetFetchError, AssetFetchErrorKind, FilenameCollisionExhausted
from docexport.utils.concurrency import settle_all
from docexport.utils.fs import atomic_write

if TYPE_CHECKING:
    from docexport.assets.fetch import AssetFetcher


@dataclass(frozen=True, slots=True)
class AssetMaterializationReport:
    """Per-build result: written assets plus the failures of the others."""

    assets: tuple[MaterializedAsset, ...] = ()
    failures: Mapping[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def paths(self) -> dict[str, str]:
        """Mapping of asset key to relative path, for reference rewriting."""

        return {asset.key: asset.relative_path for asset in self.assets}

    def raise_for_failures(self) -> None:
        """Raise the first failure in submission order, if any."""

        for error in self.failures.values():
            raise error


def select_candidate(
    candidates: tuple[str, ...],
    extension: str,
    taken: set[str] | frozenset[str],
    *,
    key: str,
    base_path: str = IMAGES_DIR,
    default: str | None = None,
) -> str:
    """
    Return the relative path of the first usable candidate not in ``taken``.

    Empty candidates are skipped, directory parts are stripped and
    ``extension`` is appended when absent. When every candidate is taken,
    ``default`` is returned if given, otherwise ``FilenameCollisionExhausted``
    is raised.
    """

    tried: list[str] = []
    for raw in candidates:
        name = _normalize_name(raw, extension)
        if not name:
            continue
        relative = posix_relative(base_path, name)
        tried.append(relative)
        if relative not in taken:
            return relative
    if default is not None:
        return default
    raise FilenameCollisionExhausted(key, tuple(tried))


class AssetMaterializer:
    """Writes one document's assets into a single build folder."""

    def __init__(
        self,
        build_folder: Path,
        *,
        fetcher: AssetFetcher,
        base_path: str = IMAGES_DIR,
        max_concurrency: int | None = None,
        logger: Any | None = None,
    ) -> None:
        self._build_folder = Path(build_folder)
        self._fetcher = fetcher
        self._base_path = base_path
        self._max_concurrency = max_concurrency
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._claim_lock = asyncio.Lock()
        self._taken: set[str] = set()
        self._by_address: dict[tuple[ContentAddress, str], str] = {}

    @property
    def build_folder(self) -> Path:
        return self._build_folder

    @property
    def taken(self) -> frozenset[str]:
        return frozenset(self._taken)

    async def materialize(self, assets: Mapping[str, AssetReference]) -> AssetMaterializationReport:
        keys = list(assets)
        outcomes = await settle_all(
            [partial(self.materialize_one, assets[key]) for key in keys],
            max_concurrency=self._max_concurrency,
        )

        materialized: list[MaterializedAsset] = []
        failures: dict[str, Exception] = {}
        for key, outcome in zip(keys, outcomes, strict=True):
            if isinstance(outcome, Success):
                materialized.append(outcome.value)
            else:
                failures[key] = outcome.error
                self._logger.warning("asset_failed", key=key, error=str(outcome.error))

        written = sum(1 for asset in materialized if asset.bytes_written)
        self._logger.info(
            "assets_materialized",
            build_folder=self._build_folder.as_posix(),
            written=written,
            deduplicated=len(materialized) - written,
            failed=len(failures),
        )
        return AssetMaterializationReport(assets=tuple(materialized), failures=failures)

    async def materialize_one(self, reference: AssetReference) -> MaterializedAsset:
        resolved = extension_for(reference.content_type, key=reference.key)
        if isinstance(resolved, Failure):
            raise resolved.error
        extension = resolved.value

        try:
            data = await self._fetcher.fetch(reference.source_url)
        except OSError as exc:
            raise AssetFetchError(reference.key, AssetFetchErrorKind.NETWORK, str(exc)) from exc

        async with self._claim_lock:
            dedup_key = (reference.address, extension)
            existing = self._by_address.get(dedup_key)
            candidates = reference.candidate_names
            if existing is not None:
                # Shared content stands in only for the content-addressed fallback.
                candidates = candidates[:-1]
            relative = select_candidate(
                candidates,
                extension,
                self._taken,
                key=reference.key,
                base_path=self._base_path,
                default=existing,
            )
            if relative == existing:
                self._logger.debug("asset_deduplicated", key=reference.key, path=existing)
                return MaterializedAsset(
                    key=reference.key, relative_path=relative, bytes_written=0
                )

            try:
                await asyncio.to_thread(atomic_write, self._build_folder / relative, data)
            except OSError as exc:
                raise AssetFetchError(reference.key, AssetFetchErrorKind.WRITE, str(exc)) from exc
            self._taken.add(relative)
            self._by_address.setdefault(dedup_key, relative)

        self._logger.info("asset_written", key=reference.key, path=relative, bytes=len(data))
        return MaterializedAsset(key=reference.key, relative_path=relative, bytes_written=len(data))


def _normalize_name(raw: str, extension: str) -> str:
    name = PurePosixPath(raw.replace("\\", "/").strip()).name
    if name in ("", ".", ".."):
        return ""
    if not name.lower().endswith(f".{extension.lower()}"):
        name = f"{name}.{extension}"
    return name


__all__ = ["AssetMaterializationReport", "AssetMaterializer", "select_candidate"]
