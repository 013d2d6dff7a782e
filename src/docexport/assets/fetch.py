"""Byte fetchers for referenced assets and remote documents."""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

import requests


@runtime_checkable
class AssetFetcher(Protocol):
    """Fetch raw bytes for a URL. Transport failures raise ``ConnectionError``."""

    async def fetch(self, url: str) -> bytes: ...


class HttpAssetFetcher(AssetFetcher):
    """``requests``-backed fetcher; blocking calls run in a worker thread."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 60.0,
        session: requests.Session | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds
        self._session = session if session is not None else requests.Session()
        self._headers = dict(headers or {})

    async def fetch(self, url: str) -> bytes:
        return await asyncio.to_thread(self._fetch_sync, url)

    def _fetch_sync(self, url: str) -> bytes:
        try:
            resp = self._session.get(url, timeout=self._timeout_seconds, headers=self._headers)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ConnectionError(f"GET {url} failed: {exc}") from exc
        return resp.content

    def close(self) -> None:
        self._session.close()


__all__ = ["AssetFetcher", "HttpAssetFetcher"]
