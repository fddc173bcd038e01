"""Byte fetchers for the manifest and newsletter documents.

A fetcher resolves a relative reference against its base (a local folder
or an http(s) URL) and returns the raw bytes. Every failure is raised as
``FetchFailed`` so callers only deal with one error type.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from newsarchive.errors import FetchFailed

log = logging.getLogger(__name__)


class ByteFetcher(Protocol):
    async def fetch(self, ref: str) -> bytes:
        ...

    async def aclose(self) -> None:
        ...


class HttpFetcher:
    """Fetch over HTTP with a shared ``httpx.AsyncClient``.

    No timeout is applied unless one is given.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=transport,
            follow_redirects=True,
        )

    def url_for(self, ref: str) -> str:
        return self.base_url + quote(ref.lstrip("/"))

    async def fetch(self, ref: str) -> bytes:
        url = self.url_for(ref)
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchFailed(ref, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise FetchFailed(ref, f"{type(e).__name__}: {e}") from e
        log.debug("Fetched %s (%d bytes)", url, len(response.content))
        return response.content

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpFetcher:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


class LocalFetcher:
    """Read files below a root directory in a worker thread."""

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def path_for(self, ref: str) -> Path:
        path = (self.root / ref.lstrip("/")).resolve()
        if not path.is_relative_to(self.root):
            raise FetchFailed(ref, "path escapes content root")
        return path

    async def fetch(self, ref: str) -> bytes:
        path = self.path_for(ref)
        try:
            data = await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise FetchFailed(ref, e.strerror or type(e).__name__) from e
        log.debug("Read %s (%d bytes)", path, len(data))
        return data

    async def aclose(self) -> None:
        return None

    async def __aenter__(self) -> LocalFetcher:
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()


def make_fetcher(base: str, *, timeout: float | None = None) -> HttpFetcher | LocalFetcher:
    """Pick a fetcher from the shape of *base*."""
    if base.startswith(("http://", "https://")):
        return HttpFetcher(base, timeout=timeout)
    return LocalFetcher(base)
