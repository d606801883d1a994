from __future__ import annotations

import asyncio
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import BinaryIO
from urllib.parse import urlparse

from gif2gif.contracts import ProgressCallback, WeightFetcher
from gif2gif.errors import FetchError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1 << 20
_REMOTE_SCHEMES = frozenset({"http", "https", "file"})


class UrlWeightFetcher(WeightFetcher):
    """Fetch bytes from a local path or an ``http(s)://`` / ``file://`` URL.

    Blocking reads run in a worker thread one chunk at a time so the
    event loop stays responsive and progress is reported from the loop.
    """

    def __init__(self, timeout: float = 30.0, chunk_size: int = CHUNK_SIZE) -> None:
        self._timeout = timeout
        self._chunk_size = chunk_size

    async def fetch(
        self, source: str, progress: ProgressCallback | None = None
    ) -> bytes:
        logger.info("Fetching %s.", source)
        if urlparse(source).scheme in _REMOTE_SCHEMES:
            payload = await self._fetch_url(source, progress)
        else:
            payload = await self._fetch_path(Path(source), progress)

        if not payload:
            raise FetchError(f"Empty payload from {source}.")
        logger.info("Fetched %s (%d bytes).", source, len(payload))
        return payload

    async def _fetch_url(self, url: str, progress: ProgressCallback | None) -> bytes:
        try:
            response = await asyncio.to_thread(
                urllib.request.urlopen, url, timeout=self._timeout
            )
        except urllib.error.HTTPError as exc:
            raise FetchError(f"HTTP {exc.code} fetching {url}.") from exc
        except (urllib.error.URLError, OSError) as exc:
            raise FetchError(f"Could not fetch {url}: {exc}") from exc

        with response:
            status = getattr(response, "status", None)
            if status is not None and status != 200:
                raise FetchError(f"HTTP {status} fetching {url}.")
            length = response.headers.get("Content-Length")
            try:
                total = int(length) if length else None
            except ValueError:
                total = None
            if total is None:
                logger.warning("No usable content length for %s.", url)
            return await self._read_chunks(response, total, progress, url)

    async def _fetch_path(
        self, path: Path, progress: ProgressCallback | None
    ) -> bytes:
        try:
            total = path.stat().st_size
            handle = await asyncio.to_thread(path.open, "rb")
        except OSError as exc:
            raise FetchError(f"Could not open {path}: {exc}") from exc

        with handle:
            return await self._read_chunks(handle, total, progress, str(path))

    async def _read_chunks(
        self,
        stream: BinaryIO,
        total: int | None,
        progress: ProgressCallback | None,
        source: str,
    ) -> bytes:
        chunks: list[bytes] = []
        loaded = 0
        while True:
            try:
                chunk = await asyncio.to_thread(stream.read, self._chunk_size)
            except OSError as exc:
                raise FetchError(f"Transfer of {source} failed: {exc}") from exc
            if not chunk:
                break
            chunks.append(chunk)
            loaded += len(chunk)
            if progress is not None:
                progress(loaded, total)
        return b"".join(chunks)
