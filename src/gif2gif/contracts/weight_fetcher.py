from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

ProgressCallback = Callable[[int, "int | None"], None]
"""Called with ``(bytes_loaded, total_bytes)``; total is None when unknown."""


class WeightFetcher(ABC):
    """Transfer the raw bytes of a weight (or input) source."""

    @abstractmethod
    async def fetch(
        self, source: str, progress: ProgressCallback | None = None
    ) -> bytes:
        """Return the full payload or raise FetchError."""
        raise NotImplementedError
