from __future__ import annotations

import logging

from gif2gif.contracts import ProgressCallback, WeightFetcher
from gif2gif.fetchers import UrlWeightFetcher
from gif2gif.models import WeightMap
from gif2gif.weights.codec import decode_weight_file

logger = logging.getLogger(__name__)


class WeightStore:
    """Fetch, decode and cache weight maps by source.

    Each source is transferred and decoded at most once per store; failed
    loads leave the cache untouched. Construct one store per process and
    pass it to whoever needs lookups.
    """

    def __init__(self, fetcher: WeightFetcher | None = None) -> None:
        self._fetcher = fetcher or UrlWeightFetcher()
        self._cache: dict[str, WeightMap] = {}

    async def get_weights(
        self, source: str, progress: ProgressCallback | None = None
    ) -> WeightMap:
        cached = self._cache.get(source)
        if cached is not None:
            logger.debug("Weight cache hit for %s.", source)
            return cached

        logger.info("Weight cache miss for %s; loading.", source)
        payload = await self._fetcher.fetch(source, progress)
        weights = decode_weight_file(payload, source=source)
        self._cache[source] = weights
        return weights

    def __contains__(self, source: object) -> bool:
        return source in self._cache

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
