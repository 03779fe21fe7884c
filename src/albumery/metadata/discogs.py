# ABOUTME: Discogs oracle: searches the Discogs database for catalog number, label and year.
# ABOUTME: Results (including misses) are kept in an explicit, injectable TTL cache.

import logging
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import replace

from albumery.metadata.discogs_parser import parse_search_results
from albumery.metadata.http import HttpClient, MetadataFetchError
from albumery.metadata.normalizer import comparison_key
from albumery.metadata.provider import DiscogsMatch
from albumery.metadata.scoring import score_match

logger = logging.getLogger(__name__)

DISCOGS_SEARCH_URL = "https://api.discogs.com/database/search"
_SEARCH_LIMIT = 10

_MISSING = object()


class DiscogsCache:
    """Bounded LRU cache whose entries expire after `ttl` seconds.

    A cached None is a remembered miss, so repeated lookups for an album
    Discogs does not know stay off the network too. Safe to share between
    worker threads.
    """

    MISSING = _MISSING

    def __init__(
        self,
        *,
        ttl: float = 24 * 3600.0,
        max_entries: int = 4096,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._ttl = ttl
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], tuple[float, DiscogsMatch | None]] = (
            OrderedDict()
        )
        self._lock = threading.Lock()

    @staticmethod
    def key(artist: str, title: str) -> tuple[str, str]:
        return comparison_key(artist), comparison_key(title)

    def get(self, artist: str, title: str) -> object:
        """Return the cached value, or `DiscogsCache.MISSING` when absent or expired."""
        key = self.key(artist, title)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return _MISSING
            stored_at, value = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[key]
                return _MISSING
            self._entries.move_to_end(key)
            return value

    def put(self, artist: str, title: str, value: DiscogsMatch | None) -> None:
        key = self.key(artist, title)
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class DiscogsOracle:
    """DiscogsLookup backed by the Discogs REST API.

    Only the best-scoring release at or above `min_confidence` is returned.
    Network failures are logged and treated as a miss, but not cached.
    """

    def __init__(
        self,
        http_client: HttpClient,
        *,
        token: str | None = None,
        cache: DiscogsCache | None = None,
        min_confidence: float = 0.6,
    ) -> None:
        self._http = http_client
        self._token = token
        self._cache = cache if cache is not None else DiscogsCache()
        self._min_confidence = min_confidence

    @property
    def name(self) -> str:
        return "discogs"

    def lookup(self, artist: str, title: str, year: int | None = None) -> DiscogsMatch | None:
        cached = self._cache.get(artist, title)
        if cached is not DiscogsCache.MISSING:
            logger.debug("Discogs cache hit for %s - %s", artist, title)
            return cached  # type: ignore[return-value]

        params: dict[str, str] = {
            "type": "release",
            "artist": artist,
            "release_title": title,
            "per_page": str(_SEARCH_LIMIT),
        }
        if self._token:
            params["token"] = self._token

        try:
            data = self._http.get(DISCOGS_SEARCH_URL, params=params)
        except MetadataFetchError as exc:
            logger.warning("Discogs search failed for %s - %s: %s", artist, title, exc)
            return None

        best = self._best_match(parse_search_results(data), artist, title, year)
        self._cache.put(artist, title, best)
        return best

    def _best_match(
        self,
        matches: list[DiscogsMatch],
        artist: str,
        title: str,
        year: int | None,
    ) -> DiscogsMatch | None:
        scored = [
            replace(m, score=score_match(m, artist, title, year)) for m in matches
        ]
        # Stable: Discogs relevance order breaks ties.
        scored.sort(key=lambda m: m.score, reverse=True)
        if not scored or scored[0].score < self._min_confidence:
            logger.debug(
                "No Discogs release for %s - %s above %.2f", artist, title, self._min_confidence
            )
            return None
        return scored[0]
