from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, List, Literal, Optional

import orjson

from common.logger import get_logger
from ingestion.document_models import RagStats
from ingestion.loaders import CHUNKS_FILE, STATS_FILE, DataSource, DataUnavailableError
from ingestion.schema import migrate_stats
from storage.kv_store import KeyValueStore

log = get_logger(__name__)

CHUNK_CACHE_PREFIX = "chunks:"

CacheSource = Literal["network", "cache"]


@dataclass(frozen=True)
class CachedChunks:
    chunks: List[Any]  # raw records, not yet migrated
    source: CacheSource
    key: str


@dataclass(frozen=True)
class CacheInfo:
    source: CacheSource = "network"
    build_id: Optional[str] = None
    chunks: int = 0
    location: str = ""


def chunk_cache_key(build_id: str) -> str:
    return f"{CHUNK_CACHE_PREFIX}{build_id}"


def _parse_chunk_array(text: str) -> Optional[List[Any]]:
    """The chunk payload as a list, or None when it is not a JSON array."""
    try:
        parsed = orjson.loads(text)
    except orjson.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, list) else None


class RagCache:
    """
    Versioned cache for the chunk payload. The build id from ``stats.json``
    is the cache key; at most one build's chunks are retained.
    """

    def __init__(self, source: DataSource, kv: KeyValueStore):
        self.source = source
        self.kv = kv
        self._info = CacheInfo(location=source.location)

    @property
    def info(self) -> CacheInfo:
        return self._info

    def load_stats(self) -> Optional[RagStats]:
        """Always hits the source; returns None when stats are unavailable."""
        try:
            raw = self.source.fetch_json(STATS_FILE)
        except DataUnavailableError as e:
            log.warning("Stats unavailable: %s", e)
            return None
        stats = migrate_stats(raw)
        self._info = replace(self._info, build_id=stats.build_id)
        return stats

    def load_chunks_cached(self, stats: RagStats) -> CachedChunks:
        key = chunk_cache_key(stats.build_id)
        hit = self.kv.get(key)
        if hit is not None:
            cached = _parse_chunk_array(hit)
            if cached is None:
                log.warning("Corrupt cache entry %s; refetching", key)
                self.kv.delete(key)
            else:
                log.info("Cache hit for build %s", stats.build_id)
                return self._done(cached, "cache", key)

        # DataUnavailableError propagates: no silent empty result
        text = self.source.fetch_text(CHUNKS_FILE)
        parsed = _parse_chunk_array(text)
        if parsed is None:
            raise DataUnavailableError(f"{CHUNKS_FILE} is not a JSON array of chunks")
        self.kv.put(key, text)
        swept = 0
        for k in self.kv.keys_with_prefix(CHUNK_CACHE_PREFIX):
            if k != key:
                self.kv.delete(k)
                swept += 1
        log.info("Cached chunks for build %s (evicted %d stale builds)", stats.build_id, swept)
        return self._done(parsed, "network", key)

    def clear(self) -> int:
        n = self.kv.clear(CHUNK_CACHE_PREFIX)
        self._info = CacheInfo(location=self.source.location)
        log.info("Cleared %d cached chunk payloads", n)
        return n

    def _done(self, chunks: List[Any], source: CacheSource, key: str) -> CachedChunks:
        self._info = replace(
            self._info,
            source=source,
            build_id=key[len(CHUNK_CACHE_PREFIX):],
            chunks=len(chunks),
        )
        return CachedChunks(chunks=chunks, source=source, key=key)
