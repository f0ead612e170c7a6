from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from common.config import yaml_config
from common.logger import get_logger
from ingestion.document_models import Chunk, ProgramMeta, RagStats
from ingestion.loaders import (
    PROGRAM_META_FILE,
    DataSource,
    DataUnavailableError,
    make_data_source,
)
from ingestion.schema import (
    chunk_defects,
    migrate_chunks,
    migrate_program_meta,
    validate_chunks,
    validate_meta,
    validate_references,
    validate_stats,
)
from storage.kv_store import FileStore
from storage.rag_cache import CacheSource, RagCache

log = get_logger(__name__)


@dataclass
class Dataset:
    stats: RagStats
    chunks: List[Chunk]  # active set, base (no overrides applied)
    excluded: List[Tuple[Chunk, str]]
    program_meta: List[ProgramMeta]
    source: CacheSource
    problems: List[str] = field(default_factory=list)

    @property
    def all_chunks(self) -> List[Chunk]:
        """Active and excluded chunks together, in that order."""
        return self.chunks + [c for c, _ in self.excluded]


def partition_chunks(
    chunks: List[Chunk], min_chars: Optional[int] = None
) -> Tuple[List[Chunk], List[Tuple[Chunk, str]]]:
    """
    Split chunks into the active set and the excluded ones with a reason.
    Excluded: structural defects or text shorter than ``min_chars``.
    """
    min_chars = yaml_config.quality.min_chunk_chars if min_chars is None else min_chars
    valid: List[Chunk] = []
    invalid: List[Tuple[Chunk, str]] = []
    for c in chunks:
        defects = chunk_defects(c)
        if len(c.text.strip()) < min_chars:
            defects.append(f"text shorter than {min_chars} chars")
        if not c.program_name:
            defects.append("missing program_name")
        if defects:
            reason = "; ".join(defects)
            log.warning("Excluding chunk %s (%s p. %s): %s", c.id or "?", c.program_id, c.page, reason)
            invalid.append((c, reason))
        else:
            valid.append(c)
    return valid, invalid


def load_program_meta(source: DataSource) -> List[ProgramMeta]:
    """Program metadata is optional; a missing file yields an empty list."""
    try:
        raw = source.fetch_json(PROGRAM_META_FILE)
    except DataUnavailableError as e:
        log.warning("Program meta unavailable: %s", e)
        return []
    return migrate_program_meta(raw)


def load_dataset(cache: RagCache) -> Dataset:
    """
    stats -> cached chunks -> migrate -> validate -> quality partition.
    Raises DataUnavailableError when stats or chunks cannot be fetched.
    """
    stats = cache.load_stats()
    if stats is None:
        raise DataUnavailableError(f"stats.json not available from {cache.source.location}")

    problems = validate_stats(stats)
    cached = cache.load_chunks_cached(stats)
    chunks = migrate_chunks(cached.chunks)
    problems += validate_chunks(chunks)

    metas = load_program_meta(cache.source)
    if metas:
        problems += validate_meta(metas)
        problems += validate_references(chunks, metas)
    for p in problems:
        log.warning("Data quality: %s", p)

    active, excluded = partition_chunks(chunks)
    log.info(
        "Dataset for build %s: %d active chunks, %d excluded (source: %s)",
        stats.build_id,
        len(active),
        len(excluded),
        cached.source,
    )
    return Dataset(
        stats=stats,
        chunks=active,
        excluded=excluded,
        program_meta=metas,
        source=cached.source,
        problems=problems,
    )


def default_cache(data_url: Optional[str] = None, state_dir: Optional[Path] = None) -> RagCache:
    state_dir = Path(state_dir or yaml_config.app.state_dir)
    return RagCache(make_data_source(data_url), FileStore(state_dir / "cache"))
