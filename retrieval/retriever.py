from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from common.config import yaml_config
from common.logger import get_logger
from ingestion.document_models import Chunk, Citation, ProgramStatus, RetrievalResult
from overrides.merge import apply_chunk_overrides
from overrides.models import RagOverrides
from overrides.repository import OverridesRepository
from retrieval.filters import RetrievalTopic, build_store_filters, section_for_topic
from vectorstore.document_store import DocumentStore

log = get_logger(__name__)

CONTEXT_HEADER = "BROCHURE CONTEXT:\n\n"
WARNING_SUSPENDED = "Program currently suspended: no applications possible"
WARNING_ENDING = "Program is ending: limited remaining term"

Tracker = Callable[[Dict[str, Any]], None]


@dataclass(frozen=True)
class IndexReport:
    original_chunks: int
    processed_chunks: int
    overrides_applied: bool

    @property
    def muted_chunks(self) -> int:
        return self.original_chunks - self.processed_chunks


def format_citation(citation: Citation) -> str:
    return (
        f"[{citation.program_name} (#{citation.program_id}), p. {citation.page}, "
        f"{citation.section}]\n{citation.text}\n\n"
    )


class DocumentRetriever:
    """
    Facade used by the chat layer: turns a question or a list of program ids
    into citations, a bounded context string and status warnings.
    """

    def __init__(self, store: DocumentStore, tracker: Optional[Tracker] = None):
        self.store = store
        self.tracker = tracker

    def _track(self, kind: str, hits: int) -> None:
        if self.tracker is None:
            return
        self.tracker(
            {"t": "rag.retrieve", "at": int(time.time() * 1000), "q": kind, "hits": hits}
        )

    def build_index(
        self,
        base_chunks: Sequence[Chunk],
        overrides: Optional[RagOverrides] = None,
        repository: Optional[OverridesRepository] = None,
    ) -> IndexReport:
        """
        Rebuild the store from ``base_chunks`` with chunk overrides applied.
        Falls back to the base chunks if the stored overrides cannot be read.
        """
        applied = True
        try:
            if overrides is None:
                overrides = repository.load() if repository is not None else RagOverrides()
            processed = apply_chunk_overrides(base_chunks, overrides)
        except (OSError, ValueError) as e:
            log.warning("Failed to apply overrides, using base chunks: %s", e)
            processed = list(base_chunks)
            applied = False

        self.store.load(processed)
        report = IndexReport(
            original_chunks=len(base_chunks),
            processed_chunks=len(processed),
            overrides_applied=applied,
        )
        log.info(
            "Index rebuilt: %d chunks, %d muted",
            report.processed_chunks,
            report.muted_chunks,
        )
        return report

    def retrieve_for_query(
        self,
        query: str,
        k: Optional[int] = None,
        program_id: Optional[str] = None,
        section: Optional[str] = None,
    ) -> RetrievalResult:
        if k is None:
            k = yaml_config.retrieval.k
        filters = build_store_filters(program_id, section)
        citations = self.store.search(query, k, filters)
        self._track("free", len(citations))
        return RetrievalResult(
            chunks=citations, total_found=len(citations), query=query, filters=filters
        )

    def retrieve_for_programs(
        self,
        program_ids: Sequence[str],
        topic: RetrievalTopic = None,
        k: Optional[int] = None,
    ) -> RetrievalResult:
        """
        Up to ``ceil(k / len(program_ids))`` chunks per program in page order,
        concatenated and cut to ``k``; later programs can come up short.
        """
        if k is None:
            k = yaml_config.retrieval.program_k
        section = section_for_topic(topic)
        citations: List[Citation] = []
        if program_ids:
            per_program = math.ceil(k / len(program_ids))
            for pid in program_ids:
                chunks = self.store.chunks_for_program(pid, section)[:per_program]
                citations.extend(Citation.from_chunk(c, 1.0) for c in chunks)

        self._track(topic or "free", len(citations))
        return RetrievalResult(
            chunks=citations[:k],
            total_found=len(citations),
            query=f"Programs: {', '.join(program_ids)}",
            filters={"section": section, "topic": topic},
        )

    def build_context(self, citations: Sequence[Citation], max_length: Optional[int] = None) -> str:
        """Whole citation blocks in order until the next one would exceed ``max_length``."""
        if max_length is None:
            max_length = yaml_config.retrieval.max_context_chars
        if not citations or len(CONTEXT_HEADER) > max_length:
            return ""
        parts = [CONTEXT_HEADER]
        length = len(CONTEXT_HEADER)
        for c in citations:
            block = format_citation(c)
            if length + len(block) > max_length:
                break
            parts.append(block)
            length += len(block)
        return "".join(parts).strip()

    def get_warnings(self, citations: Sequence[Citation]) -> List[str]:
        statuses = {c.status for c in citations}
        warnings: List[str] = []
        if ProgramStatus.SUSPENDED in statuses:
            warnings.append(WARNING_SUSPENDED)
        if ProgramStatus.ENDING in statuses:
            warnings.append(WARNING_ENDING)
        return warnings
