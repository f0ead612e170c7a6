from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from common.logger import get_logger
from ingestion.cleaners import normalize_for_search
from ingestion.document_models import (
    IMPORTANT_SECTIONS,
    Chunk,
    Citation,
    ProgramStatus,
)

log = get_logger(__name__)

K1 = 1.2
B = 0.75
MIN_TOKEN_LEN = 2
FUZZY_MIN_TOKEN_LEN = 6
FUZZY_MAX_DISTANCE = 2

EXACT_BONUS = 2.0
FUZZY_BONUS = 1.0
PROGRAM_NAME_BONUS = 3.0
SECTION_BONUS = 1.0
STATUS_PENALTY = {ProgramStatus.SUSPENDED: 2.0, ProgramStatus.REMOVED: 10.0}


def tokenize_query(query: str) -> List[str]:
    return [t for t in normalize_for_search(query).split() if len(t) >= MIN_TOKEN_LEN]


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(
                min(
                    prev[j] + 1,  # delete
                    cur[j - 1] + 1,  # insert
                    prev[j - 1] + (ca != cb),  # substitute
                )
            )
        prev = cur
    return prev[-1]


def fuzzy_match(token: str, words: Iterable[str], max_distance: int = FUZZY_MAX_DISTANCE) -> bool:
    """True if a word is within ``max_distance`` edits of ``token`` (length >= 6 only)."""
    if len(token) < FUZZY_MIN_TOKEN_LEN:
        return False
    for w in words:
        # length gap alone already exceeds the budget
        if abs(len(w) - len(token)) > max_distance:
            continue
        if levenshtein(token, w) <= max_distance:
            return True
    return False


def bm25_score(tokens: List[str], words: List[str], avg_len: float) -> float:
    """
    BM25-style term score with a per-chunk IDF of ln(1 + 1/tf); there is no
    corpus-wide document frequency table.
    """
    length = len(words)
    norm = 1 - B + B * (length / avg_len) if avg_len > 0 else 1.0
    score = 0.0
    for t in tokens:
        tf = sum(1 for w in words if t in w)
        if tf == 0:
            continue
        idf = math.log(1 + 1 / tf)
        score += idf * (tf * (K1 + 1)) / (tf + K1 * norm)
    return score


@dataclass(frozen=True)
class StoreStats:
    total_chunks: int
    program_count: int
    avg_chunk_length: float


@dataclass(frozen=True)
class _Snapshot:
    chunks: Tuple[Chunk, ...]
    words: Tuple[List[str], ...]
    avg_len: float


class DocumentStore:
    """
    In-memory chunk index. ``load`` replaces the whole index in a single
    assignment, so a search sees either the previous or the new snapshot.
    """

    def __init__(self, chunks: Optional[Iterable[Chunk]] = None):
        self._snap = _Snapshot(chunks=(), words=(), avg_len=0.0)
        if chunks is not None:
            self.load(chunks)

    def load(self, chunks: Iterable[Chunk]) -> None:
        chunks = tuple(chunks)
        words = tuple(c.normalized_text.split() for c in chunks)
        avg_len = sum(len(w) for w in words) / len(words) if words else 0.0
        self._snap = _Snapshot(chunks=chunks, words=words, avg_len=avg_len)
        log.info("Loaded %d chunks (avg %.1f words)", len(chunks), avg_len)

    @property
    def chunks(self) -> Tuple[Chunk, ...]:
        return self._snap.chunks

    def score_chunk(self, tokens: List[str], chunk: Chunk, words: List[str], avg_len: float) -> float:
        score = bm25_score(tokens, words, avg_len)
        for t in tokens:
            if t in chunk.normalized_text:
                score += EXACT_BONUS
            elif fuzzy_match(t, words):
                score += FUZZY_BONUS

        program_name = normalize_for_search(chunk.program_name)
        if any(t in program_name for t in tokens):
            score += PROGRAM_NAME_BONUS
        if chunk.section in IMPORTANT_SECTIONS:
            score += SECTION_BONUS

        score -= STATUS_PENALTY.get(chunk.status, 0.0)
        score += chunk.boost
        return max(0.0, score)

    def search(
        self,
        query: str,
        k: int = 6,
        filters: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[Citation]:
        tokens = tokenize_query(query)
        snap = self._snap
        if not tokens or not snap.chunks:
            return []

        program_id = (filters or {}).get("program_id")
        section = (filters or {}).get("section")

        scored: List[Tuple[float, Chunk]] = []
        for chunk, words in zip(snap.chunks, snap.words):
            if program_id and chunk.program_id != program_id:
                continue
            if section and chunk.section != section:
                continue
            score = self.score_chunk(tokens, chunk, words, snap.avg_len)
            if score > 0:
                scored.append((score, chunk))

        # sorted() is stable, equal scores keep input order
        scored = sorted(scored, key=lambda item: item[0], reverse=True)[:k]
        return [Citation.from_chunk(c, s) for s, c in scored]

    def chunks_for_program(self, program_id: str, section: Optional[str] = None) -> List[Chunk]:
        found = [
            c
            for c in self._snap.chunks
            if c.program_id == program_id and (not section or c.section == section)
        ]
        return sorted(found, key=lambda c: c.page)

    def programs(self) -> List[str]:
        return list(dict.fromkeys(c.program_id for c in self._snap.chunks))

    def stats(self) -> StoreStats:
        return StoreStats(
            total_chunks=len(self._snap.chunks),
            program_count=len(self.programs()),
            avg_chunk_length=self._snap.avg_len,
        )
