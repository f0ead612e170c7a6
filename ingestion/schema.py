"""
Canonicalization of raw ingestion output.

The brochure ingester has shipped several field-naming conventions over time
(camelCase, snake_case, a few German keys). Every ``migrate_*`` function maps
them onto the canonical records in ``ingestion.document_models`` and never
raises: missing or malformed fields are defaulted. The matching
``validate_*`` functions report what is still wrong as human-readable strings
and leave it to the caller to abort or continue with a degraded dataset.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from common.logger import get_logger
from ingestion.cleaners import collapse_whitespace, normalize_for_search
from ingestion.document_models import (
    SECTION_APPLICATION,
    SECTION_ELIGIBILITY,
    SECTION_FUNDING_AMOUNT,
    SECTION_GENERAL,
    Chunk,
    ProgramMeta,
    ProgramStatus,
    RagStats,
    SectionRange,
)

log = get_logger(__name__)

# snake_case key -> canonical key, applied after camelCase conversion
STATS_ALIASES: Dict[str, str] = {
    "pages": "total_pages",
    "chunks": "total_chunks",
    "programs": "programs_found",
    "programs_count": "programs_found",
    "last_modified": "built_at",
    "by_sections": "sections_count",
    "sections": "sections_count",
}
META_ALIASES: Dict[str, str] = {
    "id": "program_id",
    "title": "name",
    "program_name": "name",
    "von": "start_page",
    "bis": "end_page",
    "schlagworte": "keywords",
}
CHUNK_ALIASES: Dict[str, str] = {
    "seite": "page",
    "page_number": "page",
    "abschnitt": "section",
    "programm_id": "program_id",
    "programm_name": "program_name",
    "normalized": "normalized_text",
    "start": "start_char",
    "end": "end_char",
}

# Children of these keys are data (section names, program ids), not fields
STATS_OPAQUE = frozenset({"sections_count", "by_program"})
META_OPAQUE = frozenset({"sections"})

STATUS_ALIASES: Dict[str, ProgramStatus] = {
    "aktiv": ProgramStatus.ACTIVE,
    "ausgesetzt": ProgramStatus.SUSPENDED,
    "endet_am": ProgramStatus.ENDING,
    "endet": ProgramStatus.ENDING,
    "entfallen": ProgramStatus.REMOVED,
}

# Keyed by the folded label, see normalize_for_search
SECTION_ALIASES: Dict[str, str] = {
    "allgemein": SECTION_GENERAL,
    "voraussetzungen": SECTION_ELIGIBILITY,
    "eligibility_requirements": SECTION_ELIGIBILITY,
    "foerderhoehe": SECTION_FUNDING_AMOUNT,
    "foerderung": SECTION_FUNDING_AMOUNT,
    "antragsweg": SECTION_APPLICATION,
    "application": SECTION_APPLICATION,
}

_CAMEL_RE = re.compile(r"(?<=[a-z0-9])([A-Z])")


def canonical_key(key: str, table: Mapping[str, str]) -> str:
    snake = _CAMEL_RE.sub(r"_\1", str(key)).lower()
    return table.get(snake, snake)


def rename_keys(obj: Any, table: Mapping[str, str], opaque: Iterable[str] = ()) -> Any:
    """
    Recursively rename mapping keys through ``table``.

    Values under a key listed in ``opaque`` keep their own keys verbatim
    (they are data such as section names) but their values are still renamed.
    """
    opaque = frozenset(opaque)
    if isinstance(obj, list):
        return [rename_keys(v, table, opaque) for v in obj]
    if not isinstance(obj, Mapping):
        return obj
    out: Dict[str, Any] = {}
    for key, value in obj.items():
        canon = canonical_key(key, table)
        if canon in out and value is None:
            continue
        if canon in opaque and isinstance(value, Mapping):
            out[canon] = {k: rename_keys(v, table, opaque) for k, v in value.items()}
        else:
            out[canon] = rename_keys(value, table, opaque)
    return out


def _as_int(value: Any, default: Optional[int]) -> Optional[int]:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def canonical_status(value: Any) -> ProgramStatus:
    if isinstance(value, ProgramStatus):
        return value
    s = _as_str(value).strip().lower()
    try:
        return ProgramStatus(s)
    except ValueError:
        pass
    if s in STATUS_ALIASES:
        return STATUS_ALIASES[s]
    # free-form values such as "endet am 2025-12-31"
    if s.startswith("endet") or s.startswith("ending"):
        return ProgramStatus.ENDING
    return ProgramStatus.ACTIVE


def canonical_section(value: Any, default: Optional[str] = SECTION_GENERAL) -> Optional[str]:
    s = collapse_whitespace(_as_str(value))
    if not s:
        return default
    folded = normalize_for_search(s).replace(" ", "_")
    return SECTION_ALIASES.get(folded, s)


def synthesize_build_id(total_chunks: int, total_pages: int, programs_found: int) -> str:
    return f"{total_chunks}-{total_pages}-{programs_found}"


def migrate_stats(raw: Any) -> RagStats:
    data = rename_keys(raw, STATS_ALIASES, STATS_OPAQUE) if isinstance(raw, Mapping) else {}

    total_chunks = _as_int(data.get("total_chunks"), 0)
    total_pages = _as_int(data.get("total_pages"), 0)
    programs_found = _as_int(data.get("programs_found"), 0)
    build_id = _as_str(data.get("build_id")).strip() or synthesize_build_id(
        total_chunks, total_pages, programs_found
    )

    def _counts(value: Any) -> Dict[str, int]:
        if not isinstance(value, Mapping):
            return {}
        return {str(k): _as_int(v, 0) for k, v in value.items()}

    avg = data.get("avg_chunk_length")
    return RagStats(
        build_id=build_id,
        built_at=_as_str(data.get("built_at")) or None,
        total_pages=total_pages,
        programs_found=programs_found,
        total_chunks=total_chunks,
        sections_count=_counts(data.get("sections_count")),
        by_program=_counts(data.get("by_program")),
        avg_chunk_length=float(avg) if isinstance(avg, (int, float)) else None,
    )


def page_pair(data: Mapping[str, Any]) -> Tuple[Optional[int], Optional[int]]:
    pages = data.get("pages")
    if isinstance(pages, (list, tuple)) and len(pages) == 2:
        return _as_int(pages[0], None), _as_int(pages[1], None)
    if isinstance(pages, Mapping):
        return _as_int(pages.get("start"), None), _as_int(pages.get("end"), None)
    return _as_int(data.get("start_page"), None), _as_int(data.get("end_page"), None)


def _migrate_sections(raw: Any) -> Dict[str, SectionRange]:
    if not isinstance(raw, Mapping):
        return {}
    out: Dict[str, SectionRange] = {}
    for name, value in raw.items():
        value = value if isinstance(value, Mapping) else {}
        start, end = page_pair(value)
        keywords = value.get("keywords") or ()
        if isinstance(keywords, str):
            keywords = (keywords,)
        out[canonical_section(name)] = SectionRange(
            start_page=start,
            end_page=end,
            keywords=tuple(str(k) for k in keywords),
        )
    return out


def migrate_program_meta(raw: Any) -> List[ProgramMeta]:
    """Accepts a list of records or a mapping of program id -> record."""
    if isinstance(raw, Mapping):
        entries = []
        for key, value in raw.items():
            if isinstance(value, Mapping):
                record = rename_keys(value, META_ALIASES, META_OPAQUE)
                record.setdefault("program_id", key)
                entries.append(record)
    elif isinstance(raw, list):
        entries = [
            rename_keys(v, META_ALIASES, META_OPAQUE) for v in raw if isinstance(v, Mapping)
        ]
    else:
        log.warning("Program meta payload is neither a list nor a mapping; ignoring it")
        entries = []

    metas: List[ProgramMeta] = []
    for data in entries:
        metas.append(
            ProgramMeta(
                program_id=_as_str(data.get("program_id")).strip(),
                name=collapse_whitespace(_as_str(data.get("name"))),
                pages=page_pair(data),
                stand=_as_str(data.get("stand")),
                status=canonical_status(data.get("status")),
                sections=_migrate_sections(data.get("sections")),
            )
        )
    return metas


def migrate_chunks(raw: Any) -> List[Chunk]:
    if not isinstance(raw, list):
        log.warning("Chunk payload is not a list; treating it as empty")
        return []

    chunks: List[Chunk] = []
    repaired = 0
    for i, item in enumerate(raw):
        if not isinstance(item, Mapping):
            log.warning("Skipping chunk #%d: not an object", i)
            continue
        data = rename_keys(item, CHUNK_ALIASES)
        text = _as_str(data.get("text"))
        normalized = data.get("normalized_text")
        if not isinstance(normalized, str) or not normalized.strip():
            normalized = normalize_for_search(text)
            repaired += 1
        start_char = _as_int(data.get("start_char"), 0)
        chunks.append(
            Chunk(
                id=_as_str(data.get("id")).strip(),
                text=text,
                normalized_text=normalized,
                program_id=_as_str(data.get("program_id")).strip(),
                program_name=_as_str(data.get("program_name")),
                page=_as_int(data.get("page"), 0),
                section=canonical_section(data.get("section")),
                stand=_as_str(data.get("stand")),
                status=canonical_status(data.get("status")),
                start_char=start_char,
                end_char=_as_int(data.get("end_char"), start_char + len(text)),
            )
        )
    if repaired:
        log.info("Regenerated normalized text for %d chunks", repaired)
    return chunks


def validate_stats(stats: RagStats) -> List[str]:
    problems: List[str] = []
    if not stats.build_id:
        problems.append("stats: missing build_id")
    for name in ("total_pages", "programs_found", "total_chunks"):
        if getattr(stats, name) < 0:
            problems.append(f"stats: {name} is negative ({getattr(stats, name)})")
    if stats.sections_count:
        counted = sum(stats.sections_count.values())
        if stats.total_chunks and counted != stats.total_chunks:
            problems.append(
                f"stats: sections_count adds up to {counted}, total_chunks is {stats.total_chunks}"
            )
    return problems


def validate_meta(metas: Sequence[ProgramMeta]) -> List[str]:
    problems: List[str] = []
    seen = Counter(m.program_id for m in metas)
    for pid, n in seen.items():
        if pid and n > 1:
            problems.append(f"meta: program id {pid!r} defined {n} times")
    for i, m in enumerate(metas):
        ref = m.program_id or f"#{i}"
        if not m.program_id:
            problems.append(f"meta {ref}: missing program_id")
        if not m.name:
            problems.append(f"meta {ref}: missing name")
        start, end = m.pages
        if start is not None and end is not None and start > end:
            problems.append(f"meta {ref}: page range {start}-{end} is inverted")
        for name, rng in m.sections.items():
            if (
                rng.start_page is not None
                and rng.end_page is not None
                and rng.start_page > rng.end_page
            ):
                problems.append(
                    f"meta {ref}: section {name!r} range {rng.start_page}-{rng.end_page} is inverted"
                )
    return problems


def chunk_defects(chunk: Chunk) -> List[str]:
    """Structural defects of a single chunk."""
    problems: List[str] = []
    if not chunk.id:
        problems.append("missing id")
    if not chunk.program_id:
        problems.append("missing program_id")
    if not chunk.section:
        problems.append("missing section")
    if not chunk.text.strip():
        problems.append("missing text")
    if chunk.page < 1:
        problems.append(f"invalid page {chunk.page}")
    if chunk.end_char < chunk.start_char:
        problems.append(f"offsets [{chunk.start_char}, {chunk.end_char}) are inverted")
    return problems


def validate_chunks(chunks: Sequence[Chunk]) -> List[str]:
    problems: List[str] = []
    for i, c in enumerate(chunks):
        ref = c.id or f"#{i}"
        problems.extend(f"chunk {ref}: {p}" for p in chunk_defects(c))
    counts = Counter(c.id for c in chunks if c.id)
    for cid, n in counts.items():
        if n > 1:
            problems.append(f"chunk {cid}: id used {n} times")
    return problems


def validate_references(chunks: Sequence[Chunk], metas: Sequence[ProgramMeta]) -> List[str]:
    """Chunk program ids that do not resolve in program metadata."""
    known = {m.program_id for m in metas}
    missing = sorted({c.program_id for c in chunks if c.program_id and c.program_id not in known})
    return [f"chunk program id {pid!r} has no program metadata" for pid in missing]
