from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple

from common.config import yaml_config
from ingestion.document_models import Chunk
from overrides.models import RagOverrides

IssueLevel = Literal["error", "warn"]


@dataclass(frozen=True)
class Issue:
    level: IssueLevel  # "error" blocks publishing, "warn" is advisory
    code: str
    msg: str
    ref: Optional[Dict[str, Any]] = None


def _err(code: str, msg: str, ref: Optional[Dict[str, Any]] = None) -> Issue:
    return Issue("error", code, msg, ref)


def _warn(code: str, msg: str, ref: Optional[Dict[str, Any]] = None) -> Issue:
    return Issue("warn", code, msg, ref)


def _check_program_meta(overrides: RagOverrides, known: set, max_page: int) -> List[Issue]:
    issues: List[Issue] = []
    for meta in overrides.program_meta or []:
        ref = meta.to_record()
        if meta.program_id not in known:
            issues.append(_err("UNKNOWN_PROGRAM_ID", f"Unknown program ID: {meta.program_id}", ref))
        if meta.pages is None:
            continue
        start, end = meta.pages.start, meta.pages.end
        if start > end:
            issues.append(_err("INVALID_PAGE_RANGE", f"Invalid page range: {start} > {end}", ref))
        if start < 1 or end > max_page:
            issues.append(
                _warn("PAGE_OUT_OF_RANGE", f"Page range outside typical bounds: {start}-{end}", ref)
            )
    return issues


def _check_sections(overrides: RagOverrides, known: set) -> List[Issue]:
    issues: List[Issue] = []
    ranges: Dict[str, List[Tuple[int, int, str]]] = defaultdict(list)
    for section in overrides.sections or []:
        ref = section.to_record()
        if section.program_id not in known:
            issues.append(
                _err(
                    "UNKNOWN_PROGRAM_ID",
                    f"Unknown program ID in section: {section.program_id}",
                    ref,
                )
            )
            continue
        if section.page_start is None or section.page_end is None or not section.section_title:
            issues.append(
                _err(
                    "INCOMPLETE_SECTION",
                    f"Section override for {section.program_id} needs pageStart, pageEnd and sectionTitle",
                    ref,
                )
            )
            continue
        start, end = section.page_start, section.page_end
        if start > end:
            issues.append(
                _err("INVALID_SECTION_RANGE", f"Invalid section range: {start} > {end}", ref)
            )
            continue
        taken = ranges[section.program_id]
        clash = next((r for r in taken if not (end < r[0] or start > r[1])), None)
        if clash is not None:
            issues.append(
                _err(
                    "OVERLAPPING_SECTIONS",
                    f'Section "{section.section_title}" overlaps with "{clash[2]}" ({clash[0]}-{clash[1]})',
                    ref,
                )
            )
        taken.append((start, end, section.section_title))
    return issues


def _check_chunk_overrides(
    chunks: Sequence[Chunk], overrides: RagOverrides, known: set, max_muted_ratio: float
) -> List[Issue]:
    issues: List[Issue] = []
    entries = overrides.chunks or []
    if not entries:
        return issues

    muted = sum(1 for o in entries if o.muted)
    total = len(chunks)
    if muted and muted > total * max_muted_ratio:
        pct = round(muted / total * 100) if total else 100
        issues.append(
            _warn(
                "HIGH_MUTED_RATE",
                f"High muted rate: {muted}/{total} ({pct}%)",
                {"muted_count": muted, "total_chunks": total},
            )
        )

    pages = {(c.program_id, c.page) for c in chunks}
    for o in entries:
        ref = o.to_record()
        if o.program_id not in known:
            issues.append(
                _err(
                    "UNKNOWN_PROGRAM_ID",
                    f"Unknown program ID in chunk override: {o.program_id}",
                    ref,
                )
            )
        if o.boost is not None and not -1 <= o.boost <= 1:
            issues.append(
                _warn("EXTREME_BOOST", f"Extreme boost value: {o.boost} (should be -1 to 1)", ref)
            )
        if (o.program_id, o.page) not in pages:
            issues.append(
                _warn(
                    "CHUNK_NOT_FOUND",
                    f"Chunk override targets non-existent chunk: {o.program_id} page {o.page}",
                    ref,
                )
            )
    return issues


def _check_chunk_quality(chunks: Sequence[Chunk], min_chars: int, max_chars: int) -> List[Issue]:
    issues: List[Issue] = []
    for c in chunks:
        ref = {"program_id": c.program_id, "page": c.page, "id": c.id}
        n = len(c.text)
        if n < min_chars:
            issues.append(_warn("SHORT_CHUNK", f"Very short chunk: {n} chars", ref))
        elif n > max_chars:
            issues.append(_warn("LONG_CHUNK", f"Very long chunk: {n} chars", ref))
    return issues


def validate_dataset(
    chunks: Sequence[Chunk],
    overrides: RagOverrides,
    *,
    min_chars: Optional[int] = None,
    max_chars: Optional[int] = None,
    max_muted_ratio: Optional[float] = None,
    max_page: Optional[int] = None,
) -> List[Issue]:
    """
    Consistency check of ``overrides`` against the base ``chunks``.
    Reports problems; never corrects them.
    """
    q = yaml_config.quality
    known = {c.program_id for c in chunks}
    issues: List[Issue] = []
    issues += _check_program_meta(overrides, known, max_page or q.max_page)
    issues += _check_sections(overrides, known)
    issues += _check_chunk_overrides(
        chunks,
        overrides,
        known,
        q.max_muted_ratio if max_muted_ratio is None else max_muted_ratio,
    )
    issues += _check_chunk_quality(
        chunks,
        q.min_chunk_chars if min_chars is None else min_chars,
        q.max_chunk_chars if max_chars is None else max_chars,
    )
    return issues


def issues_by_level(issues: Sequence[Issue]) -> Tuple[List[Issue], List[Issue]]:
    errors = [i for i in issues if i.level == "error"]
    warnings = [i for i in issues if i.level == "warn"]
    return errors, warnings


def has_blocking_issues(issues: Sequence[Issue]) -> bool:
    return any(i.level == "error" for i in issues)
