from __future__ import annotations

from dataclasses import fields, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from common.logger import get_logger
from ingestion.document_models import Chunk, ProgramMeta
from ingestion.schema import canonical_status, page_pair
from overrides.models import ChunkOverride, RagOverrides

log = get_logger(__name__)


class MergeMode(Enum):
    PATCH_ONLY = "patch_only"  # unknown keys are dropped
    PATCH_OR_INSERT = "patch_or_insert"  # unknown keys are appended


class OverrideKind(Enum):
    """Override collection, with the fields that key it and how it merges."""

    PROGRAM_META = ("program_meta", ("program_id",), MergeMode.PATCH_OR_INSERT)
    SECTIONS = (
        "sections",
        ("program_id", "page_start", "page_end"),
        MergeMode.PATCH_OR_INSERT,
    )
    # Chunks come from the brochure; an override can never create one
    CHUNKS = ("chunks", ("program_id", "page"), MergeMode.PATCH_ONLY)

    def __init__(self, collection: str, key_fields: Tuple[str, ...], mode: MergeMode):
        self.collection = collection
        self.key_fields = key_fields
        self.mode = mode

    def key_of(self, record: Mapping[str, Any]) -> Tuple[Any, ...]:
        return tuple(record.get(f) for f in self.key_fields)


def merge_overrides(
    base: Sequence[Mapping[str, Any]],
    overrides: RagOverrides,
    kind: OverrideKind,
) -> List[Dict[str, Any]]:
    """
    Patch ``base`` records with the override collection named by ``kind``.
    Records are plain dicts with snake_case keys; ``base`` is not modified.
    """
    entries = getattr(overrides, kind.collection) or []
    result = [dict(item) for item in base]
    if not entries:
        return result

    index = {kind.key_of(item): i for i, item in enumerate(result)}
    for entry in entries:
        patch = entry.to_record()
        key = kind.key_of(patch)
        if key in index:
            result[index[key]] = {**result[index[key]], **patch}
        elif kind.mode is MergeMode.PATCH_OR_INSERT:
            index[key] = len(result)
            result.append(patch)
    return result


def _override_index(entries: Sequence[ChunkOverride]) -> Dict[Tuple[str, int], ChunkOverride]:
    index: Dict[Tuple[str, int], ChunkOverride] = {}
    for o in entries:
        # first override for a page wins
        index.setdefault((o.program_id, o.page), o)
    return index


def apply_chunk_overrides(chunks: Sequence[Chunk], overrides: RagOverrides) -> List[Chunk]:
    """
    Derived view of ``chunks`` with section/muted/boost patched in by
    ``(program_id, page)``; muted chunks are dropped. Idempotent.
    """
    if not overrides.chunks:
        return list(chunks)

    index = _override_index(overrides.chunks)
    out: List[Chunk] = []
    for chunk in chunks:
        o = index.get((chunk.program_id, chunk.page))
        if o is not None:
            changes: Dict[str, Any] = {}
            fields = o.model_fields_set
            if "section" in fields:
                changes["section"] = o.section
            if o.muted is not None:
                changes["muted"] = o.muted
            if o.boost is not None:
                changes["boost"] = o.boost
            if changes:
                chunk = replace(chunk, **changes)
        if not chunk.muted:
            out.append(chunk)
    muted = len(chunks) - len(out)
    if muted:
        log.info("Muted %d of %d chunks via overrides", muted, len(chunks))
    return out


def merged_program_meta(metas: Sequence[ProgramMeta], overrides: RagOverrides) -> List[ProgramMeta]:
    """
    Program metadata with program meta overrides patched in. Patched values go
    through the same canonicalization as ingested metadata, so legacy status
    labels and page spans come out as ``ProgramStatus`` and ``(start, end)``.
    """
    base = [{f.name: getattr(m, f.name) for f in fields(m)} for m in metas]
    records = merge_overrides(base, overrides, OverrideKind.PROGRAM_META)
    return [
        ProgramMeta(
            program_id=r["program_id"],
            name=r.get("name") or "",
            pages=page_pair(r),
            stand=r.get("stand") or "",
            status=canonical_status(r.get("status")),
            sections=r.get("sections") or {},
        )
        for r in records
    ]
