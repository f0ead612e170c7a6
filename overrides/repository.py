from __future__ import annotations

import time
import uuid
from datetime import date
from pathlib import Path
from typing import Any, List, Optional

import orjson
from pydantic import ValidationError

from common.config import yaml_config
from common.logger import get_logger
from overrides.models import (
    OVERRIDES_VERSION,
    ChunkOverride,
    HistoryAction,
    HistoryEntry,
    ProgramMetaOverride,
    RagOverrides,
    SectionOverride,
)
from storage.kv_store import KeyValueStore

log = get_logger(__name__)

CURRENT_KEY = "overrides:current"
HISTORY_PREFIX = "history:"


class OverridesImportError(ValueError):
    """An overrides file was rejected on import."""


def parse_overrides(text: str | bytes) -> RagOverrides:
    """
    Structural check only: JSON syntax, version tag and shape. Semantic
    problems are left to ``overrides.validate``.
    """
    try:
        raw = orjson.loads(text)
    except orjson.JSONDecodeError as e:
        raise OverridesImportError("Failed to parse overrides file") from e
    version = raw.get("version") if isinstance(raw, dict) else None
    # JSON true compares equal to 1 in Python
    if type(version) is not int or version != OVERRIDES_VERSION:
        raise OverridesImportError("Invalid overrides format or version")
    try:
        return RagOverrides.model_validate(raw)
    except ValidationError as e:
        raise OverridesImportError(f"Invalid overrides format or version: {e}") from e


class OverridesRepository:
    """
    Operator overrides on top of a key-value store: one "current" document
    plus an append-only, timestamp-keyed history log.

    Writes are last-write-wins; there is no locking between concurrent admins.
    """

    def __init__(self, kv: KeyValueStore):
        self.kv = kv
        self._last_ts = 0

    def load(self) -> RagOverrides:
        text = self.kv.get(CURRENT_KEY)
        if text is None:
            return RagOverrides()
        try:
            return parse_overrides(text)
        except OverridesImportError as e:
            log.error("Stored overrides are unreadable, starting empty: %s", e)
            return RagOverrides()

    def save(
        self,
        overrides: RagOverrides,
        action: HistoryAction,
        description: str,
        data: Optional[Any] = None,
    ) -> None:
        self.kv.put(CURRENT_KEY, self.export_json(overrides))
        self._append_history(action, description, data)
        log.info("Saved overrides (%s): %s", action, description)

    def reset(self) -> None:
        self.kv.delete(CURRENT_KEY)
        self.kv.clear(HISTORY_PREFIX)
        self._append_history("reset", "All overrides cleared")
        log.info("Overrides reset")

    def _timestamp(self) -> int:
        # strictly increasing so history keys sort in write order
        ts = max(int(time.time() * 1000), self._last_ts + 1)
        self._last_ts = ts
        return ts

    def _append_history(
        self, action: HistoryAction, description: str, data: Optional[Any] = None
    ) -> None:
        ts = self._timestamp()
        entry = HistoryEntry(
            id=f"history-{ts}-{uuid.uuid4().hex[:9]}",
            timestamp=ts,
            action=action,
            description=description,
            data=data,
        )
        self.kv.put(f"{HISTORY_PREFIX}{ts:015d}-{entry.id}", entry.model_dump_json())

    def history(self, limit: Optional[int] = None) -> List[HistoryEntry]:
        """Most recent first."""
        limit = limit or yaml_config.overrides.history_limit
        keys = sorted(self.kv.keys_with_prefix(HISTORY_PREFIX), reverse=True)[:limit]
        out: List[HistoryEntry] = []
        for k in keys:
            text = self.kv.get(k)
            if text is not None:
                out.append(HistoryEntry.model_validate_json(text))
        return out

    # --- admin mutations -------------------------------------------------

    def upsert_section(self, section: SectionOverride) -> RagOverrides:
        doc = self.load()
        sections = list(doc.sections or [])
        key = (section.program_id, section.page_start, section.page_end)
        pos = next(
            (i for i, s in enumerate(sections) if (s.program_id, s.page_start, s.page_end) == key),
            None,
        )
        if pos is None:
            sections.append(section)
            action: HistoryAction = "section_add"
        else:
            sections[pos] = section
            action = "section_edit"
        doc = doc.model_copy(update={"sections": sections})
        self.save(
            doc,
            action,
            f'Section "{section.section_title}" for {section.program_id} '
            f"(p. {section.page_start}-{section.page_end})",
            section.to_record(),
        )
        return doc

    def delete_section(self, program_id: str, page_start: int, page_end: int) -> RagOverrides:
        doc = self.load()
        sections = [
            s
            for s in doc.sections or []
            if (s.program_id, s.page_start, s.page_end) != (program_id, page_start, page_end)
        ]
        doc = doc.model_copy(update={"sections": sections})
        self.save(
            doc,
            "section_delete",
            f"Section for {program_id} (p. {page_start}-{page_end}) deleted",
        )
        return doc

    def upsert_program_meta(self, meta: ProgramMetaOverride) -> RagOverrides:
        doc = self.load()
        metas = list(doc.program_meta or [])
        pos = next((i for i, m in enumerate(metas) if m.program_id == meta.program_id), None)
        if pos is None:
            metas.append(meta)
        else:
            # patch only the fields this edit sets
            merged = {**metas[pos].to_record(), **meta.to_record()}
            metas[pos] = ProgramMetaOverride.model_validate(merged)
        doc = doc.model_copy(update={"program_meta": metas})
        self.save(doc, "meta_edit", f"Program meta for {meta.program_id} updated", meta.to_record())
        return doc

    def set_chunk_override(self, override: ChunkOverride) -> RagOverrides:
        doc = self.load()
        entries = list(doc.chunks or [])
        key = (override.program_id, override.page)
        pos = next((i for i, o in enumerate(entries) if (o.program_id, o.page) == key), None)
        if pos is None:
            entries.append(override)
        else:
            merged = {**entries[pos].to_record(), **override.to_record()}
            entries[pos] = ChunkOverride.model_validate(merged)

        fields = override.model_fields_set
        if "muted" in fields:
            action: HistoryAction = "chunk_mute"
            verb = "muted" if override.muted else "unmuted"
        elif "boost" in fields:
            action = "chunk_boost"
            verb = f"boosted by {override.boost}"
        else:
            action = "chunk_section"
            verb = f"relabelled as {override.section!r}"
        doc = doc.model_copy(update={"chunks": entries})
        self.save(
            doc,
            action,
            f"Chunk {override.program_id} p. {override.page} {verb}",
            override.to_record(),
        )
        return doc

    # --- import / export -------------------------------------------------

    def export_json(self, overrides: Optional[RagOverrides] = None) -> str:
        doc = overrides if overrides is not None else self.load()
        return orjson.dumps(doc.to_wire(), option=orjson.OPT_INDENT_2).decode("utf-8")

    def export_file(self, directory: Optional[Path] = None) -> Path:
        directory = Path(directory or yaml_config.overrides.export_dir)
        directory.mkdir(parents=True, exist_ok=True)
        out = directory / f"rag-overrides-{date.today().isoformat()}.json"
        out.write_text(self.export_json(), encoding="utf-8")
        log.info("Exported overrides to %s", out)
        return out

    def import_json(self, text: str | bytes) -> RagOverrides:
        try:
            doc = parse_overrides(text)
        except OverridesImportError as e:
            log.warning("Rejected overrides import: %s", e)
            raise
        counts = ", ".join(
            f"{len(getattr(doc, name) or [])} {name}"
            for name in ("sections", "program_meta", "chunks")
        )
        self.save(doc, "import", f"Imported overrides ({counts})")
        return doc
