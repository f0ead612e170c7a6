from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

OVERRIDES_VERSION = 1

HistoryAction = Literal[
    "section_add",
    "section_edit",
    "section_delete",
    "chunk_mute",
    "chunk_boost",
    "chunk_section",
    "meta_edit",
    "import",
    "reset",
]


class _WireModel(BaseModel):
    # camelCase on the wire, snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_record(self) -> Dict[str, Any]:
        """Python-side dict of the fields that were actually set."""
        return self.model_dump(exclude_unset=True)


class SectionOverride(_WireModel):
    program_id: str
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    section_title: Optional[str] = None
    apply_to_pages: Optional[List[int]] = None


class PageSpan(_WireModel):
    start: int
    end: int


class ProgramMetaOverride(_WireModel):
    program_id: str
    pages: Optional[PageSpan] = None
    status: Optional[str] = None
    stand: Optional[str] = None


class ChunkOverride(_WireModel):
    # Keyed by page: the brochure text itself is never edited
    program_id: str
    page: int
    section: Optional[str] = None
    muted: Optional[bool] = None
    boost: Optional[float] = None


class RagOverrides(_WireModel):
    version: Literal[1] = OVERRIDES_VERSION
    sections: Optional[List[SectionOverride]] = None
    program_meta: Optional[List[ProgramMetaOverride]] = None
    chunks: Optional[List[ChunkOverride]] = None
    synonyms: Optional[Dict[str, List[str]]] = None

    def to_wire(self) -> Dict[str, Any]:
        # exclude_unset keeps an explicit ``"section": null`` (reset to heuristic)
        wire = self.model_dump(by_alias=True, exclude_unset=True)
        wire["version"] = self.version
        return wire


class HistoryEntry(BaseModel):
    id: str
    timestamp: int  # ms since epoch
    action: HistoryAction
    description: str
    data: Optional[Any] = None
