from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ProgramStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    ENDING = "ending"
    REMOVED = "removed"


SECTION_GENERAL = "general"
SECTION_ELIGIBILITY = "eligibility"
SECTION_FUNDING_AMOUNT = "funding_amount"
SECTION_APPLICATION = "application_channel"

IMPORTANT_SECTIONS = frozenset(
    {SECTION_ELIGIBILITY, SECTION_FUNDING_AMOUNT, SECTION_APPLICATION}
)


@dataclass(frozen=True)
class Chunk:
    id: str
    text: str
    normalized_text: str  # diacritics folded + lowercased copy of text
    program_id: str
    program_name: str
    page: int  # 1-based
    section: Optional[str]
    stand: str  # "as of" date of the brochure
    status: ProgramStatus
    start_char: int
    end_char: int
    # Only set on the overridden view, never on ingested chunks
    muted: bool = False
    boost: float = 0.0


@dataclass(frozen=True)
class SectionRange:
    start_page: Optional[int]
    end_page: Optional[int]
    keywords: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ProgramMeta:
    program_id: str
    name: str
    pages: Tuple[Optional[int], Optional[int]]  # None bound = no restriction
    stand: str = ""
    status: ProgramStatus = ProgramStatus.ACTIVE
    sections: Dict[str, SectionRange] = field(default_factory=dict)

    @property
    def start_page(self) -> Optional[int]:
        return self.pages[0]

    @property
    def end_page(self) -> Optional[int]:
        return self.pages[1]


@dataclass(frozen=True)
class RagStats:
    build_id: str
    built_at: Optional[str] = None
    total_pages: int = 0
    programs_found: int = 0
    total_chunks: int = 0
    sections_count: Dict[str, int] = field(default_factory=dict)
    by_program: Dict[str, int] = field(default_factory=dict)
    avg_chunk_length: Optional[float] = None


@dataclass(frozen=True)
class Citation:
    text: str
    program_id: str
    program_name: str
    page: int
    stand: str
    section: Optional[str]
    score: float
    status: ProgramStatus

    @classmethod
    def from_chunk(cls, chunk: Chunk, score: float) -> "Citation":
        return cls(
            text=chunk.text,
            program_id=chunk.program_id,
            program_name=chunk.program_name,
            page=chunk.page,
            stand=chunk.stand,
            section=chunk.section,
            score=score,
            status=chunk.status,
        )


@dataclass
class RetrievalResult:
    chunks: List[Citation]
    total_found: int
    query: str
    filters: Dict[str, Optional[str]] = field(default_factory=dict)
