from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

CITATION_RE = re.compile(r"\[#(?P<pid>[A-Za-z0-9_-]+)\s+S\.(?P<page>\d+)\]")


@dataclass(frozen=True)
class Note:
    id: str  # "<programId>-<page>"
    label: str
    program_id: str
    page: int


@dataclass(frozen=True)
class CitationResult:
    annotated_text: str
    notes: List[Note]


def annotate(note: Note) -> str:
    return f'<sup class="cite" data-cite="{note.id}">{note.label}</sup>'


def extract_citations(text: str) -> CitationResult:
    """
    Replace every ``[#<programId> S.<page>]`` marker with a superscript span.
    Repeated markers render identically; ``notes`` lists each source once,
    in order of first appearance.
    """
    seen: Dict[str, Note] = {}

    def _sub(m: re.Match) -> str:
        pid, page = m.group("pid"), m.group("page")
        key = f"{pid}-{int(page)}"
        if key not in seen:
            seen[key] = Note(id=key, label=f"[#{pid} S.{page}]", program_id=pid, page=int(page))
        return annotate(seen[key])

    annotated = CITATION_RE.sub(_sub, text)
    return CitationResult(annotated_text=annotated, notes=list(seen.values()))


def render_notes(notes: List[Note], program_names: Optional[Mapping[str, str]] = None) -> str:
    """Plain-text source list for exports, one line per note."""
    names = program_names or {}
    lines = []
    for n in notes:
        name = names.get(n.program_id)
        lines.append(f"{n.label} {name}, p. {n.page}" if name else f"{n.label} p. {n.page}")
    return "\n".join(lines)
