import pytest

from ingestion.cleaners import normalize_for_search
from ingestion.document_models import Chunk, ProgramStatus


@pytest.fixture
def make_chunk():
    counter = {"n": 0}

    def _make(
        text="Allgemeine Informationen zum Programm und zur Förderung",
        program_id="prog1",
        program_name="Program 1",
        page=1,
        section="general",
        status=ProgramStatus.ACTIVE,
        **kw,
    ) -> Chunk:
        counter["n"] += 1
        return Chunk(
            id=kw.pop("id", f"{program_id}-chunk-{counter['n']}"),
            text=text,
            normalized_text=kw.pop("normalized_text", normalize_for_search(text)),
            program_id=program_id,
            program_name=program_name,
            page=page,
            section=section,
            stand=kw.pop("stand", "09/2025"),
            status=status,
            start_char=kw.pop("start_char", 0),
            end_char=kw.pop("end_char", len(text)),
            **kw,
        )

    return _make
