import orjson
import pytest

from ingestion.document_models import SECTION_ELIGIBILITY, ProgramStatus
from ingestion.ingest_pipeline import default_cache, load_dataset, load_program_meta, partition_chunks
from ingestion.loaders import DataSource, DataUnavailableError, DirectoryDataSource
from storage.kv_store import MemoryStore
from storage.rag_cache import RagCache

LONG = "Gefördert werden Kurse zur beruflichen Weiterbildung bis zu einer Höhe von 5000 Euro."


class FakeSource(DataSource):
    location = "fake://rag"

    def __init__(self, files):
        self.files = {k: orjson.dumps(v).decode() for k, v in files.items()}

    def fetch_text(self, name):
        if name not in self.files:
            raise DataUnavailableError(f"{name} missing")
        return self.files[name]


def _raw_chunks():
    return [
        {"id": "c1", "programId": "qbn", "programName": "QBN", "seite": 2, "abschnitt": "Voraussetzungen", "text": LONG, "status": "aktiv"},
        {"id": "c2", "programId": "qbn", "programName": "QBN", "seite": 3, "section": "general", "text": "zu kurz"},
        {"id": "c3", "programId": "bk", "programName": "Bildungskonto", "page": 0, "section": "general", "text": LONG},
        {"id": "c4", "programId": "bk", "programName": "Bildungskonto", "page": 5, "section": "general", "text": LONG, "status": "ausgesetzt"},
    ]


def test_partition_chunks(make_chunk):
    good = make_chunk(text=LONG)
    short = make_chunk(text="kurz")
    nameless = make_chunk(text=LONG, program_name="")
    active, excluded = partition_chunks([good, short, nameless], min_chars=50)

    assert active == [good]
    assert [(c, reason) for c, reason in excluded] == [
        (short, "text shorter than 50 chars"),
        (nameless, "missing program_name"),
    ]


def test_load_dataset_migrates_and_partitions():
    source = FakeSource(
        {
            "stats.json": {"buildId": "b7", "totalChunks": 4, "totalPages": 10, "programsFound": 2},
            "chunks.json": _raw_chunks(),
            "program_meta.json": {"qbn": {"title": "QBN", "pages": [1, 4]}},
        }
    )
    dataset = load_dataset(RagCache(source, MemoryStore()))

    assert dataset.stats.build_id == "b7"
    assert dataset.source == "network"
    assert [c.id for c in dataset.chunks] == ["c1", "c4"]
    assert dataset.chunks[0].section == SECTION_ELIGIBILITY
    assert dataset.chunks[0].page == 2
    assert dataset.chunks[1].status is ProgramStatus.SUSPENDED
    assert [c.id for c, _ in dataset.excluded] == ["c2", "c3"]
    assert "invalid page 0" in dataset.excluded[1][1]
    assert [m.program_id for m in dataset.program_meta] == ["qbn"]
    assert "chunk program id 'bk' has no program metadata" in dataset.problems


def test_load_dataset_second_run_uses_cache():
    source = FakeSource({"stats.json": {"buildId": "b7"}, "chunks.json": _raw_chunks()})
    cache = RagCache(source, MemoryStore())
    load_dataset(cache)
    del source.files["chunks.json"]

    dataset = load_dataset(cache)
    assert dataset.source == "cache"
    assert dataset.program_meta == []
    assert len(dataset.chunks) == 2


def test_load_dataset_without_stats():
    with pytest.raises(DataUnavailableError, match="stats.json"):
        load_dataset(RagCache(FakeSource({}), MemoryStore()))


def test_load_program_meta_is_optional():
    assert load_program_meta(FakeSource({})) == []


def test_default_cache_uses_state_dir(tmp_path):
    (tmp_path / "rag").mkdir()
    cache = default_cache(str(tmp_path / "rag"), tmp_path / "state")
    assert isinstance(cache.source, DirectoryDataSource)
    assert (tmp_path / "state" / "cache").is_dir()
