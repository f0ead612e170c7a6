from ingestion.cleaners import normalize_for_search
from ingestion.document_models import (
    SECTION_ELIGIBILITY,
    SECTION_FUNDING_AMOUNT,
    ProgramStatus,
    RagStats,
)
from ingestion.schema import (
    migrate_chunks,
    migrate_program_meta,
    migrate_stats,
    rename_keys,
    validate_chunks,
    validate_meta,
    validate_references,
    validate_stats,
)


def test_normalize_folds_umlauts_and_accents():
    assert normalize_for_search("  Förderhöhe Café STRASSE ß ") == "foerderhoehe cafe strasse ss"


def test_rename_keys_is_recursive_and_respects_opaque_keys():
    raw = {"buildId": "x", "nested": [{"totalChunks": 1}], "sectionsCount": {"passtWenn": 2}}
    out = rename_keys(raw, {"pages": "total_pages"}, opaque={"sections_count"})
    assert out == {"build_id": "x", "nested": [{"total_chunks": 1}], "sections_count": {"passtWenn": 2}}


def test_migrate_stats_snake_and_camel_case():
    s = migrate_stats(
        {"build_id": "x", "built_at": "t", "pages": 1, "programs": 2, "chunks": 3, "sections_count": {"a": 1}}
    )
    assert s.build_id == "x"
    assert s.built_at == "t"
    assert (s.total_pages, s.programs_found, s.total_chunks) == (1, 2, 3)
    assert s.sections_count == {"a": 1}

    c = migrate_stats({"buildId": "y", "totalChunks": 5, "bySections": {"zielgruppe": 5}})
    assert c.build_id == "y"
    assert c.total_chunks == 5
    assert c.sections_count == {"zielgruppe": 5}


def test_migrate_stats_synthesizes_build_id_from_counts():
    s = migrate_stats({"totalChunks": 50, "totalPages": 48, "programsFound": 6})
    assert s.build_id == "50-48-6"


def test_migrate_stats_is_total():
    assert migrate_stats(None).build_id == "0-0-0"
    assert migrate_stats({"totalChunks": "many"}).total_chunks == 0


def test_migrate_program_meta_start_end_page():
    m = migrate_program_meta([{"id": "a", "title": "T", "start_page": 10, "end_page": 12}])
    assert m[0].program_id == "a"
    assert m[0].name == "T"
    assert m[0].start_page == 10
    assert m[0].pages == (10, 12)


def test_migrate_program_meta_mapping_with_sections_and_status():
    m = migrate_program_meta(
        {
            "qbn": {
                "name": "QBN",
                "pages": [3, 6],
                "status": "ausgesetzt",
                "sections": {"Förderhöhe": {"startPage": 4, "endPage": 4, "keywords": ["kosten"]}},
            }
        }
    )
    assert m[0].program_id == "qbn"
    assert m[0].status is ProgramStatus.SUSPENDED
    assert m[0].sections[SECTION_FUNDING_AMOUNT].start_page == 4
    assert m[0].sections[SECTION_FUNDING_AMOUNT].keywords == ("kosten",)


def test_migrate_program_meta_without_pages_has_open_bounds():
    m = migrate_program_meta([{"id": "a", "name": "A"}])
    assert m[0].pages == (None, None)
    assert validate_meta(m) == []


def test_migrate_chunks_program_id_and_seite():
    c = migrate_chunks([{"id": "x", "program_id": "p1", "section": "allgemein", "seite": 5, "text": "Täglich"}])
    assert c[0].program_id == "p1"
    assert c[0].page == 5
    assert c[0].section == "general"
    assert c[0].normalized_text == "taeglich"
    assert c[0].end_char == len("Täglich")


def test_migrate_chunks_maps_legacy_values_and_skips_garbage():
    c = migrate_chunks(
        [
            "not a chunk",
            {"id": "y", "programId": "p", "page": 2, "section": "Voraussetzungen", "text": "t", "status": "endet_am"},
        ]
    )
    assert len(c) == 1
    assert c[0].section == SECTION_ELIGIBILITY
    assert c[0].status is ProgramStatus.ENDING
    assert migrate_chunks({"oops": 1}) == []


def test_migrate_chunks_keeps_existing_normalized_text():
    c = migrate_chunks([{"id": "x", "programId": "p", "page": 1, "text": "ABC", "normalizedText": "custom"}])
    assert c[0].normalized_text == "custom"


def test_validate_presence_of_required_fields():
    assert validate_stats(RagStats(build_id="")) != []
    assert validate_stats(RagStats(build_id="b", total_chunks=3, sections_count={"a": 3})) == []
    assert validate_meta(migrate_program_meta([{"id": "x", "programId": "p", "title": "t"}])) == []
    ok = migrate_chunks([{"id": "x", "programId": "p", "page": 1, "section": "s", "text": "t"}])
    assert validate_chunks(ok) == []

    broken = migrate_chunks([{"text": ""}])
    problems = validate_chunks(broken)
    assert any("missing id" in p for p in problems)
    assert any("missing program_id" in p for p in problems)
    assert any("invalid page" in p for p in problems)


def test_validate_meta_flags_inverted_range_and_duplicates():
    metas = migrate_program_meta([{"id": "a", "name": "A", "pages": [9, 3]}, {"id": "a", "name": "B"}])
    problems = validate_meta(metas)
    assert any("inverted" in p for p in problems)
    assert any("defined 2 times" in p for p in problems)


def test_validate_references_reports_unknown_programs():
    chunks = migrate_chunks([{"id": "x", "programId": "ghost", "page": 1, "text": "t"}])
    metas = migrate_program_meta([{"id": "real", "name": "Real"}])
    assert validate_references(chunks, metas) == ["chunk program id 'ghost' has no program metadata"]
