import math

import pytest

from ingestion.document_models import SECTION_ELIGIBILITY, ProgramStatus
from vectorstore.document_store import (
    DocumentStore,
    fuzzy_match,
    levenshtein,
    tokenize_query,
)


def test_tokenize_folds_and_drops_short_tokens():
    assert tokenize_query("Förderung a für KMU") == ["foerderung", "fuer", "kmu"]


def test_empty_or_short_query_matches_nothing(make_chunk):
    store = DocumentStore([make_chunk()])
    assert store.search("") == []
    assert store.search("   ") == []
    assert store.search("a b c") == []


def test_search_on_empty_store():
    assert DocumentStore().search("antrag") == []


def test_bm25_score_matches_formula(make_chunk):
    store = DocumentStore([make_chunk(text="antrag antrag stellen", program_name="Program 1")])
    [hit] = store.search("antrag")
    assert hit.score == pytest.approx(2 + math.log(1.5) * (2 * 2.2) / (2 + 1.2))


def test_non_matching_chunks_are_dropped(make_chunk):
    store = DocumentStore(
        [
            make_chunk(text="Das Bildungskonto fördert Kurse", program_id="a"),
            make_chunk(text="Ganz andere Inhalte hier", program_id="b", program_name="Other"),
        ]
    )
    hits = store.search("bildungskonto")
    assert [h.program_id for h in hits] == ["a"]


def test_program_name_bonus(make_chunk):
    store = DocumentStore([make_chunk(text="Kurskosten werden ersetzt", program_name="QBN Förderung")])
    [hit] = store.search("qbn")
    assert hit.score == pytest.approx(3.0)


def test_important_section_bonus(make_chunk):
    store = DocumentStore(
        [
            make_chunk(text="hauptwohnsitz erforderlich", section="general"),
            make_chunk(text="hauptwohnsitz erforderlich", section=SECTION_ELIGIBILITY),
        ]
    )
    plain, important = sorted(store.search("hauptwohnsitz"), key=lambda h: h.score)
    assert important.section == SECTION_ELIGIBILITY
    assert important.score - plain.score == pytest.approx(1.0)


def test_status_penalties(make_chunk):
    text = "kurskosten bis 5000 euro"
    store = DocumentStore(
        [
            make_chunk(text=text, program_id="removed", status=ProgramStatus.REMOVED),
            make_chunk(text=text, program_id="suspended", status=ProgramStatus.SUSPENDED),
            make_chunk(text=text, program_id="active", status=ProgramStatus.ACTIVE),
        ]
    )
    hits = store.search("kurskosten euro")
    by_id = {h.program_id: h.score for h in hits}
    assert [h.program_id for h in hits] == ["active", "suspended"]
    assert by_id["active"] - by_id["suspended"] == pytest.approx(2.0)


def test_removed_program_clamped_to_zero_is_dropped(make_chunk):
    store = DocumentStore([make_chunk(text="antrag online", status=ProgramStatus.REMOVED)])
    assert store.search("antrag") == []


def test_active_never_ranks_below_suspended(make_chunk):
    text = "beratung und coaching fuer beschaeftigte"
    store = DocumentStore(
        [
            make_chunk(text=text, program_id="s", status=ProgramStatus.SUSPENDED),
            make_chunk(text=text, program_id="a", status=ProgramStatus.ACTIVE),
        ]
    )
    assert [h.program_id for h in store.search("coaching beratung")] == ["a", "s"]


def test_adding_exact_occurrence_never_lowers_score(make_chunk):
    base = "voraussetzungen hauptwohnsitz in oberoesterreich"
    store = DocumentStore(
        [
            make_chunk(text=base, program_id="without"),
            make_chunk(text=base + " kurskosten", program_id="with"),
        ]
    )
    hits = store.search("kurskosten hauptwohnsitz")
    scores = {h.program_id: h.score for h in hits}
    assert hits[0].program_id == "with"
    assert scores["with"] >= scores["without"]


def test_fuzzy_match_only_for_long_tokens(make_chunk):
    store = DocumentStore([make_chunk(text="die foerderug ist hoch", program_name="X")])
    [hit] = store.search("foerderung")
    assert hit.score == pytest.approx(1.0)
    assert DocumentStore([make_chunk(text="kurs", program_name="X")]).search("kurz") == []


def test_levenshtein_and_fuzzy_helpers():
    assert levenshtein("kitten", "sitting") == 3
    assert levenshtein("", "abc") == 3
    assert levenshtein("abc", "abc") == 0
    assert fuzzy_match("antragsweg", ["antragswege"])
    assert not fuzzy_match("antragsweg", ["antrag"])
    assert not fuzzy_match("kurse", ["kurs"])


def test_filters_restrict_candidates(make_chunk):
    store = DocumentStore(
        [
            make_chunk(text="antrag beim land", program_id="a", section="general"),
            make_chunk(text="antrag beim ams", program_id="b", section=SECTION_ELIGIBILITY),
            make_chunk(text="antrag online", program_id="b", section="general"),
        ]
    )
    assert {h.program_id for h in store.search("antrag", filters={"program_id": "b"})} == {"b"}
    hits = store.search("antrag", filters={"program_id": "b", "section": SECTION_ELIGIBILITY})
    assert [h.text for h in hits] == ["antrag beim ams"]


def test_ties_keep_input_order_and_k_truncates(make_chunk):
    chunks = [make_chunk(text="gleicher text zum antrag", page=p) for p in (3, 1, 2)]
    store = DocumentStore(chunks)
    assert [h.page for h in store.search("antrag", k=10)] == [3, 1, 2]
    assert [h.page for h in store.search("antrag", k=2)] == [3, 1]


def test_boost_is_added_to_score(make_chunk):
    store = DocumentStore(
        [
            make_chunk(text="antrag stellen", program_id="plain"),
            make_chunk(text="antrag stellen", program_id="boosted", boost=0.5),
        ]
    )
    hits = store.search("antrag")
    assert hits[0].program_id == "boosted"
    assert hits[0].score - hits[1].score == pytest.approx(0.5)


def test_chunks_for_program_sorted_by_page(make_chunk):
    store = DocumentStore(
        [
            make_chunk(program_id="a", page=5, section=SECTION_ELIGIBILITY),
            make_chunk(program_id="a", page=2),
            make_chunk(program_id="b", page=1),
            make_chunk(program_id="a", page=3, section=SECTION_ELIGIBILITY),
        ]
    )
    assert [c.page for c in store.chunks_for_program("a")] == [2, 3, 5]
    assert [c.page for c in store.chunks_for_program("a", SECTION_ELIGIBILITY)] == [3, 5]
    assert store.chunks_for_program("missing") == []


def test_load_replaces_index_and_stats(make_chunk):
    store = DocumentStore([make_chunk(text="eins zwei drei", program_id="a")])
    store.load([make_chunk(text="vier fuenf", program_id="b"), make_chunk(text="sechs", program_id="c")])

    stats = store.stats()
    assert stats.total_chunks == 2
    assert stats.program_count == 2
    assert stats.avg_chunk_length == pytest.approx(1.5)
    assert store.programs() == ["b", "c"]
    assert store.search("eins") == []
