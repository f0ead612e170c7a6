from __future__ import annotations

from typing import Dict, Literal, Optional

from ingestion.document_models import SECTION_ELIGIBILITY, SECTION_FUNDING_AMOUNT

RetrievalTopic = Optional[Literal["checklist", "comparison"]]

TOPIC_SECTIONS: Dict[str, str] = {
    "checklist": SECTION_ELIGIBILITY,  # checklists are built from requirements
    "comparison": SECTION_FUNDING_AMOUNT,  # comparisons line up funding amounts
}


def section_for_topic(topic: RetrievalTopic) -> Optional[str]:
    if topic is None:
        return None
    try:
        return TOPIC_SECTIONS[topic]
    except KeyError:
        raise ValueError(f"Unknown retrieval topic: {topic!r}") from None


def build_store_filters(
    program_id: Optional[str] = None,
    section: Optional[str] = None,
) -> Dict[str, Optional[str]]:
    """
    Construct the filter dict understood by DocumentStore.search:
      - program_id: restrict to one program
      - section: restrict to one canonical section label
    Unset criteria are left out.
    """
    filters: Dict[str, Optional[str]] = {}
    if program_id:
        filters["program_id"] = program_id
    if section:
        filters["section"] = section
    return filters
