from __future__ import annotations

import argparse
from pathlib import Path

from chains.prompts import build_grounded_prompt
from common.config import yaml_config
from common.logger import get_logger
from ingestion.ingest_pipeline import default_cache, load_dataset
from ingestion.loaders import DataUnavailableError
from overrides.repository import OverridesRepository
from retrieval.guardrails import detect_injection
from retrieval.retriever import DocumentRetriever
from storage.kv_store import FileStore
from vectorstore.document_store import DocumentStore

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Retrieve brochure passages for a question or a set of programs."
    )
    parser.add_argument("--data_url", type=str, default=None)
    parser.add_argument("--state_dir", type=str, default=None)
    parser.add_argument("--k", type=int, default=None)
    parser.add_argument("--max_chars", type=int, default=yaml_config.retrieval.max_context_chars)
    parser.add_argument(
        "--programs", nargs="*", help="Retrieve by program ids instead of free text"
    )
    parser.add_argument("--topic", type=str, default=None, choices=["checklist", "comparison"])
    parser.add_argument(
        "--section", type=str, default=None, help="Restrict a free-text query to one section label"
    )
    parser.add_argument(
        "--show_prompt", action="store_true", help="Print the grounded LLM prompt"
    )
    parser.add_argument("question", type=str, nargs="?", default="", help="Your question")
    args = parser.parse_args()

    if args.question and detect_injection(args.question):
        log.error("Question rejected by injection guardrail")
        raise SystemExit(2)

    state_dir = Path(args.state_dir or yaml_config.app.state_dir)
    try:
        dataset = load_dataset(default_cache(args.data_url, state_dir))
    except DataUnavailableError as e:
        log.error("Brochure data unavailable, answers cannot be grounded: %s", e)
        raise SystemExit(1)

    retriever = DocumentRetriever(DocumentStore())
    retriever.build_index(dataset.chunks, repository=OverridesRepository(FileStore(state_dir / "overrides")))

    if args.programs:
        result = retriever.retrieve_for_programs(args.programs, args.topic, args.k)
    else:
        result = retriever.retrieve_for_query(args.question, args.k, section=args.section)

    warnings = retriever.get_warnings(result.chunks)
    context = retriever.build_context(result.chunks, args.max_chars)

    print(f"\n=== {len(result.chunks)} of {result.total_found} hits ===\n")
    for c in result.chunks:
        print(f"- {c.program_name} p. {c.page} [{c.section}] score={c.score:.2f} ({c.status.value})")
    if warnings:
        print("\n=== WARNINGS ===\n")
        for w in warnings:
            print(f"- {w}")
    print("\n=== CONTEXT ===\n")
    print(context or "(empty)")
    if args.show_prompt:
        print("\n=== PROMPT ===\n")
        print(build_grounded_prompt(args.question or result.query, context, warnings))


if __name__ == "__main__":
    main()
