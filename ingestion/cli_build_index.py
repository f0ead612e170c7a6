from __future__ import annotations

import argparse
from pathlib import Path

from common.logger import get_logger
from ingestion.ingest_pipeline import default_cache, load_dataset
from ingestion.loaders import DataUnavailableError

log = get_logger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Fetch (or reuse the cached) brochure chunks for the current build and report data quality."
    )
    parser.add_argument(
        "--data_url",
        type=str,
        default=None,
        help="Base URL or directory with stats.json / chunks.json / program_meta.json",
    )
    parser.add_argument("--state_dir", type=str, default=None, help="Cache/overrides directory")
    parser.add_argument(
        "--clear", action="store_true", help="Drop cached chunk payloads before loading"
    )
    args = parser.parse_args()

    cache = default_cache(args.data_url, Path(args.state_dir) if args.state_dir else None)
    if args.clear:
        cache.clear()

    try:
        dataset = load_dataset(cache)
    except DataUnavailableError as e:
        log.error("Brochure data unavailable: %s", e)
        raise SystemExit(1)

    print(f"build:    {dataset.stats.build_id} ({dataset.source})")
    print(f"chunks:   {len(dataset.chunks)} active, {len(dataset.excluded)} excluded")
    print(f"programs: {len(dataset.program_meta)} with metadata")
    for problem in dataset.problems:
        print(f"  ! {problem}")
    for chunk, reason in dataset.excluded:
        print(f"  - excluded {chunk.id or '?'} ({chunk.program_id} p. {chunk.page}): {reason}")


if __name__ == "__main__":
    main()
