from __future__ import annotations

import argparse
from pathlib import Path

from common.config import yaml_config
from common.logger import get_logger
from ingestion.ingest_pipeline import default_cache, load_dataset
from ingestion.loaders import DataUnavailableError
from overrides.merge import merged_program_meta
from overrides.models import ChunkOverride, ProgramMetaOverride, SectionOverride
from overrides.repository import OverridesImportError, OverridesRepository
from overrides.validate import has_blocking_issues, issues_by_level, validate_dataset
from storage.kv_store import FileStore

log = get_logger(__name__)


def _validate(repo: OverridesRepository, args) -> int:
    try:
        dataset = load_dataset(default_cache(args.data_url, args.state_dir))
    except DataUnavailableError as e:
        log.error("Cannot validate without brochure data: %s", e)
        return 1
    issues = validate_dataset(dataset.all_chunks, repo.load())
    errors, warnings = issues_by_level(issues)
    for issue in errors + warnings:
        print(f"{issue.level.upper():5} {issue.code:22} {issue.msg}")
    print(f"\n{len(errors)} errors, {len(warnings)} warnings")
    return 1 if has_blocking_issues(issues) else 0


def _programs(repo: OverridesRepository, args) -> int:
    try:
        dataset = load_dataset(default_cache(args.data_url, args.state_dir))
    except DataUnavailableError as e:
        log.error("Cannot list programs without brochure data: %s", e)
        return 1
    for meta in merged_program_meta(dataset.program_meta, repo.load()):
        print(
            f"{meta.program_id:24} {meta.name:40} "
            f"pages={meta.start_page}-{meta.end_page} status={meta.status.value} stand={meta.stand}"
        )
    return 0


def main():
    parser = argparse.ArgumentParser(description="Manage retrieval overrides.")
    parser.add_argument("--state_dir", type=Path, default=yaml_config.app.state_dir)
    parser.add_argument("--data_url", type=str, default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("export", help="Write the current overrides to a dated JSON file")
    p.add_argument("--out_dir", type=Path, default=yaml_config.overrides.export_dir)
    p = sub.add_parser("import", help="Replace the current overrides with a JSON file")
    p.add_argument("file", type=Path)
    sub.add_parser("reset", help="Clear all overrides and history")
    p = sub.add_parser("history", help="Show recent admin actions")
    p.add_argument("--limit", type=int, default=yaml_config.overrides.history_limit)
    sub.add_parser("validate", help="Check overrides against the current build")
    sub.add_parser("programs", help="Show program metadata with overrides applied")

    p = sub.add_parser("mute", help="Mute (or unmute) the chunk(s) of a program page")
    p.add_argument("program_id")
    p.add_argument("page", type=int)
    p.add_argument("--unmute", action="store_true")
    p = sub.add_parser("boost", help="Reweight the chunk(s) of a program page (-1..1)")
    p.add_argument("program_id")
    p.add_argument("page", type=int)
    p.add_argument("boost", type=float)
    p = sub.add_parser("section", help="Label a page range of a program")
    p.add_argument("program_id")
    p.add_argument("page_start", type=int)
    p.add_argument("page_end", type=int)
    p.add_argument("title")
    p = sub.add_parser("status", help="Override a program's status / stand")
    p.add_argument("program_id")
    p.add_argument("--status", default=None)
    p.add_argument("--stand", default=None)

    args = parser.parse_args()
    repo = OverridesRepository(FileStore(args.state_dir / "overrides"))

    if args.command == "export":
        print(repo.export_file(args.out_dir))
    elif args.command == "import":
        try:
            repo.import_json(args.file.read_bytes())
        except OverridesImportError as e:
            log.error("%s: %s", args.file, e)
            raise SystemExit(1)
    elif args.command == "reset":
        repo.reset()
    elif args.command == "history":
        for entry in repo.history(args.limit):
            print(f"{entry.timestamp} {entry.action:15} {entry.description}")
    elif args.command == "programs":
        raise SystemExit(_programs(repo, args))
    elif args.command == "validate":
        raise SystemExit(_validate(repo, args))
    elif args.command == "mute":
        repo.set_chunk_override(
            ChunkOverride(program_id=args.program_id, page=args.page, muted=not args.unmute)
        )
    elif args.command == "boost":
        repo.set_chunk_override(
            ChunkOverride(program_id=args.program_id, page=args.page, boost=args.boost)
        )
    elif args.command == "section":
        repo.upsert_section(
            SectionOverride(
                program_id=args.program_id,
                page_start=args.page_start,
                page_end=args.page_end,
                section_title=args.title,
            )
        )
    elif args.command == "status":
        fields = {k: v for k, v in (("status", args.status), ("stand", args.stand)) if v}
        repo.upsert_program_meta(ProgramMetaOverride(program_id=args.program_id, **fields))


if __name__ == "__main__":
    main()
