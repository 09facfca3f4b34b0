# =============================================================================
# src/cli/catalog.py -- Catalog administration CLI
# =============================================================================
#
# Thin driver over IngestionOrchestrator for operators and cron jobs.
#
#   ingest    -- ingest one or more store URLs / ids
#   refresh   -- regenerate suggestions for an entry
#   clear     -- clear an entry's suggestions
#   backfill  -- refresh suggestions for many stored entries in small
#                concurrent batches with a pause between batches
#   heal      -- run the self-healing sweep for a stale id
#
# Usage examples:
#   python -m src.cli ingest https://store.steampowered.com/app/620/Portal_2/
#   python -m src.cli refresh 620
#   python -m src.cli backfill --only-missing --limit 50 --batch-size 5
#   python -m src.cli heal 123456 --title "Some Game"
# =============================================================================

"""Administrative CLI for the vibefinder catalog."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from src.config.settings import Settings
from src.pipeline.orchestrator import IngestionOrchestrator
from src.utils.concurrency import throttled_gather
from src.utils.errors import VibeFinderError


def _chunks(items: list[int], size: int) -> list[list[int]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, orchestrator: IngestionOrchestrator) -> int:
    exit_code = 0
    for source in args.sources:
        try:
            result = await orchestrator.ingest(
                source,
                skip_enrichment=args.skip_enrichment,
                force=args.force,
            )
        except VibeFinderError as exc:
            print(f"  FAILED {source}: {exc}", file=sys.stderr)
            exit_code = 1
            continue
        state = "cached" if result.cached else "waited" if result.waited else "fetched"
        print(f"  {result.entry.external_id:<10} {state:<8} {result.entry.title}")
    return exit_code


async def _handle_refresh(args: argparse.Namespace, orchestrator: IngestionOrchestrator) -> int:
    run = await orchestrator.refresh_suggestions(args.external_id)
    if run.skipped:
        print("Another refresh is already running for this entry; skipped.")
        return 0

    print(f"Suggestions for {run.external_id} ({run.elapsed_ms / 1000:.1f}s)")
    for strategy in run.strategies:
        status = "ok" if strategy.succeeded else f"failed: {strategy.error}"
        print(f"  strategy {strategy.name:<18} {len(strategy.candidates):>3} candidates  {status}")
    print(f"  merged: {run.merged_count}  curated: {run.curated}  hallucinated: {len(run.hallucinated_titles)}")
    for suggestion in run.suggestions:
        grade = f" [{suggestion.grade}]" if suggestion.grade else ""
        print(f"    {suggestion.external_id:<10} {suggestion.title}{grade} - {suggestion.explanation}")
    return 0


async def _handle_clear(args: argparse.Namespace, orchestrator: IngestionOrchestrator) -> int:
    await orchestrator.clear_suggestions(args.external_id)
    print(f"Cleared suggestions for {args.external_id}")
    return 0


async def _handle_backfill(
    args: argparse.Namespace,
    components: dict[str, Any],
    app_settings: Settings,
) -> int:
    orchestrator: IngestionOrchestrator = components["orchestrator"]
    ids = await components["store"].list_entry_ids(
        limit=args.limit,
        only_without_suggestions=args.only_missing,
    )
    if not ids:
        print("Nothing to backfill.")
        return 0

    batch_size = args.batch_size or app_settings.backfill_batch_size
    delay_ms = app_settings.backfill_batch_delay_ms if args.delay_ms is None else args.delay_ms
    batches = _chunks(ids, batch_size)
    refreshed = failed = 0

    print(f"Backfilling {len(ids)} entries in {len(batches)} batches of {batch_size}")
    for index, batch in enumerate(batches, start=1):
        results = await throttled_gather(
            [orchestrator.refresh_suggestions(external_id) for external_id in batch],
            semaphore=asyncio.Semaphore(batch_size),
        )
        for external_id, result in zip(batch, results):
            if isinstance(result, VibeFinderError):
                failed += 1
                print(f"  FAILED {external_id}: {result}", file=sys.stderr)
            elif isinstance(result, BaseException):
                raise result
            else:
                refreshed += 1
        print(f"  batch {index}/{len(batches)} done")
        if index < len(batches) and delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

    print(f"Backfill complete: {refreshed} refreshed, {failed} failed")
    return 0 if failed == 0 else 1


async def _handle_heal(args: argparse.Namespace, orchestrator: IngestionOrchestrator) -> int:
    outcome = await orchestrator.heal_reference(args.external_id, title_hint=args.title)
    if not outcome.ran:
        print("Another sweep for this id is already running; skipped.")
        return 0
    if outcome.aborted:
        print("Catalog search failed; references were left unchanged.", file=sys.stderr)
        return 1
    if outcome.corrected_id is not None:
        print(f"Corrected {outcome.stale_id} -> {outcome.corrected_id} in {len(outcome.rewritten_entries)} entries")
    if outcome.removed_from:
        print(f"Removed {outcome.stale_id} from {len(outcome.removed_from)} entries")
    if not outcome.rewritten_entries and not outcome.removed_from:
        print(f"No entries reference {outcome.stale_id}")
    return 0


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Manage the vibefinder catalog and its suggestions.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Catalog commands")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest store URLs or ids")
    ingest_parser.add_argument("sources", nargs="+", help="Store URL or numeric id")
    ingest_parser.add_argument("--force", action="store_true", help="Re-fetch even if stored")
    ingest_parser.add_argument(
        "--skip-enrichment",
        action="store_true",
        dest="skip_enrichment",
        help="Do not generate suggestions or facet embeddings",
    )

    refresh_parser = subparsers.add_parser("refresh", help="Regenerate suggestions for an entry")
    refresh_parser.add_argument("external_id", type=int)

    clear_parser = subparsers.add_parser("clear", help="Clear an entry's suggestions")
    clear_parser.add_argument("external_id", type=int)

    backfill_parser = subparsers.add_parser("backfill", help="Refresh suggestions in batches")
    backfill_parser.add_argument("--limit", type=int, default=None, help="Maximum entries to process")
    backfill_parser.add_argument("--batch-size", type=int, default=None, dest="batch_size")
    backfill_parser.add_argument("--delay-ms", type=int, default=None, dest="delay_ms")
    backfill_parser.add_argument(
        "--only-missing",
        action="store_true",
        dest="only_missing",
        help="Only entries without suggestions",
    )

    heal_parser = subparsers.add_parser("heal", help="Correct or remove a stale suggested id")
    heal_parser.add_argument("external_id", type=int)
    heal_parser.add_argument("--title", default=None, help="Title to search when no reference stores one")

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def _run(args: argparse.Namespace, app_settings: Settings) -> int:
    # Imported here so ``--help`` does not build providers.
    from src.main import build_components

    components = build_components(app_settings)
    await components["database"].initialize()
    orchestrator: IngestionOrchestrator = components["orchestrator"]
    try:
        if args.command == "ingest":
            return await _handle_ingest(args, orchestrator)
        if args.command == "refresh":
            return await _handle_refresh(args, orchestrator)
        if args.command == "clear":
            return await _handle_clear(args, orchestrator)
        if args.command == "backfill":
            return await _handle_backfill(args, components, app_settings)
        if args.command == "heal":
            return await _handle_heal(args, orchestrator)
        return 1
    finally:
        # Enrichment spawned by ``ingest`` must finish before the loop closes.
        await components["task_runner"].drain()
        await components["http_client"].aclose()


def main(argv: list[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    app_settings = Settings()
    try:
        exit_code = asyncio.run(_run(args, app_settings))
    except VibeFinderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
