"""CLI entry point for the early-careers ingestion and matching engine."""

import argparse
import asyncio
import json
import logging
import sys

from src.core.config import Settings
from src.core.db import get_job, init_db
from src.core.schemas import UserPreferences
from src.llm import available_providers
from src.matching.orchestrator import MatchingOrchestrator
from src.pipeline.ingest import run_all_sources
from src.pipeline.persistence import revalidate_active_jobs
from src.pipeline.telemetry import export_snapshots_json
from src.sources import available_sources


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        default="config/settings.yaml",
        help="Path to settings YAML file (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Early-careers engine - ingest EU graduate jobs and match them to users",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- ingest ---
    ingest_parser = subparsers.add_parser("ingest", help="Fetch, classify and store jobs")
    _add_common(ingest_parser)
    ingest_parser.add_argument(
        "--source",
        action="append",
        help="Only run the named source (repeatable)",
    )
    ingest_parser.add_argument(
        "--export",
        choices=["json"],
        help="Print funnel snapshots in the given format",
    )

    # --- match ---
    match_parser = subparsers.add_parser("match", help="Match stored jobs to one user")
    _add_common(match_parser)
    match_parser.add_argument("--email", required=True, help="User email (identity key)")
    match_parser.add_argument(
        "--tier",
        default="free",
        choices=["free", "premium_pending"],
        help="Subscription tier (default: free)",
    )
    match_parser.add_argument("--cities", nargs="*", default=[], help="Target cities, in order")
    match_parser.add_argument("--career-path", nargs="*", default=[], help="Career path slugs")
    match_parser.add_argument("--languages", nargs="*", default=[], help="Languages spoken")
    match_parser.add_argument("--work-environment", help="remote, hybrid or on-site")
    match_parser.add_argument("--entry-level", help="internship, graduate or entry-level")
    match_parser.add_argument("--visa-status", help="Visa status, free text")
    match_parser.add_argument("--skills", nargs="*", default=[], help="Skills (premium)")
    match_parser.add_argument("--industries", nargs="*", default=[], help="Industries (premium)")
    match_parser.add_argument("--company-size", help="Company size preference (premium)")
    match_parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip AI scoring and use the rule-based scorer only",
    )

    # --- revalidate ---
    revalidate_parser = subparsers.add_parser(
        "revalidate",
        help="Re-run classification over stored active jobs",
    )
    _add_common(revalidate_parser)
    revalidate_parser.add_argument("--source", help="Only revalidate jobs from this source")

    # --- check-config ---
    check_parser = subparsers.add_parser("check-config", help="Validate the settings file")
    _add_common(check_parser)

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


async def cmd_ingest(settings: Settings, args: argparse.Namespace) -> None:
    if args.source:
        wanted = set(args.source)
        unknown = wanted - {s.name for s in settings.sources}
        if unknown:
            msg = f"unknown source(s): {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        settings = settings.model_copy(
            update={"sources": [s for s in settings.sources if s.name in wanted]}
        )

    conn = init_db(settings.database.path)
    try:
        snapshots = await run_all_sources(settings, conn)
    finally:
        conn.close()

    print(f"\nIngestion complete: {len(snapshots)} sources run.")
    for s in snapshots:
        print(f"  {s.source}: {s.raw} raw, {s.eligible} early-career, "
              f"{s.location_tagged} EU, {s.inserted} new, {s.updated} updated, "
              f"{s.deactivated} deactivated, {len(s.errors)} errors")

    if args.export == "json" and snapshots:
        print(f"\n{export_snapshots_json(snapshots)}")


async def cmd_match(settings: Settings, args: argparse.Namespace) -> int:
    prefs = UserPreferences(
        email=args.email,
        subscription_tier=args.tier,
        target_cities=args.cities,
        career_path=args.career_path,
        languages_spoken=args.languages,
        work_environment=args.work_environment,
        entry_level_preference=args.entry_level,
        visa_status=args.visa_status,
        skills=args.skills,
        industries=args.industries,
        company_size_preference=args.company_size,
    )
    if args.no_ai:
        settings = settings.model_copy(
            update={"ai": settings.ai.model_copy(update={"enabled": False})}
        )

    conn = init_db(settings.database.path)
    try:
        result = await MatchingOrchestrator(conn, settings).run(prefs)
        if not result.success:
            print(f"Matching failed: {result.error}")
            return 1

        print(f"\n{result.match_count} matches for {prefs.email} "
              f"(method: {result.method}, {result.processing_time_ms:.0f}ms)")
        for m in result.matches:
            job = get_job(conn, m.job_hash)
            label = f"{job.title} @ {job.company} ({job.location})" if job else m.job_hash
            print(f"  {m.rank}. [{m.score:.2f}] {label}")
            print(f"     {m.reason}")
            if job:
                print(f"     {job.job_url}")
        return 0
    finally:
        conn.close()


def cmd_revalidate(settings: Settings, args: argparse.Namespace) -> None:
    conn = init_db(settings.database.path)
    try:
        counts = revalidate_active_jobs(conn, source=args.source)
    finally:
        conn.close()

    total = sum(counts.values())
    print(f"Revalidation complete: {total} jobs filtered.")
    for reason, n in sorted(counts.items()):
        print(f"  {reason}: {n}")


def cmd_check_config(settings: Settings) -> None:
    kinds = set(available_sources())
    print(f"Database: {settings.database.path}")
    print(f"Sources ({len(settings.sources)}):")
    for s in settings.sources:
        status = "enabled" if s.enabled else "disabled"
        known = "" if s.kind in kinds else "  [unknown kind]"
        print(f"  {s.name} ({s.kind}, {status}, max {s.max_pages} pages){known}")
    print(f"AI: {'on' if settings.ai.enabled else 'off'} via {settings.ai.provider}"
          f" (available: {', '.join(available_providers())})")
    for name, tier in settings.matching.tiers.items():
        print(f"Tier {name}: {tier.max_matches} matches, {tier.job_freshness_days}-day "
              f"freshness, {tier.max_jobs_for_ai} jobs to AI, fetch cap {tier.max_jobs_to_fetch}")
    print(json.dumps(settings.scoring.model_dump(), indent=2))


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = Settings.from_yaml(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    if args.command == "check-config":
        cmd_check_config(settings)
        return

    try:
        if args.command == "ingest":
            asyncio.run(cmd_ingest(settings, args))
        elif args.command == "match":
            if asyncio.run(cmd_match(settings, args)):
                sys.exit(1)
        elif args.command == "revalidate":
            cmd_revalidate(settings, args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
