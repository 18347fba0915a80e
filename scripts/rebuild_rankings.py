#!/usr/bin/env python3
"""
Rebuild the league rankings from the full game history.

Normal usage (trigger and run a full rebuild in this process):
    python scripts/rebuild_rankings.py

Record who asked for it and print the new top 10:
    python scripts/rebuild_rankings.py --triggered-by "admin@league" --top 10

Check on a job started elsewhere (e.g. via the API):
    python scripts/rebuild_rankings.py --status <calculation_id>

List recent jobs / fail jobs left behind by a crashed process:
    python scripts/rebuild_rankings.py --recent 5
    python scripts/rebuild_rankings.py --recover-stale
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leaguerank.config import settings
from leaguerank.db import get_session
from leaguerank.errors import ConcurrencyError
from leaguerank.jobs.controller import CalculationJobController
from leaguerank.ratings.publisher import current_rankings


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rebuild league rankings from the full game history.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--triggered-by",
        default=None,
        help="Identity recorded on the calculation job.",
    )
    parser.add_argument(
        "--top",
        type=int,
        default=0,
        help="Print the top N players of the published rankings afterwards.",
    )
    parser.add_argument(
        "--status",
        default=None,
        metavar="CALCULATION_ID",
        help="Print the status of an existing calculation and exit.",
    )
    parser.add_argument(
        "--recent",
        type=int,
        default=0,
        help="Print the N most recent calculations and exit.",
    )
    parser.add_argument(
        "--recover-stale",
        action="store_true",
        help="Fail pending/running jobs whose heartbeat went quiet and exit.",
    )
    parser.add_argument(
        "--metrics-json",
        default=None,
        help="Write a JSON summary to this path on completion.",
    )
    return parser


def _print_job(job: dict) -> None:
    progress = job["progress"]
    print(f"Calculation:   {job['calculationId']}")
    print(f"Status:        {job['status']}")
    print(f"Step:          {progress['currentStep']}  ({progress['percentComplete']}%)")
    print(f"Rounds:        {progress['roundsProcessed']}/{progress['totalRounds']}")
    print(f"Games:         {progress['gamesProcessed']}/{progress['totalGames']}")
    print(f"Seasons:       {progress['seasonsProcessed']}/{progress['totalSeasons']}")
    if job["error"]:
        print(f"Error:         {job['error']['message']}")


def main() -> int:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    controller = CalculationJobController()

    if args.status:
        job = controller.get_calculation_status(args.status)
        if job is None:
            print(f"ERROR: calculation {args.status} not found")
            return 1
        _print_job(job)
        return 0

    if args.recent:
        for job in controller.recent_calculations(limit=args.recent):
            print(
                f"{job['startedAt']}  {job['calculationId']}  {job['status']:<10} "
                f"{job['progress']['percentComplete']:>3}%  {job['triggeredBy'] or '-'}"
            )
        return 0

    if args.recover_stale:
        recovered = controller.recover_stale_jobs()
        print(f"Recovered {recovered} stale calculation(s)")
        return 0

    started_at = _utc_now_iso()
    print(f"RANKINGS REBUILD  started={started_at}")
    print("-" * 60)

    t_start = perf_counter()
    try:
        job = controller.rebuild(triggered_by=args.triggered_by or "cli")
    except ConcurrencyError as exc:
        print(f"ERROR: {exc}")
        return 2
    elapsed = perf_counter() - t_start

    print("-" * 60)
    _print_job(job)
    print(f"Elapsed:       {elapsed:.2f}s")

    if args.top and job["status"] == "completed":
        print("-" * 60)
        with get_session() as session:
            for player in current_rankings(session, top=args.top):
                print(
                    f"{player['rank']:>4}. {player['playerName']:<30} "
                    f"{player['rating']:7.2f} ± {player['uncertainty']:.2f}  "
                    f"({player['totalGames']} games)"
                )

    # Write metrics JSON if requested
    if args.metrics_json:
        payload = {
            "status": job["status"],
            "calculation_id": job["calculationId"],
            "started_at": started_at,
            "elapsed_s": round(elapsed, 3),
            "rounds_processed": job["progress"]["roundsProcessed"],
            "games_processed": job["progress"]["gamesProcessed"],
            "seasons_processed": job["progress"]["seasonsProcessed"],
            "error": job["error"]["message"] if job["error"] else None,
        }
        metrics_path = Path(args.metrics_json)
        metrics_path.parent.mkdir(parents=True, exist_ok=True)
        metrics_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    return 0 if job["status"] == "completed" else 1


if __name__ == "__main__":
    raise SystemExit(main())
