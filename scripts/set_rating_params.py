#!/usr/bin/env python3
"""
Store a named rating parameter set and optionally make it the active one.

The next rebuild picks up the active set (or the RATING_* settings when no
set is active) and records it on the calculation job.

Show the active parameters:
    python scripts/set_rating_params.py --show

Store and activate a variant with stronger playoff weighting:
    python scripts/set_rating_params.py --name playoffs-2x \\
        --set playoff_multiplier=2.0 --activate
"""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import fields, replace
from pathlib import Path

# Add src to path so this script can be run directly
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leaguerank.db import get_session
from leaguerank.ratings.params import RatingParams, get_active_rating_params, persist_rating_params


def _parse_overrides(pairs: list[str]) -> dict:
    types = {f.name: f.type for f in fields(RatingParams)}
    overrides = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or key not in types:
            raise ValueError(f"unknown parameter '{key}' (expected one of {sorted(types)})")
        if types[key] in ("bool", bool):
            overrides[key] = raw.lower() in ("1", "true", "yes")
        elif types[key] in ("int", int):
            overrides[key] = int(raw)
        else:
            overrides[key] = float(raw)
    return overrides


def main() -> int:
    parser = argparse.ArgumentParser(description="Manage rating parameter sets.")
    parser.add_argument("--show", action="store_true", help="Print the active parameters and exit.")
    parser.add_argument("--name", help="Name of the parameter set to store.")
    parser.add_argument(
        "--set",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override one parameter (repeatable). Unset keys keep the active values.",
    )
    parser.add_argument("--activate", action="store_true", help="Make the stored set active.")
    args = parser.parse_args()

    with get_session() as session:
        active, version = get_active_rating_params(session)

        if args.show or not args.name:
            print(f"Active parameter set: {version}")
            print(json.dumps(active.to_dict(), indent=2))
            return 0

        try:
            params = replace(active, **_parse_overrides(args.set))
        except ValueError as exc:
            print(f"ERROR: {exc}")
            return 1

        record = persist_rating_params(
            session, args.name, params, source="manual", activate=args.activate,
        )
        print(f"Stored parameter set '{record.name}' (active={record.is_active})")
        print(json.dumps(record.params, indent=2))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
