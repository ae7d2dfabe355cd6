"""
Barback operations CLI

Usage:
  barback init-db
  barback recalculate --trigger stock_webhook
  barback count 3 "2 bottles" --note "closing count"
  barback --json overview
  barback runs --limit 5

Exit code is 1 when a command fails with a Barback error.
"""
import argparse
import json
import sys
from typing import List, Optional

from barback.db.session import init_db, session_scope
from barback.exceptions import BarbackException
from barback.logging_config import get_logger, setup_logging
from barback.schemas.inventory import RecalculationRunResponse
from barback.services.inventory_service import get_inventory_overview, submit_count
from barback.services.reconciliation_service import (
    RecalculationTrigger,
    list_recalculation_runs,
    recalculate_expected_inventory,
)

logger = get_logger(__name__)


def _print(payload, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, indent=2, default=str))
        return
    if isinstance(payload, dict):
        for key, value in payload.items():
            print(f"{key:>20}: {value}")
    else:
        for row in payload:
            print(row)


def _cmd_init_db(args, db) -> None:
    init_db()
    print("Database tables created")


def _cmd_recalculate(args, db) -> None:
    result = recalculate_expected_inventory(db, trigger=RecalculationTrigger(args.trigger))
    _print(result.to_dict(), args.json)


def _cmd_count(args, db) -> None:
    outcome = submit_count(
        db,
        {"ingredient_id": args.ingredient_id, "quantity_raw": args.quantity, "note": args.note},
    )
    _print(
        {
            "count_id": outcome.count.id,
            "quantity": outcome.count.quantity,
            "baseline_updated": outcome.baseline_updated,
            **outcome.recalculation.to_dict(),
        },
        args.json,
    )


def _cmd_overview(args, db) -> None:
    overview = get_inventory_overview(db)
    if args.json:
        _print(overview.model_dump(), True)
        return
    for item in overview.items:
        expected = item.expected_display or "not counted"
        flag = " !" if item.open_alerts else ""
        print(f"{item.name:<30} {expected}{flag}")
    summary = overview.summary
    print(f"\n{summary.total} items, {summary.counted} counted, {summary.below_par} at or below par")


def _cmd_runs(args, db) -> None:
    runs = [
        RecalculationRunResponse.model_validate(run).model_dump()
        for run in list_recalculation_runs(db, limit=args.limit)
    ]
    if args.json:
        _print(runs, True)
        return
    for run in runs:
        print(
            f"#{run['id']} {run['triggered_at']:%Y-%m-%d %H:%M:%S} {run['trigger']:<14} "
            f"{run['status']:<10} updated={run['ingredients_updated']} "
            f"alerts +{run['alerts_created']}/-{run['alerts_resolved']}"
        )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="barback",
        description="Barback expected inventory engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")
    parser.add_argument("--log-level", type=str, default=None, help="Override LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables").set_defaults(func=_cmd_init_db)

    recalc = sub.add_parser("recalculate", help="Run a recalculation pass")
    recalc.add_argument(
        "--trigger",
        choices=[t.value for t in RecalculationTrigger],
        default=RecalculationTrigger.MANUAL.value,
    )
    recalc.set_defaults(func=_cmd_recalculate)

    count = sub.add_parser("count", help="Submit a physical count")
    count.add_argument("ingredient_id", type=int)
    count.add_argument("quantity", type=str, help='Base units ("1500") or free text ("2 bottles")')
    count.add_argument("--note", type=str, default=None)
    count.set_defaults(func=_cmd_count)

    sub.add_parser("overview", help="Show inventory overview").set_defaults(func=_cmd_overview)

    runs = sub.add_parser("runs", help="List recent recalculation passes")
    runs.add_argument("--limit", type=int, default=20)
    runs.set_defaults(func=_cmd_runs)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    try:
        with session_scope() as db:
            args.func(args, db)
    except BarbackException as e:
        logger.error(e.message, extra={"error_code": e.error_code})
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
