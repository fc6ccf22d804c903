"""Command line interface for refreshing, inspecting and converting exchange rates."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Sequence

from fx_anchor import FxAnchor
from fx_anchor.errors import FxAnchorError
from fx_anchor.utils.dates import parse_date
from fx_anchor.utils.logger import get_logger, set_verbosity

LOGGER = get_logger(__name__)

__all__ = ["build_parser", "parse_args", "main"]


def _date_arg(value: str) -> date:
    try:
        return parse_date(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}; expected YYYY-MM-DD") from exc


def _amount_arg(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid amount {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fx-anchor", description=__doc__)
    parser.add_argument(
        "--db",
        dest="db_url",
        help="Database URL (defaults to FX_ANCHOR_DB_URL or the bundled SQLite file)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    refresh = subparsers.add_parser("refresh", help="Fetch and store today's rates")
    refresh.add_argument(
        "--force", action="store_true", help="Refresh even when today's rates already exist"
    )

    rate = subparsers.add_parser("rate", help="Show the rate for a currency pair")
    rate.add_argument("from_currency")
    rate.add_argument("to_currency")
    rate.add_argument("--date", dest="rate_date", type=_date_arg, help="Rate date (YYYY-MM-DD)")

    convert = subparsers.add_parser("convert", help="Convert an amount between currencies")
    convert.add_argument("amount", type=_amount_arg)
    convert.add_argument("from_currency")
    convert.add_argument("to_currency")
    convert.add_argument(
        "--date", dest="rate_date", type=_date_arg, help="Rate date (YYYY-MM-DD)"
    )

    subparsers.add_parser("health", help="Summarise today's rate coverage")
    subparsers.add_parser("coverage", help="List the latest rate per currency")
    subparsers.add_parser("serve", help="Run the daily refresh scheduler in the foreground")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _run(fx: FxAnchor, args: argparse.Namespace) -> int:
    if args.command == "refresh":
        ok = fx.refresh(force=args.force)
        print("Exchange rates refreshed" if ok else "Exchange rate refresh failed")
        return 0 if ok else 1

    if args.command == "rate":
        resolution = fx.resolver.resolve_detailed(
            args.from_currency, args.to_currency, args.rate_date
        )
        if resolution is None:
            print(f"No rate available for {args.from_currency} -> {args.to_currency}")
            return 1
        _print_json(
            {
                "from": args.from_currency.upper(),
                "to": args.to_currency.upper(),
                "rate": resolution.rate,
                "tier": resolution.tier,
                "degraded": resolution.degraded,
            }
        )
        return 0

    if args.command == "convert":
        result = fx.convert(args.amount, args.from_currency, args.to_currency, args.rate_date)
        if result is None:
            print(f"Unable to convert {args.from_currency} -> {args.to_currency}")
            return 1
        _print_json(
            {
                "amount": str(result.original_amount),
                "from": result.from_currency,
                "to": result.to_currency,
                "converted": str(result.converted_amount),
                "rate": result.exchange_rate,
                "date": result.conversion_date.isoformat(),
                "tier": result.tier,
                "degraded": result.degraded,
            }
        )
        return 0

    if args.command == "health":
        health = fx.health()
        _print_json(
            {
                "total_rates": health.total_rates,
                "latest_update": health.latest_update,
                "currencies_covered": health.currencies_covered,
                "missing_today": health.missing_today,
            }
        )
        return 0

    if args.command == "coverage":
        _print_json(fx.available_currencies())
        return 0

    if args.command == "serve":
        fx.initialize(start_scheduler=True)
        LOGGER.info("Scheduler running; press Ctrl+C to stop")
        try:
            while fx.scheduler.is_running:
                fx.scheduler.join(timeout=1.0)
        except KeyboardInterrupt:
            LOGGER.info("Interrupted; shutting down")
        return 0

    raise ValueError(f"Unknown command {args.command!r}")  # pragma: no cover - argparse guards


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    set_verbosity(args.verbose)
    try:
        fx = FxAnchor(db_config=args.db_url)
    except (FxAnchorError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    try:
        return _run(fx, args)
    except FxAnchorError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        fx.close()


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
