"""Command-line interface for the PBALend ledger indexer."""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import Any

from .config import load_config
from .logging_setup import configure_logging
from .query import QueryFacade
from .services import Indexer

_READ_COMMANDS = ("markets", "market", "lend", "borrow", "positions")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="pbalend-indexer",
        description="Project PBALend lending events into a queryable ledger",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("sync", help="Index up to the current chain head and exit")

    run_parser = sub.add_parser("run", help="Continuous indexing loop")
    run_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Poll interval in seconds (overrides config)",
    )

    sub.add_parser("markets", help="List all markets")

    market_parser = sub.add_parser("market", help="Show a market")
    market_parser.add_argument("loan_token")
    market_parser.add_argument("collateral_token")

    for name, help_text in (("lend", "Show a lend position"), ("borrow", "Show a borrow position")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("loan_token")
        p.add_argument("collateral_token")
        p.add_argument("user")

    positions_parser = sub.add_parser("positions", help="List all positions of a user")
    positions_parser.add_argument("user")

    return parser


def _to_json(value: Any) -> str:
    """Render rows as JSON; uint256 values are emitted as strings."""

    def convert(row: Any) -> Any:
        if row is None:
            return None
        return {k: str(v) if isinstance(v, int) else v for k, v in asdict(row).items()}

    if isinstance(value, dict):
        return json.dumps({k: [convert(r) for r in v] for k, v in value.items()}, indent=2)
    return json.dumps(convert(value), indent=2)


async def _show(args: argparse.Namespace, query: QueryFacade) -> int:
    """Run a read command; exit code 1 when the row is absent."""
    if args.command == "markets":
        print(_to_json({"markets": await query.list_markets()}))
        return 0
    if args.command == "positions":
        print(
            _to_json(
                {
                    "lend": await query.list_lend_positions(args.user),
                    "borrow": await query.list_borrow_positions(args.user),
                }
            )
        )
        return 0

    if args.command == "market":
        row = await query.get_market(args.loan_token, args.collateral_token)
    elif args.command == "lend":
        row = await query.get_lend_position(args.loan_token, args.collateral_token, args.user)
    else:
        row = await query.get_borrow_position(args.loan_token, args.collateral_token, args.user)
    print(_to_json(row))
    return 0 if row is not None else 1


async def _run(args: argparse.Namespace) -> int:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    indexer = Indexer(config)

    if args.command == "sync":
        applied = await indexer.sync()
        print(f"Applied {applied} events")
    elif args.command == "run":
        await indexer.run_continuous(args.interval)
    elif args.command in _READ_COMMANDS:
        try:
            return await _show(args, indexer.query)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
    else:
        build_parser().print_help()
        return 1
    return 0


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    sys.exit(asyncio.run(_run(args)))
