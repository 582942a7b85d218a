# -*- coding: utf-8 -*-
"""
tradezen.main

Command-line driver for the TradeZen store. Environment variables (or a
``.env`` file) provide the Google OAuth client.

Run with 'python -m tradezen.main <command>'
"""

import argparse
import asyncio
from datetime import date
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

from tradezen.client import TradeZenClient  # noqa: E402
from tradezen.exceptions import TradeZenError  # noqa: E402
from tradezen.logger import logger  # noqa: E402
from tradezen.store.schema import TAGS  # noqa: E402


def _parse_month(value: str) -> tuple:
    year, month = value.split("-", 1)
    return int(year), int(month)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradezen", description="TradeZen journal backed by Google Sheets")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("signin", help="Sign in with Google")
    sub.add_parser("signout", help="Forget the stored session and document handles")
    trades = sub.add_parser("trades", help="List trades for a month")
    trades.add_argument("--month", type=_parse_month, default=None, help="YYYY-MM, defaults to the current month")
    sub.add_parser("tags", help="List tags")
    sub.add_parser("settings", help="Show settings")
    return parser


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    client = TradeZenClient()

    if args.command == "signout":
        client.sign_out()
        print("Signed out.")
        return 0

    try:
        client.initialize()
        credential = await client.sign_in()
        if args.command == "signin":
            print(f"Signed in as {credential.email}")
        elif args.command == "trades":
            year, month = args.month or (date.today().year, date.today().month)
            for trade in await client.month_trades(year, month):
                print(f"{trade.date} {trade.time:>5} {trade.amount:>10} {trade.tag_emoji} {trade.tag_name} {trade.notes}")
        elif args.command == "tags":
            for tag in await client.query(TAGS):
                print(f"{tag.order:>3} {tag.emoji} {tag.name} ({tag.color})")
        elif args.command == "settings":
            for key, value in (await client.settings()).items():
                print(f"{key} = {value}")
    except TradeZenError as e:
        logger.error(f"[MAIN] {args.command} failed: {e}")
        print(f"Error: {e}")
        return 1
    finally:
        client.close()
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
