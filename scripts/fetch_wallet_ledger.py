# flake8: noqa: E402
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Sequence

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


from api.api import build_contract_registry
from clients.alchemy import build_alchemy_service
from config import config
from db.transfers_cache import init_transfers_cache_db
from domain.categorization import categorize_ledger, summarize_categories
from domain.ledger import LedgerRow, PriceEntry, TaxInput, UserType


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch wallet transfers via Alchemy and write a TaxInput JSON file.")
    parser.add_argument("wallets", nargs="+", help="Wallet addresses to fetch")
    parser.add_argument("--user-type", type=UserType, choices=list(UserType), default=UserType.INDIVIDUAL)
    parser.add_argument("--refresh", action="store_true", help="Ignore cached transfers and hit the API again.")
    parser.add_argument("--eth-price", default="2000.00", help="USD price used for the native asset")
    parser.add_argument("--usd-inr-rate", default="83.00")
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("tax_input.json"),
        help="Where to write the TaxInput JSON (default: tax_input.json)",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    settings = config()
    session = init_transfers_cache_db(db_file=settings.transfers_cache_db)
    service = build_alchemy_service(settings, session)

    ledger: list[LedgerRow] = []
    for wallet in args.wallets:
        ledger.extend(service.get_ledger(wallet, refresh=args.refresh))
    ledger.sort(key=lambda row: row.block_time)
    categorize_ledger(ledger, args.wallets, build_contract_registry(settings), settings.native_asset)

    tax_input = TaxInput(
        user_type=args.user_type,
        wallets=[wallet.lower() for wallet in args.wallets],
        ledger=ledger,
        prices=[PriceEntry(asset=settings.native_asset, usd_price=args.eth_price)],
        usd_inr_rate=args.usd_inr_rate,
    )
    args.output.write_text(json.dumps(tax_input.model_dump(mode="json"), indent=2))

    summary = summarize_categories(ledger)
    print(f"Fetched {len(ledger)} transfers, {summary.needs_review} need review; wrote {args.output}")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    main()
