# flake8: noqa: E402
# Proves a small fixed ledger end to end:
# python scripts/prove_sample.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from domain.ledger import Category, Direction, LedgerRow, PriceEntry, TaxInput, UserType
from domain.tax import compute_tax
from services.prover import MockProver

WALLET = "0x1234567890123456789012345678901234567890"


def sample_input() -> TaxInput:
    ledger = [
        LedgerRow(
            chain_id=11155111,
            owner_wallet=WALLET,
            tx_hash="0xabc123",
            block_time=1704067200,
            asset="ETH",
            amount="1.5",
            decimals=18,
            direction=Direction.IN,
            counterparty="0xsender",
            category=Category.INCOME,
            confidence=0.9,
        ),
        LedgerRow(
            chain_id=11155111,
            owner_wallet=WALLET,
            tx_hash="0xdef456",
            block_time=1704153600,
            asset="ETH",
            amount="0.5",
            decimals=18,
            direction=Direction.IN,
            counterparty="0xprofitmachine",
            category=Category.GAINS,
            confidence=0.95,
        ),
    ]
    return TaxInput(
        user_type=UserType.INDIVIDUAL,
        wallets=[WALLET],
        ledger=ledger,
        prices=[PriceEntry(asset="ETH", usd_price="2000.00")],
        usd_inr_rate="83.00",
    )


def main() -> None:
    tax_input = sample_input()
    breakdown = compute_tax(tax_input)
    print(f"Expected total tax: {breakdown.total_tax_inr} INR ({breakdown.total_tax_paisa} paisa)")

    prover = MockProver()
    artifacts = prover.prove(tax_input)
    print(f"Guest total tax:    {artifacts.total_tax_paisa} paisa")
    print(f"Ledger commitment:  {artifacts.ledger_commitment}")
    print(f"vk hash:            {artifacts.vk_hash}")
    print(f"Verified:           {prover.verify(artifacts)}")
    if artifacts.total_tax_paisa != breakdown.total_tax_paisa:
        raise SystemExit("Host and guest totals differ")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    main()
