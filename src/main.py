from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Sequence

import uvicorn

from api.api import build_contract_registry
from config import config
from domain.categorization import categorize_ledger
from domain.ledger import TaxInput
from domain.tax import compute_tax
from services.prover import build_prover

logger = logging.getLogger(__name__)


def serve(host: str, port: int, *, reload: bool) -> None:
    uvicorn.run("api.api:app", host=host, port=port, reload=reload)


def prove(input_path: Path, output_path: Path | None, *, categorize: bool) -> None:
    settings = config()
    tax_input = TaxInput.model_validate_json(input_path.read_text(encoding="utf-8"))
    if categorize:
        categorize_ledger(
            tax_input.ledger,
            tax_input.wallets,
            build_contract_registry(settings),
            settings.native_asset,
        )

    breakdown = compute_tax(tax_input)
    prover = build_prover(settings)
    artifacts = prover.prove(tax_input)
    logger.info("Proof verifies locally: %s", prover.verify(artifacts))

    print(f"Rows:             {len(tax_input.ledger)}")
    print(f"User type:        {tax_input.user_type}")
    print(f"Total tax (INR):  {breakdown.total_tax_inr}")
    print(f"Total tax (paisa): {artifacts.total_tax_paisa}")
    print(f"Ledger commitment: {artifacts.ledger_commitment}")
    print(f"vk hash:          {artifacts.vk_hash}")

    if output_path is not None:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"breakdown": breakdown.model_dump(mode="json"), "proof": artifacts.model_dump(mode="json")}
        output_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        print(f"Wrote proof artifacts to {output_path}")


def main(argv: Sequence[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Tax attestation service.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API.")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=3001)
    serve_parser.add_argument("--reload", action="store_true")

    prove_parser = subparsers.add_parser("prove", help="Compute tax and produce a proof for a TaxInput JSON file.")
    prove_parser.add_argument("--input", type=Path, required=True)
    prove_parser.add_argument("--output", type=Path, default=None)
    prove_parser.add_argument("--categorize", action="store_true", help="Run the categorization rules first.")

    args = parser.parse_args(argv)
    if args.command == "serve":
        serve(args.host, args.port, reload=args.reload)
    else:
        prove(args.input, args.output, categorize=args.categorize)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    main()
