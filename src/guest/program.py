"""Entry point of the guest program: serialized ``TaxInput`` in, public values out."""

from __future__ import annotations

import json
from typing import Any

from guest.sha256 import sha256
from guest.tax import compute_tax_paisa

LEDGER_FIELDS: tuple[str, ...] = (
    "chain_id",
    "owner_wallet",
    "tx_hash",
    "block_time",
    "asset",
    "amount",
    "decimals",
    "direction",
    "counterparty",
    "category",
    "confidence",
    "user_override",
)

USER_TYPE_CODES = {"individual": 0, "huf": 1, "corporate": 2}
MAX_U64 = 2**64 - 1


class GuestError(Exception):
    """The guest program aborted; no public values are produced."""


def ledger_bytes(ledger: list[dict[str, Any]]) -> bytes:
    rows = [{field: row[field] for field in LEDGER_FIELDS} for row in ledger]
    return json.dumps(rows, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def pack_public_values(commitment: bytes, total_tax_paisa: int, user_type_code: int, used_44ada: bool) -> bytes:
    return commitment + total_tax_paisa.to_bytes(32, "big") + bytes([user_type_code, int(used_44ada)])


def run(stdin: bytes) -> bytes:
    try:
        tax_input = json.loads(stdin)
        user_type_code = USER_TYPE_CODES[tax_input["user_type"]]
        commitment = sha256(ledger_bytes(tax_input["ledger"]))
        result = compute_tax_paisa(tax_input)
    except (ValueError, KeyError, TypeError) as exc:
        raise GuestError(f"malformed input: {exc!r}") from exc

    if result.total > MAX_U64:
        raise GuestError(f"total tax {result.total} paisa overflows u64")
    return pack_public_values(commitment, result.total, user_type_code, result.used_44ada)
