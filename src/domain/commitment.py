"""Ledger commitment: SHA-256 over a canonical JSON encoding of the rows.

The byte encoding is shared with the guest program and must not change:
compact separators, UTF-8 without escaping, and keys in ``LEDGER_FIELDS``
order. Row order is significant.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Iterable

from domain.ledger import LedgerRow

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


def canonical_row(row: LedgerRow) -> dict[str, Any]:
    dumped = row.model_dump(mode="json")
    return {field: dumped[field] for field in LEDGER_FIELDS}


def canonical_ledger_bytes(rows: Iterable[LedgerRow]) -> bytes:
    payload = [canonical_row(row) for row in rows]
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def commit(rows: Iterable[LedgerRow]) -> bytes:
    return hashlib.sha256(canonical_ledger_bytes(rows)).digest()
