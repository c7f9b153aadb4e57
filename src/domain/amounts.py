from __future__ import annotations

import re
from decimal import ROUND_DOWN, Context, Decimal

# Grammar accepted for amounts, prices and rates. The guest program parses the
# same grammar by hand; both sides must agree on what counts as zero.
MAX_DECIMAL_LENGTH = 80
_DECIMAL_RE = re.compile(r"(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)")

PAISA = Decimal("0.01")

# Large enough for exact products of three MAX_DECIMAL_LENGTH operands.
EXACT = Context(prec=4 * MAX_DECIMAL_LENGTH, rounding=ROUND_DOWN)


def parse_decimal(value: str | None) -> Decimal:
    """Parse a non-negative decimal string; anything unparsable is zero."""
    if value is None:
        return Decimal(0)
    text = value.strip()
    if len(text) > MAX_DECIMAL_LENGTH or not _DECIMAL_RE.fullmatch(text):
        return Decimal(0)
    return Decimal(text)


def to_paisa(value: Decimal) -> Decimal:
    return value.quantize(PAISA, rounding=ROUND_DOWN, context=EXACT)


def paisa_int(value: Decimal) -> int:
    return int(EXACT.multiply(to_paisa(value), 100))
