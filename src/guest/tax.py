"""Integer-only tax computation, in paisa.

Mirrors ``domain.tax``: every amount is an ``int`` number of paisa, rates are
whole percents and every division truncates toward zero (all operands are
non-negative).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

MAX_DECIMAL_LENGTH = 80
DIGITS = frozenset("0123456789")

PAISA_PER_RUPEE = 100
LAKH_PAISA = 100_000 * PAISA_PER_RUPEE

# (upper bound in paisa, marginal rate in percent); None is the open top bracket.
SLABS: tuple[tuple[int | None, int], ...] = (
    (4 * LAKH_PAISA, 0),
    (8 * LAKH_PAISA, 5),
    (12 * LAKH_PAISA, 10),
    (16 * LAKH_PAISA, 15),
    (20 * LAKH_PAISA, 20),
    (24 * LAKH_PAISA, 25),
    (None, 30),
)

CORPORATE_PERCENT = 22
CORPORATE_SURCHARGE_PERCENT = 10
VDA_PERCENT = 30
CESS_PERCENT = 4
REBATE_87A_INCOME_LIMIT = 12 * LAKH_PAISA
REBATE_87A_MAX = 60_000 * PAISA_PER_RUPEE

# 1.00 USD as (mantissa, scale).
DEFAULT_PRICE = (100, 2)


@dataclass(frozen=True)
class TaxPaisa:
    income: int
    taxable_income: int
    gains: int
    losses: int
    professional_tax: int
    surcharge: int
    rebate: int
    vda_tax: int
    cess: int
    total: int
    used_44ada: bool


def parse_fixed(text: Any) -> tuple[int, int]:
    """Parse a decimal string into ``(mantissa, scale)``; unparsable input is zero."""
    if not isinstance(text, str):
        return 0, 0
    text = text.strip()
    if not text or len(text) > MAX_DECIMAL_LENGTH:
        return 0, 0
    whole, _, fraction = text.partition(".")
    if not whole and not fraction:
        return 0, 0
    if not set(whole) <= DIGITS or not set(fraction) <= DIGITS:
        return 0, 0
    return int(whole + fraction or "0"), len(fraction)


def row_paisa(amount: tuple[int, int], price: tuple[int, int], rate: tuple[int, int]) -> int:
    numerator = amount[0] * price[0] * rate[0] * PAISA_PER_RUPEE
    return numerator // 10 ** (amount[1] + price[1] + rate[1])


def slab_tax(income: int) -> int:
    weighted = 0
    lower = 0
    for upper, percent in SLABS:
        if upper is None or income <= upper:
            weighted += (income - lower) * percent
            break
        weighted += (upper - lower) * percent
        lower = upper
    return weighted // 100


def rebate_87a(taxable_income: int, tax: int) -> int:
    if taxable_income <= REBATE_87A_INCOME_LIMIT:
        return min(tax, REBATE_87A_MAX)
    excess = taxable_income - REBATE_87A_INCOME_LIMIT
    return tax - excess if tax > excess else 0


def compute_tax_paisa(tax_input: dict[str, Any]) -> TaxPaisa:
    prices: dict[str, tuple[int, int]] = {}
    for entry in tax_input.get("prices", []):
        prices.setdefault(entry["asset"], parse_fixed(entry["usd_price"]))
    rate = parse_fixed(tax_input["usd_inr_rate"])

    totals = {"income": 0, "gains": 0, "losses": 0}
    for row in tax_input["ledger"]:
        if row["direction"] != "in" or row["category"] not in totals:
            continue
        price = prices.get(row["asset"], DEFAULT_PRICE)
        totals[row["category"]] += row_paisa(parse_fixed(row["amount"]), price, rate)

    user_type = tax_input["user_type"]
    used_44ada = bool(tax_input.get("use_44ada")) and user_type == "individual"
    income = totals["income"]
    taxable_income = income // 2 if used_44ada else income

    surcharge = 0
    rebate = 0
    if user_type == "corporate":
        base_tax = taxable_income * CORPORATE_PERCENT // 100
        surcharge = base_tax * CORPORATE_SURCHARGE_PERCENT // 100
    else:
        base_tax = slab_tax(taxable_income)
        if tax_input.get("apply_87a_rebate") and user_type == "individual":
            rebate = rebate_87a(taxable_income, base_tax)

    professional_tax = base_tax - rebate
    vda_tax = totals["gains"] * VDA_PERCENT // 100
    cess = (professional_tax + surcharge + vda_tax) * CESS_PERCENT // 100

    return TaxPaisa(
        income=income,
        taxable_income=taxable_income,
        gains=totals["gains"],
        losses=totals["losses"],
        professional_tax=professional_tax,
        surcharge=surcharge,
        rebate=rebate,
        vda_tax=vda_tax,
        cess=cess,
        total=professional_tax + surcharge + vda_tax + cess,
        used_44ada=used_44ada,
    )
