"""Host-side tax calculator (Indian new regime, FY 2025-26).

Amounts are ``Decimal`` and truncated toward zero to whole paisa at fixed
points. The guest program (``guest.tax``) performs the same computation in
integer paisa and must agree with this module to the paisa.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, localcontext
from typing import Iterable

from domain.amounts import EXACT, parse_decimal, paisa_int, to_paisa
from domain.ledger import Category, Direction, LedgerRow, PriceEntry, TaxBreakdown, TaxInput, UserType
from utils.formatting import format_paisa

LAKH = Decimal(100_000)
DEFAULT_USD_PRICE = Decimal("1.00")

# (upper bound in INR, marginal rate); ``None`` marks the open top bracket.
SLABS: tuple[tuple[Decimal | None, Decimal], ...] = (
    (4 * LAKH, Decimal("0")),
    (8 * LAKH, Decimal("0.05")),
    (12 * LAKH, Decimal("0.10")),
    (16 * LAKH, Decimal("0.15")),
    (20 * LAKH, Decimal("0.20")),
    (24 * LAKH, Decimal("0.25")),
    (None, Decimal("0.30")),
)

PRESUMPTIVE_SHARE = Decimal("0.50")
CORPORATE_RATE = Decimal("0.22")
CORPORATE_SURCHARGE_RATE = Decimal("0.10")
VDA_RATE = Decimal("0.30")
CESS_RATE = Decimal("0.04")
REBATE_87A_INCOME_LIMIT = 12 * LAKH
REBATE_87A_MAX = Decimal(60_000)

TAXED_CATEGORIES = (Category.INCOME, Category.GAINS, Category.LOSSES)


@dataclass(frozen=True)
class CategoryTotals:
    income: Decimal
    gains: Decimal
    losses: Decimal


def build_price_table(prices: Iterable[PriceEntry]) -> dict[str, Decimal]:
    table: dict[str, Decimal] = {}
    for entry in prices:
        # First entry for a symbol wins.
        table.setdefault(entry.asset, parse_decimal(entry.usd_price))
    return table


def row_value_inr(row: LedgerRow, prices: dict[str, Decimal], usd_inr_rate: Decimal) -> Decimal:
    price = prices.get(row.asset, DEFAULT_USD_PRICE)
    with localcontext(EXACT):
        return to_paisa(parse_decimal(row.amount) * price * usd_inr_rate)


def accumulate(rows: Iterable[LedgerRow], prices: dict[str, Decimal], usd_inr_rate: Decimal) -> CategoryTotals:
    sums = {category: Decimal(0) for category in TAXED_CATEGORIES}
    with localcontext(EXACT):
        for row in rows:
            if row.direction != Direction.IN or row.category not in sums:
                continue
            sums[row.category] += row_value_inr(row, prices, usd_inr_rate)
    return CategoryTotals(
        income=sums[Category.INCOME],
        gains=sums[Category.GAINS],
        losses=sums[Category.LOSSES],
    )


def slab_tax(income: Decimal) -> Decimal:
    tax = Decimal(0)
    lower = Decimal(0)
    with localcontext(EXACT):
        for upper, rate in SLABS:
            if upper is None or income <= upper:
                tax += (income - lower) * rate
                break
            tax += (upper - lower) * rate
            lower = upper
        return to_paisa(tax)


def section_87a_rebate(taxable_income: Decimal, tax: Decimal) -> Decimal:
    if taxable_income <= REBATE_87A_INCOME_LIMIT:
        return min(tax, REBATE_87A_MAX)
    # Marginal relief: tax may not exceed the income above the limit.
    excess = taxable_income - REBATE_87A_INCOME_LIMIT
    if tax > excess:
        return tax - excess
    return Decimal(0)


def _inr(value: Decimal) -> str:
    return format_paisa(paisa_int(value))


def compute_tax(tax_input: TaxInput) -> TaxBreakdown:
    prices = build_price_table(tax_input.prices)
    usd_inr_rate = parse_decimal(tax_input.usd_inr_rate)
    totals = accumulate(tax_input.ledger, prices, usd_inr_rate)

    with localcontext(EXACT):
        gross_income = totals.income
        taxable_income = to_paisa(gross_income * PRESUMPTIVE_SHARE) if tax_input.applies_44ada else gross_income

        surcharge = Decimal(0)
        rebate = Decimal(0)
        if tax_input.user_type == UserType.CORPORATE:
            base_tax = to_paisa(taxable_income * CORPORATE_RATE)
            surcharge = to_paisa(base_tax * CORPORATE_SURCHARGE_RATE)
        else:
            base_tax = slab_tax(taxable_income)
            if tax_input.apply_87a_rebate and tax_input.user_type == UserType.INDIVIDUAL:
                rebate = section_87a_rebate(taxable_income, base_tax)

        professional_tax = base_tax - rebate
        vda_tax = to_paisa(totals.gains * VDA_RATE)
        cess = to_paisa((professional_tax + surcharge + vda_tax) * CESS_RATE)
        total = professional_tax + surcharge + vda_tax + cess

    return TaxBreakdown(
        professional_income_inr=_inr(gross_income),
        taxable_professional_income_inr=_inr(taxable_income),
        vda_gains_inr=_inr(totals.gains),
        vda_losses_inr=_inr(totals.losses),
        professional_tax_inr=_inr(professional_tax),
        surcharge_inr=_inr(surcharge),
        section_87a_rebate_inr=_inr(rebate),
        vda_tax_inr=_inr(vda_tax),
        cess_inr=_inr(cess),
        total_tax_inr=_inr(total),
        total_tax_paisa=paisa_int(total),
        used_44ada=tax_input.applies_44ada,
    )
