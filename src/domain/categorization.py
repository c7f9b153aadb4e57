"""Heuristic transaction categorization.

Rules are evaluated top to bottom and the first one that matches decides the
category. The order is part of the contract: reordering the rules changes the
tax result for the same ledger.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Iterable, Mapping

from domain.amounts import parse_decimal
from domain.ledger import Category, Direction, LedgerRow

DEFAULT_NATIVE_ASSET = "ETH"
GAS_FEE_THRESHOLD = Decimal("0.01")


@dataclass(frozen=True)
class Categorization:
    category: Category
    confidence: float


UNCATEGORIZED = Categorization(Category.UNKNOWN, 0.0)


class ContractRegistry:
    """Known contract addresses and the category their transfers fall into.

    Unset (``None``) or blank addresses are dropped on construction, so an
    empty or missing counterparty can never match a configured contract.
    """

    def __init__(self, contracts: Mapping[str | None, Category] | None = None) -> None:
        self._contracts: dict[str, Category] = {}
        for address, category in (contracts or {}).items():
            if address is None or not address.strip():
                continue
            self._contracts[address.strip().lower()] = category

    @classmethod
    def from_addresses(
        cls,
        *,
        gains: Iterable[str | None] = (),
        losses: Iterable[str | None] = (),
        yields: Iterable[str | None] = (),
    ) -> ContractRegistry:
        contracts: dict[str | None, Category] = {}
        # Yield farms pay out VDA gains.
        for address in [*gains, *yields]:
            contracts[address] = Category.GAINS
        for address in losses:
            contracts[address] = Category.LOSSES
        return cls(contracts)

    def lookup(self, address: str | None) -> Category | None:
        if not address:
            return None
        return self._contracts.get(address.lower())

    def __len__(self) -> int:
        return len(self._contracts)


@dataclass(frozen=True)
class CategorizationContext:
    owned_addresses: frozenset[str]
    contracts: ContractRegistry = field(default_factory=ContractRegistry)
    native_asset: str = DEFAULT_NATIVE_ASSET

    @classmethod
    def build(
        cls,
        owned_addresses: Iterable[str],
        contracts: ContractRegistry | None = None,
        native_asset: str = DEFAULT_NATIVE_ASSET,
    ) -> CategorizationContext:
        owned = frozenset(address.lower() for address in owned_addresses if address)
        return cls(owned, contracts or ContractRegistry(), native_asset)


@dataclass(frozen=True)
class Rule:
    name: str
    apply: Callable[[LedgerRow, CategorizationContext], Categorization | None]


def _counterparty(row: LedgerRow) -> str | None:
    if not row.counterparty:
        return None
    return row.counterparty.lower()


def _internal_transfer(row: LedgerRow, ctx: CategorizationContext) -> Categorization | None:
    counterparty = _counterparty(row)
    if counterparty is not None and counterparty in ctx.owned_addresses:
        return Categorization(Category.INTERNAL, 1.0)
    return None


def _contract_payout(expected: Category) -> Callable[[LedgerRow, CategorizationContext], Categorization | None]:
    def rule(row: LedgerRow, ctx: CategorizationContext) -> Categorization | None:
        if row.direction != Direction.IN:
            return None
        if ctx.contracts.lookup(_counterparty(row)) == expected:
            return Categorization(expected, 0.95)
        return None

    return rule


def _contract_deposit(row: LedgerRow, ctx: CategorizationContext) -> Categorization | None:
    if row.direction != Direction.OUT:
        return None
    category = ctx.contracts.lookup(_counterparty(row))
    if category is None:
        return None
    return Categorization(category, 0.90)


def _gas_fee(row: LedgerRow, ctx: CategorizationContext) -> Categorization | None:
    if row.direction != Direction.OUT or row.asset != ctx.native_asset:
        return None
    if parse_decimal(row.amount) < GAS_FEE_THRESHOLD:
        return Categorization(Category.FEES, 0.80)
    return None


def _external_inflow(row: LedgerRow, ctx: CategorizationContext) -> Categorization | None:
    if row.direction == Direction.IN:
        return Categorization(Category.INCOME, 0.60)
    return None


RULES: tuple[Rule, ...] = (
    Rule("internal_transfer", _internal_transfer),
    Rule("contract_gain", _contract_payout(Category.GAINS)),
    Rule("contract_loss", _contract_payout(Category.LOSSES)),
    Rule("contract_deposit", _contract_deposit),
    Rule("gas_fee", _gas_fee),
    Rule("external_inflow", _external_inflow),
)


def categorize_row(row: LedgerRow, ctx: CategorizationContext) -> Categorization:
    for rule in RULES:
        result = rule.apply(row, ctx)
        if result is not None:
            return result
    return UNCATEGORIZED


def categorize(
    row: LedgerRow,
    owned_addresses: Iterable[str],
    contracts: ContractRegistry | None = None,
    native_asset: str = DEFAULT_NATIVE_ASSET,
) -> Categorization:
    return categorize_row(row, CategorizationContext.build(owned_addresses, contracts, native_asset))


def categorize_ledger(
    rows: list[LedgerRow],
    owned_addresses: Iterable[str],
    contracts: ContractRegistry | None = None,
    native_asset: str = DEFAULT_NATIVE_ASSET,
) -> list[LedgerRow]:
    """Assign category and confidence in place, leaving user overrides untouched."""
    ctx = CategorizationContext.build(owned_addresses, contracts, native_asset)
    for row in rows:
        if row.user_override:
            continue
        result = categorize_row(row, ctx)
        row.category = result.category
        row.confidence = result.confidence
    return rows


@dataclass(frozen=True)
class CategorySummary:
    counts: dict[Category, int]
    needs_review: int


def summarize_categories(rows: Iterable[LedgerRow]) -> CategorySummary:
    counts: Counter[Category] = Counter()
    needs_review = 0
    for row in rows:
        counts[row.category] += 1
        if row.needs_review:
            needs_review += 1
    return CategorySummary(counts={category: counts[category] for category in Category}, needs_review=needs_review)
