from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field, field_validator, model_validator

# Rows below this confidence are surfaced for human review before a result is trusted.
REVIEW_THRESHOLD = 0.7


class UserType(StrEnum):
    INDIVIDUAL = "individual"
    HUF = "huf"
    CORPORATE = "corporate"

    @property
    def code(self) -> int:
        return _USER_TYPE_CODES[self]

    @classmethod
    def from_code(cls, code: int) -> UserType:
        for user_type, user_type_code in _USER_TYPE_CODES.items():
            if user_type_code == code:
                return user_type
        raise ValueError(f"Unknown user type code: {code}")


_USER_TYPE_CODES: dict[UserType, int] = {
    UserType.INDIVIDUAL: 0,
    UserType.HUF: 1,
    UserType.CORPORATE: 2,
}


class Category(StrEnum):
    INCOME = "income"
    GAINS = "gains"
    LOSSES = "losses"
    FEES = "fees"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


class Direction(StrEnum):
    IN = "in"
    OUT = "out"


class LedgerRow(BaseModel):
    """A single normalized transfer, relative to the wallet that owns it.

    Field order is significant: the ledger commitment serializes rows in
    declaration order, so fields must not be reordered.
    """

    chain_id: int
    owner_wallet: str
    tx_hash: str
    block_time: int = Field(ge=0)
    asset: str
    # Kept as a string to avoid precision loss; parsed only by the tax calculator.
    amount: str
    decimals: int = Field(ge=0, le=255)
    direction: Direction
    counterparty: str | None = None
    category: Category = Category.UNKNOWN
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    user_override: bool = False

    @field_validator("owner_wallet")
    @classmethod
    def _normalize_owner(cls, value: str) -> str:
        return value.lower()

    @property
    def needs_review(self) -> bool:
        return not self.user_override and self.confidence < REVIEW_THRESHOLD


class PriceEntry(BaseModel):
    asset: str
    usd_price: str


class TaxInput(BaseModel):
    user_type: UserType
    wallets: list[str] = Field(default_factory=list)
    ledger: list[LedgerRow]
    prices: list[PriceEntry] = Field(default_factory=list)
    usd_inr_rate: str
    # Section 44ADA presumptive taxation; honoured for individuals only.
    use_44ada: bool = False
    apply_87a_rebate: bool = False

    @property
    def applies_44ada(self) -> bool:
        return self.use_44ada and self.user_type == UserType.INDIVIDUAL


class TaxBreakdown(BaseModel):
    professional_income_inr: str
    taxable_professional_income_inr: str
    vda_gains_inr: str
    # Reported only; VDA losses are never set off against gains.
    vda_losses_inr: str
    professional_tax_inr: str
    surcharge_inr: str
    section_87a_rebate_inr: str
    vda_tax_inr: str
    cess_inr: str
    total_tax_inr: str
    total_tax_paisa: int
    used_44ada: bool

    @model_validator(mode="after")
    def _validate_total(self) -> TaxBreakdown:
        if self.total_tax_paisa < 0:
            raise ValueError("total_tax_paisa must be >= 0")
        return self
