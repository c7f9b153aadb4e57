"""Fixed 66-byte public output consumed by external verifiers.

Layout:
    [0:32]   ledger commitment
    [32:64]  total tax in paisa, big-endian uint256 (only the low 8 bytes used)
    [64]     user type code (0 individual, 1 HUF, 2 corporate)
    [65]     whether section 44ADA was applied (0/1)
"""

from __future__ import annotations

from dataclasses import dataclass

from domain.ledger import UserType

COMMITMENT_SIZE = 32
AMOUNT_SIZE = 32
PUBLIC_VALUES_SIZE = COMMITMENT_SIZE + AMOUNT_SIZE + 2
MAX_TAX_PAISA = 2**64 - 1


class PublicValuesError(ValueError):
    pass


@dataclass(frozen=True)
class PublicValues:
    ledger_commitment: bytes
    total_tax_paisa: int
    user_type: UserType
    used_44ada: bool

    def encode(self) -> bytes:
        return encode(self.ledger_commitment, self.total_tax_paisa, self.user_type.code, self.used_44ada)


def encode(commitment: bytes, tax_paisa: int, user_type_code: int, used_44ada: bool) -> bytes:
    if len(commitment) != COMMITMENT_SIZE:
        raise PublicValuesError(f"commitment must be {COMMITMENT_SIZE} bytes, got {len(commitment)}")
    if not 0 <= tax_paisa <= MAX_TAX_PAISA:
        raise PublicValuesError(f"tax amount {tax_paisa} does not fit in 64 bits")
    UserType.from_code(user_type_code)
    return (
        bytes(commitment)
        + tax_paisa.to_bytes(AMOUNT_SIZE, "big")
        + bytes([user_type_code, 1 if used_44ada else 0])
    )


def decode(data: bytes) -> PublicValues:
    if len(data) != PUBLIC_VALUES_SIZE:
        raise PublicValuesError(f"public values must be {PUBLIC_VALUES_SIZE} bytes, got {len(data)}")
    amount = data[COMMITMENT_SIZE : COMMITMENT_SIZE + AMOUNT_SIZE]
    if any(amount[:24]):
        raise PublicValuesError("tax amount uses more than 64 bits")
    flag = data[PUBLIC_VALUES_SIZE - 1]
    if flag not in (0, 1):
        raise PublicValuesError(f"invalid boolean byte: {flag}")
    try:
        user_type = UserType.from_code(data[PUBLIC_VALUES_SIZE - 2])
    except ValueError as exc:
        raise PublicValuesError(str(exc)) from exc
    return PublicValues(
        ledger_commitment=bytes(data[:COMMITMENT_SIZE]),
        total_tax_paisa=int.from_bytes(amount, "big"),
        user_type=user_type,
        used_44ada=flag == 1,
    )
