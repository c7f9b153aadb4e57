from __future__ import annotations

import json

import pytest

from domain.commitment import canonical_ledger_bytes, commit
from domain.ledger import Category, PriceEntry, TaxInput, UserType
from domain.public_values import decode, encode
from domain.tax import compute_tax
from guest.program import GuestError, ledger_bytes, pack_public_values, run
from guest.tax import compute_tax_paisa, parse_fixed
from tests.helpers.ledger_factory import inr_income, make_row, make_tax_input


def _stdin(tax_input: TaxInput) -> bytes:
    return tax_input.model_dump_json().encode("utf-8")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("1.5", (15, 1)),
        ("  2000.00 ", (200000, 2)),
        ("7", (7, 0)),
        ("7.", (7, 0)),
        (".25", (25, 2)),
        ("", (0, 0)),
        (".", (0, 0)),
        ("-1", (0, 0)),
        ("1e3", (0, 0)),
        ("1.2.3", (0, 0)),
        ("٣", (0, 0)),
        ("1" * 81, (0, 0)),
        (None, (0, 0)),
    ],
)
def test_parse_fixed(text: str | None, expected: tuple[int, int]) -> None:
    assert parse_fixed(text) == expected


def test_guest_commitment_matches_host(sample_tax_input: TaxInput) -> None:
    payload = json.loads(_stdin(sample_tax_input))

    assert ledger_bytes(payload["ledger"]) == canonical_ledger_bytes(sample_tax_input.ledger)
    assert decode(run(_stdin(sample_tax_input))).ledger_commitment == commit(sample_tax_input.ledger)


def test_sample_public_values(sample_tax_input: TaxInput) -> None:
    public_values = decode(run(_stdin(sample_tax_input)))

    assert public_values.total_tax_paisa == 2_589_600
    assert public_values.user_type == UserType.INDIVIDUAL
    assert public_values.used_44ada is False


GOLDEN_INPUTS = [
    make_tax_input([inr_income("1500000")]),
    make_tax_input([inr_income("2000000")], use_44ada=True),
    make_tax_input([inr_income("2000001.37")], use_44ada=True),
    make_tax_input([inr_income("1000000")], user_type=UserType.CORPORATE),
    make_tax_input([inr_income("1000000.07")], user_type=UserType.CORPORATE, use_44ada=True),
    make_tax_input([inr_income("1210000")], apply_87a_rebate=True),
    make_tax_input([inr_income("1199999.99")], apply_87a_rebate=True),
    make_tax_input([inr_income("1250000")], user_type=UserType.HUF, apply_87a_rebate=True),
    make_tax_input(
        [
            inr_income("0.019", category=Category.GAINS),
            inr_income("0.019", category=Category.GAINS),
            inr_income("123.456", category=Category.LOSSES),
        ]
    ),
    make_tax_input(
        [
            make_row(amount="0.123456789012345678", category=Category.INCOME),
            make_row(amount="3.333", asset="WBTC", category=Category.GAINS),
            make_row(amount="12", asset="NOPRICE", category=Category.GAINS),
            make_row(amount="garbage", category=Category.INCOME),
        ],
        prices=[
            PriceEntry(asset="ETH", usd_price="2456.78"),
            PriceEntry(asset="WBTC", usd_price="64321.123"),
            PriceEntry(asset="ETH", usd_price="1"),
        ],
        usd_inr_rate="83.4567",
    ),
    make_tax_input([]),
]


@pytest.mark.parametrize("tax_input", GOLDEN_INPUTS)
def test_host_and_guest_agree_to_the_paisa(tax_input: TaxInput) -> None:
    host = compute_tax(tax_input)
    guest = compute_tax_paisa(json.loads(_stdin(tax_input)))

    assert guest.total == host.total_tax_paisa
    assert guest.used_44ada == host.used_44ada
    assert decode(run(_stdin(tax_input))).total_tax_paisa == host.total_tax_paisa


def test_rejects_unknown_user_type() -> None:
    payload = json.loads(_stdin(make_tax_input([])))
    payload["user_type"] = "trust"

    with pytest.raises(GuestError):
        run(json.dumps(payload).encode())


def test_rejects_malformed_stdin() -> None:
    with pytest.raises(GuestError):
        run(b"not json")


def test_rejects_tax_overflowing_u64() -> None:
    tax_input = make_tax_input([inr_income("9" * 30, category=Category.GAINS)])

    with pytest.raises(GuestError, match="overflows"):
        run(_stdin(tax_input))


def test_host_and_guest_agree_beyond_u64() -> None:
    tax_input = make_tax_input([inr_income("9" * 40, category=Category.GAINS)])

    assert compute_tax_paisa(json.loads(_stdin(tax_input))).total == compute_tax(tax_input).total_tax_paisa


@pytest.mark.parametrize(
    ("tax", "code", "used_44ada"),
    [(0, 0, False), (2_589_600, 1, True), (2**64 - 1, 2, False)],
)
def test_guest_packing_matches_host_encoder(tax: int, code: int, used_44ada: bool) -> None:
    commitment = bytes(range(32, 64))

    assert pack_public_values(commitment, tax, code, used_44ada) == encode(commitment, tax, code, used_44ada)
