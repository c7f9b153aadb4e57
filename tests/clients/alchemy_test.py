from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import pytest
import requests

from clients.alchemy import (
    AlchemyAPIError,
    AlchemyClient,
    AlchemyService,
    normalize_transfer,
    parse_block_timestamp,
)
from db.transfers_cache import TransfersCacheRepository, init_transfers_cache_db
from domain.ledger import Category, Direction

WALLET = "0x11111111111111111111111111111111111111ab"
OTHER = "0x9999999999999999999999999999999999999999"


class _StubResponse:
    def __init__(self, payload: Any, status_code: int = 200) -> None:
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=cast(requests.Response, self))

    def json(self) -> Any:
        return self._payload


class _StubSession:
    def __init__(self, responses: list[_StubResponse]) -> None:
        self._responses = responses
        self.requests: list[dict[str, Any]] = []
        self.mounted: list[str] = []

    def mount(self, prefix: str, adapter: Any) -> None:
        self.mounted.append(prefix)

    def request(self, method: str, url: str, json: Any = None, timeout: float | None = None) -> _StubResponse:
        self.requests.append({"method": method, "url": url, "json": json, "timeout": timeout})
        return self._responses.pop(0)


def _transfer(**overrides: Any) -> dict[str, Any]:
    transfer: dict[str, Any] = {
        "uniqueId": "0xabc:log:1",
        "hash": "0xabc",
        "from": OTHER,
        "to": WALLET,
        "value": 1.5,
        "asset": "ETH",
        "category": "external",
        "rawContract": {"value": "0x14d1120d7b160000", "address": None, "decimal": "0x12"},
        "metadata": {"blockTimestamp": "2024-01-01T00:00:00.000Z"},
    }
    transfer.update(overrides)
    return transfer


def _client(responses: list[_StubResponse]) -> tuple[AlchemyClient, _StubSession]:
    session = _StubSession(responses)
    client = AlchemyClient(api_key="key", base_url="https://alchemy.test/v2/", session=cast(requests.Session, session))
    return client, session


def test_fetch_transfers_follows_page_key() -> None:
    client, session = _client(
        [
            _StubResponse({"jsonrpc": "2.0", "id": 1, "result": {"transfers": [_transfer()], "pageKey": "next"}}),
            _StubResponse({"jsonrpc": "2.0", "id": 1, "result": {"transfers": [_transfer(uniqueId="2")]}}),
        ]
    )

    transfers = client.fetch_transfers(to_address=WALLET)

    assert len(transfers) == 2
    assert session.mounted == ["https://", "http://"]
    first, second = session.requests
    assert first["method"] == "POST"
    assert first["url"] == "https://alchemy.test/v2/key"
    params = first["json"]["params"][0]
    assert first["json"]["method"] == "alchemy_getAssetTransfers"
    assert params["toAddress"] == WALLET
    assert "fromAddress" not in params
    assert params["category"] == ["external", "erc20", "erc721", "erc1155"]
    assert params["withMetadata"] is True
    assert "pageKey" not in params
    assert second["json"]["params"][0]["pageKey"] == "next"


def test_rpc_error_raises_api_error() -> None:
    client, _ = _client([_StubResponse({"jsonrpc": "2.0", "id": 1, "error": {"message": "invalid key"}})])

    with pytest.raises(AlchemyAPIError, match="invalid key"):
        client.fetch_transfers(from_address=WALLET)


def test_http_error_carries_status_and_payload() -> None:
    client, _ = _client([_StubResponse({"error": "forbidden"}, status_code=403)])

    with pytest.raises(AlchemyAPIError) as exc_info:
        client.fetch_transfers(from_address=WALLET)
    assert exc_info.value.status_code == 403
    assert exc_info.value.payload == {"error": "forbidden"}


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(ValueError):
        AlchemyClient(api_key="")


def test_normalize_native_transfer() -> None:
    row = normalize_transfer(_transfer(), WALLET.upper().replace("0X", "0x"), Direction.IN, chain_id=11155111)

    assert row is not None
    assert row.owner_wallet == WALLET
    assert row.asset == "ETH"
    assert row.amount == "1.5"
    assert row.decimals == 18
    assert row.counterparty == OTHER
    assert row.block_time == 1704067200
    assert row.category == Category.UNKNOWN
    assert row.confidence == 0.0


def test_normalize_erc20_uses_raw_value_and_decimals() -> None:
    transfer = _transfer(
        category="erc20",
        asset="USDC",
        value=12.5,
        rawContract={"value": "0xbebc20", "address": "0xusdc", "decimal": "0x6"},
    )

    row = normalize_transfer(transfer, WALLET, Direction.OUT, chain_id=1)

    assert row is not None
    assert row.asset == "USDC"
    assert row.amount == "12.5"
    assert row.decimals == 6
    assert row.counterparty == WALLET


def test_normalize_falls_back_to_float_value() -> None:
    transfer = _transfer(category="erc20", asset="DAI", value=0.1, rawContract={"decimal": "0x12"})

    row = normalize_transfer(transfer, WALLET, Direction.IN, chain_id=1)

    assert row is not None
    assert row.amount == "0.1"


@pytest.mark.parametrize(
    "overrides",
    [
        {"hash": None},
        {"value": 0, "rawContract": {"value": "0x0", "decimal": "0x12"}},
        {"value": None, "rawContract": {}},
        {"value": "not-a-number", "rawContract": {}},
    ],
)
def test_normalize_drops_empty_or_malformed_transfers(overrides: dict[str, Any]) -> None:
    assert normalize_transfer(_transfer(**overrides), WALLET, Direction.IN, chain_id=1) is None


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2024-01-01T00:00:00.000Z", 1704067200),
        ("2024-01-01T00:00:00", 1704067200),
        ("yesterday", 0),
        (None, 0),
    ],
)
def test_parse_block_timestamp(value: Any, expected: int) -> None:
    assert parse_block_timestamp(value) == expected


class _StubAlchemyClient:
    def __init__(self, incoming: list[dict[str, Any]], outgoing: list[dict[str, Any]]) -> None:
        self.incoming = incoming
        self.outgoing = outgoing
        self.calls: list[tuple[str | None, str | None]] = []

    def fetch_transfers(self, *, from_address: str | None = None, to_address: str | None = None) -> list[dict[str, Any]]:
        self.calls.append((from_address, to_address))
        return self.outgoing if from_address else self.incoming


def test_service_syncs_once_then_serves_cache(tmp_path: Path) -> None:
    session = init_transfers_cache_db(db_file=tmp_path / "cache.db")
    incoming = [_transfer(metadata={"blockTimestamp": "2024-01-02T00:00:00Z"})]
    outgoing = [
        _transfer(
            uniqueId="0xdef:external:0",
            hash="0xdef",
            **{"from": WALLET, "to": OTHER},
            rawContract={"value": "0x2386f26fc10000", "decimal": "0x12"},
            metadata={"blockTimestamp": "2024-01-01T00:00:00Z"},
        )
    ]
    client = _StubAlchemyClient(incoming, outgoing)
    service = AlchemyService(
        cast(AlchemyClient, client), TransfersCacheRepository(session), chain_id=11155111
    )

    ledger = service.get_ledger(WALLET.upper().replace("0X", "0x"))
    again = service.get_ledger(WALLET)

    assert client.calls == [(None, WALLET), (WALLET, None)]
    assert [row.direction for row in ledger] == [Direction.OUT, Direction.IN]
    assert ledger[0].amount == "0.01"
    assert again == ledger

    service.get_ledger(WALLET, refresh=True)
    assert len(client.calls) == 4
    assert len(service.get_ledger(WALLET)) == 2
    session.close()


@pytest.mark.parametrize("decimal", ["-0x1", "0x100"])
def test_normalize_drops_out_of_range_decimals(decimal: str) -> None:
    transfer = _transfer(category="erc20", asset="TKN", rawContract={"value": "0x10", "decimal": decimal})

    assert normalize_transfer(transfer, WALLET, Direction.IN, chain_id=1) is None


def test_normalize_defaults_missing_decimals_to_18() -> None:
    transfer = _transfer(category="erc20", asset="TKN", rawContract={"value": "0xde0b6b3a7640000"})

    row = normalize_transfer(transfer, WALLET, Direction.IN, chain_id=1)

    assert row is not None
    assert row.decimals == 18
    assert row.amount == "1"
