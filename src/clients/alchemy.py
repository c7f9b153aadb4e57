from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from sqlalchemy.orm import Session
from urllib3.util import Retry

from config import AppSettings
from db.transfers_cache import TransfersCacheRepository
from domain.ledger import Category, Direction, LedgerRow
from utils.formatting import format_decimal, format_units

logger = logging.getLogger(__name__)

TRANSFER_CATEGORIES = ("external", "erc20", "erc721", "erc1155")
MAX_COUNT = "0x3e8"  # 1000, the Alchemy maximum per page
DEFAULT_DECIMALS = 18
MAX_DECIMALS = 255
UNKNOWN_ASSET = "UNKNOWN"


class AlchemyAPIError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


class AlchemyClient:
    # https://docs.alchemy.com/reference/alchemy-getassettransfers
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://eth-sepolia.g.alchemy.com/v2",
        timeout: float = 30.0,
        session: requests.Session | None = None,
        retry_attempts: int = 5,
        retry_backoff_seconds: float = 1,
    ) -> None:
        if not api_key:
            msg = "api_key must be provided"
            raise ValueError(msg)

        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

        retries = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist=[429],
            allowed_methods=frozenset({"POST"}),
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retries)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def fetch_transfers(
        self,
        *,
        from_address: str | None = None,
        to_address: str | None = None,
    ) -> list[dict[str, Any]]:
        page_key: str | None = None
        aggregated: list[dict[str, Any]] = []

        while True:
            params: dict[str, Any] = {
                "fromBlock": "0x0",
                "toBlock": "latest",
                "category": list(TRANSFER_CATEGORIES),
                "withMetadata": True,
                "maxCount": MAX_COUNT,
            }
            if from_address:
                params["fromAddress"] = from_address
            if to_address:
                params["toAddress"] = to_address
            if page_key:
                params["pageKey"] = page_key

            result = self._rpc("alchemy_getAssetTransfers", [params])
            batch = result.get("transfers") or []
            aggregated.extend(batch)
            page_key = result.get("pageKey")

            logger.info(
                "Fetched transfers batch size=%d total=%d from=%s to=%s",
                len(batch),
                len(aggregated),
                from_address,
                to_address,
            )
            if not page_key:
                return aggregated

    def _rpc(self, method: str, params: list[Any]) -> dict[str, Any]:
        url = f"{self.base_url}/{self.api_key}"
        body = {"id": 1, "jsonrpc": "2.0", "method": method, "params": params}
        try:
            response = self._session.request("POST", url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            payload: Any | None = None
            if resp is not None:
                try:
                    payload = resp.json()
                except ValueError:
                    payload = resp.text
            raise AlchemyAPIError(
                "Alchemy request failed", status_code=getattr(resp, "status_code", None), payload=payload
            ) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise AlchemyAPIError("Alchemy request failed", status_code=status_code) from exc

        try:
            payload_raw = response.json()
        except ValueError as exc:
            raise AlchemyAPIError("Alchemy returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload_raw, dict):
            raise AlchemyAPIError("Alchemy returned unexpected payload type", payload=payload_raw)

        error = payload_raw.get("error")
        if error:
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise AlchemyAPIError(f"Alchemy API error: {message}", payload=payload_raw)

        result = payload_raw.get("result")
        if not isinstance(result, dict):
            return {}
        return result


def parse_block_timestamp(value: Any) -> int:
    if not isinstance(value, str):
        return 0
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return 0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return max(int(parsed.timestamp()), 0)


def _raw_decimals(transfer: dict[str, Any]) -> int | None:
    raw = transfer.get("rawContract") or {}
    try:
        return int(str(raw["decimal"]), 16)
    except (KeyError, TypeError, ValueError):
        return None


def _transfer_amount(transfer: dict[str, Any], decimals: int) -> str | None:
    raw = transfer.get("rawContract") or {}
    raw_value = raw.get("value")
    if isinstance(raw_value, str) and raw_value.startswith("0x"):
        try:
            units = int(raw_value, 16)
        except ValueError:
            units = None
        if units is not None:
            return format_units(units, decimals) if units > 0 else None

    value = transfer.get("value")
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(repr(value)) if isinstance(value, float) else Decimal(str(value))
    except InvalidOperation:
        return None
    if not amount.is_finite() or amount <= 0:
        return None
    return format_decimal(amount)


def normalize_transfer(
    transfer: dict[str, Any],
    owner_wallet: str,
    direction: Direction,
    *,
    chain_id: int,
    native_asset: str = "ETH",
) -> LedgerRow | None:
    """Turn one Alchemy transfer into a ledger row; zero-value or malformed transfers yield ``None``."""
    tx_hash = transfer.get("hash")
    if not tx_hash:
        return None

    if transfer.get("category") == "external":
        asset, decimals = native_asset, DEFAULT_DECIMALS
    else:
        asset = transfer.get("asset") or UNKNOWN_ASSET
        raw_decimals = _raw_decimals(transfer)
        if raw_decimals is None:
            decimals = DEFAULT_DECIMALS
        elif 0 <= raw_decimals <= MAX_DECIMALS:
            decimals = raw_decimals
        else:
            return None

    amount = _transfer_amount(transfer, decimals)
    if amount is None:
        return None

    counterparty = transfer.get("from") if direction == Direction.IN else transfer.get("to")
    metadata = transfer.get("metadata") or {}

    return LedgerRow(
        chain_id=chain_id,
        owner_wallet=owner_wallet,
        tx_hash=str(tx_hash),
        block_time=parse_block_timestamp(metadata.get("blockTimestamp")),
        asset=str(asset),
        amount=amount,
        decimals=decimals,
        direction=direction,
        counterparty=counterparty,
        category=Category.UNKNOWN,
        confidence=0.0,
    )


class AlchemyService:
    def __init__(
        self,
        client: AlchemyClient,
        cache_repo: TransfersCacheRepository,
        *,
        chain_id: int,
        native_asset: str = "ETH",
    ) -> None:
        self.client = client
        self.cache = cache_repo
        self.chain_id = chain_id
        self.native_asset = native_asset

    def get_ledger(self, wallet: str, *, refresh: bool = False) -> list[LedgerRow]:
        wallet = wallet.strip().lower()
        if refresh or self.cache.last_synced_at(wallet) is None:
            self._sync_wallet(wallet)
        else:
            logger.info("Wallet %s already synced; using cached transfers", wallet)

        ledger: list[LedgerRow] = []
        for direction, payload in self.cache.load_transfers(wallet):
            row = normalize_transfer(
                payload, wallet, direction, chain_id=self.chain_id, native_asset=self.native_asset
            )
            if row is not None:
                ledger.append(row)

        ledger.sort(key=lambda row: row.block_time)
        return ledger

    def _sync_wallet(self, wallet: str) -> None:
        incoming = self.client.fetch_transfers(to_address=wallet)
        outgoing = self.client.fetch_transfers(from_address=wallet)
        self.cache.upsert_transfers(wallet, Direction.IN, incoming)
        self.cache.upsert_transfers(wallet, Direction.OUT, outgoing)
        self.cache.mark_synced(wallet, datetime.now(timezone.utc))


def build_alchemy_service(settings: AppSettings, session: Session) -> AlchemyService:
    if settings.alchemy_api_key == "demo":
        logger.warning("ALCHEMY_API_KEY not set, using demo key (rate limited)")
    client = AlchemyClient(api_key=settings.alchemy_api_key, base_url=settings.alchemy_base_url)
    return AlchemyService(
        client,
        TransfersCacheRepository(session),
        chain_id=settings.chain_id,
        native_asset=settings.native_asset,
    )


__all__ = [
    "AlchemyAPIError",
    "AlchemyClient",
    "AlchemyService",
    "build_alchemy_service",
    "normalize_transfer",
    "parse_block_timestamp",
]
