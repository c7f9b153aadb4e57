from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
TRANSFERS_CACHE_DB = ARTIFACTS_DIR / "transfers_cache.db"

SEPOLIA_CHAIN_ID = 11155111
APP_VERSION = "0.1.0"


class AppSettings(BaseSettings):
    alchemy_api_key: str = "demo"
    alchemy_base_url: str = "https://eth-sepolia.g.alchemy.com/v2"
    ens_subgraph_url: str = "https://api.studio.thegraph.com/query/49574/enssepolia/version/latest"

    chain_id: int = SEPOLIA_CHAIN_ID
    native_asset: str = "ETH"

    # Demo contracts; unset means the corresponding rule never fires.
    profit_machine_address: str | None = None
    loss_machine_address: str | None = None
    yield_farm_address: str | None = None

    prover_mode: str = "mock"
    prover_workers: int = 2
    pending_job_timeout_seconds: float | None = 900.0

    transfers_cache_db: Path = TRANSFERS_CACHE_DB

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
