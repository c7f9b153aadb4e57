from typing import Generator

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from db.transfers_cache import TransfersCacheBase
from domain.ledger import Category, Direction, PriceEntry, TaxInput, UserType
from tests.helpers.ledger_factory import OWNER, make_row

engine: Engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
session_factory = sessionmaker(engine)


@pytest.fixture(scope="function")
def test_session() -> Generator[Session, None, None]:
    with session_factory() as session:
        yield session


@pytest.fixture(scope="function", autouse=True)
def reset_db() -> Generator[None, None, None]:
    TransfersCacheBase.metadata.create_all(engine)
    yield
    TransfersCacheBase.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def sample_tax_input() -> TaxInput:
    """1.5 ETH of income and 0.5 ETH of gains at 2000 USD and 83 INR/USD."""
    return TaxInput(
        user_type=UserType.INDIVIDUAL,
        wallets=[OWNER],
        ledger=[
            make_row(amount="1.5", direction=Direction.IN, category=Category.INCOME, confidence=0.6),
            make_row(amount="0.5", direction=Direction.IN, category=Category.GAINS, confidence=0.95),
        ],
        prices=[PriceEntry(asset="ETH", usd_price="2000.00")],
        usd_inr_rate="83.00",
    )
