from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from sqlalchemy import DateTime, Index, Integer, String, Text, UniqueConstraint, create_engine, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from domain.ledger import Direction


class TransfersCacheBase(DeclarativeBase):
    pass


class AlchemyTransferOrm(TransfersCacheBase):
    __tablename__ = "alchemy_transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet: Mapped[str] = mapped_column(String, nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    unique_id: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (
        UniqueConstraint("wallet", "direction", "unique_id", name="uq_alchemy_wallet_direction_uid"),
        Index("ix_alchemy_wallet", "wallet"),
    )


class AlchemySyncStateOrm(TransfersCacheBase):
    __tablename__ = "alchemy_sync_state"

    wallet: Mapped[str] = mapped_column(String, primary_key=True)
    last_synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def transfer_unique_id(transfer: dict[str, Any]) -> str:
    unique_id = transfer.get("uniqueId")
    if unique_id:
        return str(unique_id)
    return f"{transfer.get('hash')}:{transfer.get('from')}:{transfer.get('to')}:{transfer.get('value')}"


class TransfersCacheRepository:
    def __init__(self, session: Session):
        self.session = session

    def upsert_transfers(self, wallet: str, direction: Direction, transfers: list[dict[str, Any]]) -> None:
        if not transfers:
            return

        records = [
            {
                "wallet": wallet.lower(),
                "direction": direction.value,
                "unique_id": transfer_unique_id(transfer),
                "payload": json.dumps(transfer),
            }
            for transfer in transfers
        ]
        stmt = insert(AlchemyTransferOrm).values(records)
        stmt = stmt.on_conflict_do_nothing(index_elements=["wallet", "direction", "unique_id"])
        self.session.execute(stmt)
        self.session.commit()

    def load_transfers(self, wallet: str) -> list[tuple[Direction, dict[str, Any]]]:
        stmt = (
            select(AlchemyTransferOrm)
            .where(AlchemyTransferOrm.wallet == wallet.lower())
            .order_by(AlchemyTransferOrm.id)
        )
        rows = self.session.execute(stmt).scalars().all()
        return [(Direction(row.direction), json.loads(row.payload)) for row in rows]

    def last_synced_at(self, wallet: str) -> datetime | None:
        stmt = (
            select(AlchemySyncStateOrm.last_synced_at)
            .where(AlchemySyncStateOrm.wallet == wallet.lower())
            .limit(1)
        )
        synced = self.session.scalar(stmt)
        if synced is not None and synced.tzinfo is None:
            synced = synced.replace(tzinfo=timezone.utc)
        return synced

    def mark_synced(self, wallet: str, when: datetime) -> None:
        stmt = insert(AlchemySyncStateOrm).values({"wallet": wallet.lower(), "last_synced_at": when})
        stmt = stmt.on_conflict_do_update(
            index_elements=["wallet"], set_={"last_synced_at": stmt.excluded.last_synced_at}
        )
        self.session.execute(stmt)
        self.session.commit()


def transfers_cache_sessionmaker(
    echo: bool = False, *, db_file: str | Path, reset: bool = False
) -> sessionmaker[Session]:
    path = Path(db_file)
    if reset and path.exists():
        path.unlink()
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_engine(f"sqlite:///{path}", echo=echo, connect_args={"check_same_thread": False})
    TransfersCacheBase.metadata.create_all(engine)
    return sessionmaker(engine)


def init_transfers_cache_db(echo: bool = False, *, db_file: str | Path, reset: bool = False) -> Session:
    return transfers_cache_sessionmaker(echo, db_file=db_file, reset=reset)()
