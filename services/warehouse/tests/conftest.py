import json

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app import schema
from app.store import WarehouseStore


class RecordingRedis:
    """Stands in for the Redis client: keeps every published message."""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, json.loads(message)))
        return 1

    @property
    def event_types(self) -> list[str]:
        return [message["event_type"] for _, message in self.published]


@pytest.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'warehouse.db'}")
    await schema.create_all(engine)
    yield engine
    await schema.drop_all(engine)
    await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def store(session_factory):
    async with session_factory() as session:
        yield WarehouseStore(session)


@pytest.fixture()
def redis():
    return RecordingRedis()


@pytest.fixture()
def read_state(session_factory):
    """Read all shelf stock and orders through a separate session."""

    async def _read():
        async with session_factory() as session:
            stock_rows = (
                await session.execute(text("SELECT book_id, shelf_id, copies FROM shelf_stock"))
            ).fetchall()
            order_rows = (await session.execute(text("SELECT id, books FROM orders"))).fetchall()
        stock = {(row.book_id, row.shelf_id): row.copies for row in stock_rows}
        orders = {row.id: json.loads(row.books) for row in order_rows}
        return stock, orders

    return _read
