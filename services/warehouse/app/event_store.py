"""
Warehouse Service — Event store

Two kinds of aggregate write to the log:
    Order       one per order, keyed by the order id
    ShelfStock  one per (book, shelf) slot, keyed by shelf_stock_id()

The (aggregate_id, version) primary key is the optimistic lock: two writers
that loaded the same version cannot both append the next one, so a racing
second fulfilment of an order fails instead of double-decrementing stock.
"""

import json
from datetime import datetime, timezone

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

ORDER = "Order"
SHELF_STOCK = "ShelfStock"


def shelf_stock_id(book_id: str, shelf_id: str) -> str:
    return f"{book_id}@{shelf_id}"


async def append_event(
    session: AsyncSession,
    aggregate_id: str,
    aggregate_type: str,
    event: BaseModel,
    expected_version: int,
) -> int:
    """
    Record `event` at expected_version + 1 and return that version.

    The event type is the model's class name; field aliases are kept so the
    stored payload matches what the API accepts (e.g. numberOfBooks).
    """
    version = expected_version + 1
    await session.execute(
        text("""
            INSERT INTO event_store
                (aggregate_id, aggregate_type, event_type, event_data, version, created_at)
            VALUES
                (:aggregate_id, :aggregate_type, :event_type, :event_data, :version, :created_at)
        """),
        {
            "aggregate_id": aggregate_id,
            "aggregate_type": aggregate_type,
            "event_type": type(event).__name__,
            "event_data": event.model_dump_json(by_alias=True),
            "version": version,
            "created_at": datetime.now(timezone.utc).isoformat(),
        },
    )
    return version


async def current_version(session: AsyncSession, aggregate_id: str) -> int:
    result = await session.execute(
        text("SELECT MAX(version) FROM event_store WHERE aggregate_id = :aggregate_id"),
        {"aggregate_id": aggregate_id},
    )
    return result.scalar() or 0


async def load_events(session: AsyncSession, aggregate_id: str) -> list[dict]:
    """One aggregate's history, oldest first."""
    result = await session.execute(
        text(f"SELECT {_COLUMNS} FROM event_store WHERE aggregate_id = :aggregate_id ORDER BY version"),
        {"aggregate_id": aggregate_id},
    )
    return [_as_dict(row) for row in result.fetchall()]


async def load_all_events(session: AsyncSession) -> list[dict]:
    result = await session.execute(
        text(f"SELECT {_COLUMNS} FROM event_store ORDER BY created_at, version"),
    )
    return [_as_dict(row) for row in result.fetchall()]


_COLUMNS = "aggregate_id, aggregate_type, event_type, event_data, version, created_at"


def _as_dict(row) -> dict:
    return {
        "aggregate_id": row.aggregate_id,
        "aggregate_type": row.aggregate_type,
        "event_type": row.event_type,
        "event_data": json.loads(row.event_data),
        "version": row.version,
        "created_at": row.created_at,
    }
