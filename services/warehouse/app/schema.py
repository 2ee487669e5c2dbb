"""
Warehouse Service — Table definitions

Read models (shelf_stock, orders) and the event store live in the same
database so that a fulfilment commits all of them in one transaction.
Statements stay within the SQL shared by PostgreSQL and SQLite.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

TABLES = [
    """
    CREATE TABLE IF NOT EXISTS shelf_stock (
        book_id     VARCHAR(255) NOT NULL,
        shelf_id    VARCHAR(255) NOT NULL,
        copies      INTEGER NOT NULL CHECK (copies >= 0),
        updated_at  VARCHAR(64) NOT NULL,
        PRIMARY KEY (book_id, shelf_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS orders (
        id          VARCHAR(64) PRIMARY KEY,
        books       TEXT NOT NULL,
        created_at  VARCHAR(64) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_store (
        aggregate_id    VARCHAR(512) NOT NULL,
        aggregate_type  VARCHAR(64) NOT NULL,
        event_type      VARCHAR(64) NOT NULL,
        event_data      TEXT NOT NULL,
        version         INTEGER NOT NULL,
        created_at      VARCHAR(64) NOT NULL,
        PRIMARY KEY (aggregate_id, version)
    )
    """,
]


async def create_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        for ddl in TABLES:
            await conn.execute(text(ddl))


async def drop_all(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        for table in ("event_store", "orders", "shelf_stock"):
            await conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
