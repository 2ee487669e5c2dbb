"""
Warehouse Service — Store accessor

WarehouseStore is the only component that reads or writes the shelf_stock
and orders read models. It is bound to one AsyncSession, so everything done
through it between two commit() calls is a single unit of work.

The store performs no arithmetic on stock: callers read the current count,
compute the new one and write it back as an absolute value. Passing the
previously read count as `expected` turns the write into a compare-and-set.
"""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from . import event_store
from .errors import ConcurrencyConflict, ServerError, ValidationError

logger = logging.getLogger(__name__)


@contextmanager
def _store_errors(action: str):
    try:
        yield
    except IntegrityError as exc:
        raise ConcurrencyConflict(f"Conflicting update while {action}") from exc
    except SQLAlchemyError as exc:
        logger.exception("Store failure while %s", action)
        raise ServerError("Server error") from exc


class WarehouseStore:
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # ── Shelf stock ──────────────────────────────

    async def get_copies_on_shelf(self, book_id: str, shelf_id: str) -> int:
        with _store_errors("reading shelf stock"):
            result = await self.session.execute(
                text("""
                    SELECT copies FROM shelf_stock
                    WHERE book_id = :book AND shelf_id = :shelf
                """),
                {"book": book_id, "shelf": shelf_id},
            )
            row = result.fetchone()
        return row.copies if row else 0

    async def get_copies(self, book_id: str) -> dict[str, int]:
        """Every shelf that has held the book, including emptied ones."""
        with _store_errors("reading shelf stock"):
            result = await self.session.execute(
                text("SELECT shelf_id, copies FROM shelf_stock WHERE book_id = :book"),
                {"book": book_id},
            )
            rows = result.fetchall()
        return {row.shelf_id: row.copies for row in rows}

    async def place_book_on_shelf(
        self,
        book_id: str,
        shelf_id: str,
        copies: int,
        expected: int | None = None,
    ) -> None:
        """
        Set the absolute number of copies of a book on a shelf.

        With `expected`, the write only happens if the stored count (0 for a
        missing record) still equals it; otherwise ConcurrencyConflict.
        """
        if copies < 0:
            raise ValidationError(
                f"Can't have less than 0 copies of {book_id} on shelf {shelf_id}"
            )
        params = {
            "book": book_id,
            "shelf": shelf_id,
            "copies": copies,
            "now": datetime.now(timezone.utc).isoformat(),
        }

        with _store_errors("writing shelf stock"):
            if expected is None:
                await self.session.execute(
                    text("""
                        INSERT INTO shelf_stock (book_id, shelf_id, copies, updated_at)
                        VALUES (:book, :shelf, :copies, :now)
                        ON CONFLICT (book_id, shelf_id) DO UPDATE SET
                            copies = excluded.copies,
                            updated_at = excluded.updated_at
                    """),
                    params,
                )
                return

            result = await self.session.execute(
                text("""
                    UPDATE shelf_stock
                    SET copies = :copies, updated_at = :now
                    WHERE book_id = :book AND shelf_id = :shelf AND copies = :expected
                """),
                {**params, "expected": expected},
            )
            if result.rowcount == 1:
                return
            if expected == 0:
                # No record yet counts as zero copies
                result = await self.session.execute(
                    text("""
                        INSERT INTO shelf_stock (book_id, shelf_id, copies, updated_at)
                        VALUES (:book, :shelf, :copies, :now)
                        ON CONFLICT (book_id, shelf_id) DO NOTHING
                    """),
                    params,
                )
                if result.rowcount == 1:
                    return

        raise ConcurrencyConflict(
            f"Stock of {book_id} on shelf {shelf_id} changed concurrently"
        )

    # ── Orders ───────────────────────────────────

    async def place_order(self, books: dict[str, int]) -> str:
        order_id = str(uuid4())
        with _store_errors("placing order"):
            await self.session.execute(
                text("""
                    INSERT INTO orders (id, books, created_at)
                    VALUES (:id, :books, :now)
                """),
                {
                    "id": order_id,
                    "books": json.dumps(books),
                    "now": datetime.now(timezone.utc).isoformat(),
                },
            )
        return order_id

    async def get_order(self, order_id: str) -> dict[str, int] | None:
        with _store_errors("reading order"):
            result = await self.session.execute(
                text("SELECT books FROM orders WHERE id = :id"),
                {"id": order_id},
            )
            row = result.fetchone()
        if not row:
            return None
        return json.loads(row.books)

    async def list_orders(self) -> list[dict]:
        with _store_errors("listing orders"):
            result = await self.session.execute(text("SELECT id, books FROM orders"))
            rows = result.fetchall()
        return [{"orderId": row.id, "books": json.loads(row.books)} for row in rows]

    async def remove_order(self, order_id: str) -> None:
        with _store_errors("removing order"):
            result = await self.session.execute(
                text("DELETE FROM orders WHERE id = :id"),
                {"id": order_id},
            )
        if result.rowcount != 1:
            raise ConcurrencyConflict(f"Order {order_id} was removed concurrently")

    # ── Events ───────────────────────────────────

    async def append_event(
        self,
        aggregate_id: str,
        aggregate_type: str,
        event: BaseModel,
        expected_version: int,
    ) -> int:
        with _store_errors(f"appending {type(event).__name__}"):
            return await event_store.append_event(
                self.session, aggregate_id, aggregate_type, event, expected_version
            )

    async def current_version(self, aggregate_id: str) -> int:
        with _store_errors("reading event version"):
            return await event_store.current_version(self.session, aggregate_id)

    async def load_events(self, aggregate_id: str) -> list[dict]:
        with _store_errors("loading events"):
            return await event_store.load_events(self.session, aggregate_id)

    async def load_all_events(self) -> list[dict]:
        with _store_errors("loading events"):
            return await event_store.load_all_events(self.session)

    # ── Unit of work ─────────────────────────────

    async def commit(self) -> None:
        with _store_errors("committing"):
            await self.session.commit()

    async def rollback(self) -> None:
        with _store_errors("rolling back"):
            await self.session.rollback()
