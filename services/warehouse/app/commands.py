"""
Warehouse Service — Command handlers (CQRS write side)

Commands change shelf stock and orders. Each one:
  1. reads what it needs through the WarehouseStore
  2. validates, raising before any write
  3. writes read models and events in one transaction and commits
  4. publishes the events on Redis for other services

Fulfilment is all-or-nothing: an order is satisfied exactly, from shelves
that hold enough copies, or nothing changes.
"""

import json
import logging
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone

import redis.asyncio as aioredis
from pydantic import BaseModel
from redis.exceptions import RedisError

from .aggregate import OrderAggregate
from .errors import (
    ConcurrencyConflict,
    InsufficientStock,
    OrderNotFound,
    QuantityMismatch,
    UnknownBookInOrder,
    ValidationError,
    WarehouseError,
)
from .events import (
    BooksPlacedOnShelf,
    BooksRemovedFromShelf,
    FulfilmentLine,
    OrderFulfilled,
    OrderPlaced,
)
from .event_store import ORDER, SHELF_STOCK, shelf_stock_id
from .store import WarehouseStore

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "warehouse_events"


async def place_books_on_shelf(
    store: WarehouseStore,
    redis: aioredis.Redis | None,
    book_id: str,
    shelf_id: str,
    number_of_books: int,
) -> int:
    """
    Put more copies of a book on a shelf and return the new count.

    Placement is additive: the current count is read and current + number
    is written back, guarded against a concurrent change in between.
    """
    if number_of_books < 0:
        raise ValidationError("Can't place less than 0 books on a shelf")

    current = await store.get_copies_on_shelf(book_id, shelf_id)
    copies = current + number_of_books
    event = BooksPlacedOnShelf(
        book_id=book_id,
        shelf_id=shelf_id,
        number_of_books=number_of_books,
        copies_on_shelf=copies,
        timestamp=datetime.now(timezone.utc),
    )
    aggregate_id = shelf_stock_id(book_id, shelf_id)

    try:
        await store.place_book_on_shelf(book_id, shelf_id, copies, expected=current)
        version = await store.current_version(aggregate_id)
        await store.append_event(aggregate_id, SHELF_STOCK, event, version)
        await store.commit()
    except WarehouseError:
        await store.rollback()
        raise

    logger.info("Placed %d x %s on shelf %s (now %d)", number_of_books, book_id, shelf_id, copies)
    await _publish(redis, event)
    return copies


async def place_order(
    store: WarehouseStore,
    redis: aioredis.Redis | None,
    book_ids: Iterable[str],
) -> str:
    """
    Place an order and return its id.

    Each repeat of a book id asks for one more copy. Stock is neither checked
    nor reserved here; fulfilment is where availability is enforced.
    """
    books: dict[str, int] = {}
    for book_id in book_ids:
        books[book_id] = books.get(book_id, 0) + 1

    try:
        order_id = await store.place_order(books)
        event = OrderPlaced(order_id=order_id, books=books, timestamp=datetime.now(timezone.utc))
        await store.append_event(order_id, ORDER, event, 0)
        await store.commit()
    except WarehouseError:
        await store.rollback()
        raise

    logger.info("Placed order %s for %d book(s)", order_id, sum(books.values()))
    await _publish(redis, event)
    return order_id


async def fulfil_order(
    store: WarehouseStore,
    redis: aioredis.Redis | None,
    order_id: str,
    lines: list[FulfilmentLine],
) -> None:
    """
    Fulfil an order by taking books off the given shelves.

    Validation, in order, with no write before all checks pass:
    1. the order exists                             (OrderNotFound)
    2. no line takes a negative number of books     (ValidationError)
    3. every line's book is part of the order       (UnknownBookInOrder)
    4. per book, line quantities sum to the order   (QuantityMismatch)
    5. per (book, shelf), the shelf holds enough    (InsufficientStock)

    Then the order is removed and every shelf decremented in one transaction.
    """
    try:
        order = await store.get_order(order_id)
        if order is None:
            raise OrderNotFound(order_id)

        for line in lines:
            if line.number_of_books < 0:
                raise ValidationError("Can't take less than 0 books from a shelf")

        fulfilled: dict[str, int] = defaultdict(int)
        for line in lines:
            if line.book not in order:
                raise UnknownBookInOrder(order_id, line.book)
            fulfilled[line.book] += line.number_of_books

        for book_id, required in order.items():
            if fulfilled[book_id] != required:
                raise QuantityMismatch(book_id, required, fulfilled[book_id])

        # The same (book, shelf) may appear on several lines
        taken: dict[tuple[str, str], int] = defaultdict(int)
        for line in lines:
            taken[(line.book, line.shelf)] += line.number_of_books

        on_shelf: dict[tuple[str, str], int] = {}
        for (book_id, shelf_id), number in taken.items():
            available = await store.get_copies_on_shelf(book_id, shelf_id)
            if available < number:
                raise InsufficientStock(book_id, shelf_id, number, available)
            on_shelf[(book_id, shelf_id)] = available
    except WarehouseError as exc:
        logger.warning("Rejected fulfilment of order %s: %s", order_id, exc.detail)
        await store.rollback()
        raise

    now = datetime.now(timezone.utc)
    fulfilled_event = OrderFulfilled(order_id=order_id, lines=lines, timestamp=now)
    removed_events: list[BooksRemovedFromShelf] = []

    try:
        agg = OrderAggregate.from_events(await store.load_events(order_id))
        if not agg.is_pending:
            raise ConcurrencyConflict(f"Order {order_id} is no longer pending")
        await store.append_event(order_id, ORDER, fulfilled_event, agg.version)
        await store.remove_order(order_id)

        for (book_id, shelf_id), number in taken.items():
            previous = on_shelf[(book_id, shelf_id)]
            copies = previous - number
            await store.place_book_on_shelf(book_id, shelf_id, copies, expected=previous)

            removed = BooksRemovedFromShelf(
                book_id=book_id,
                shelf_id=shelf_id,
                order_id=order_id,
                number_of_books=number,
                copies_on_shelf=copies,
                timestamp=now,
            )
            aggregate_id = shelf_stock_id(book_id, shelf_id)
            await store.append_event(
                aggregate_id, SHELF_STOCK, removed, await store.current_version(aggregate_id)
            )
            removed_events.append(removed)

        await store.commit()
    except WarehouseError:
        logger.warning("Fulfilment of order %s rolled back", order_id)
        await store.rollback()
        raise

    logger.info("Fulfilled order %s from %d shelf slot(s)", order_id, len(taken))
    for event in [fulfilled_event, *removed_events]:
        await _publish(redis, event)


async def _publish(redis: aioredis.Redis | None, event: BaseModel) -> None:
    """Publish an already committed event. A failure here does not undo the command."""
    if redis is None:
        return
    event_type = type(event).__name__
    message = {"event_type": event_type, "data": event.model_dump(mode="json", by_alias=True)}
    try:
        await redis.publish(EVENTS_CHANNEL, json.dumps(message))
    except RedisError:
        logger.exception("Failed to publish %s", event_type)
