"""
Warehouse Service — Query handlers (CQRS read side)
"""

from .store import WarehouseStore


async def get_book_info(store: WarehouseStore, book_id: str) -> dict[str, int]:
    """Shelves currently holding the book; emptied shelves are left out."""
    copies = await store.get_copies(book_id)
    return {shelf_id: number for shelf_id, number in copies.items() if number > 0}


async def list_orders(store: WarehouseStore) -> list[dict]:
    return await store.list_orders()


async def get_order(store: WarehouseStore, order_id: str) -> dict | None:
    books = await store.get_order(order_id)
    if books is None:
        return None
    return {"orderId": order_id, "books": books}
