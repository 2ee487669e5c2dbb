"""
Warehouse Service — Error taxonomy

Each error carries the HTTP status the API layer responds with, so routes
never translate errors themselves.
"""


class WarehouseError(Exception):
    status_code: int = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(WarehouseError):
    """Malformed input, e.g. a negative number of books."""
    status_code = 400


class OrderNotFound(WarehouseError):
    status_code = 404

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}")
        self.order_id = order_id


class UnknownBookInOrder(WarehouseError):
    status_code = 400

    def __init__(self, order_id: str, book_id: str) -> None:
        super().__init__(f"Book {book_id} is not in order {order_id}")
        self.order_id = order_id
        self.book_id = book_id


class QuantityMismatch(WarehouseError):
    status_code = 400

    def __init__(self, book_id: str, required: int, fulfilled: int) -> None:
        super().__init__(
            f"Incorrect number of books for {book_id}: "
            f"required={required}, fulfilled={fulfilled}"
        )
        self.book_id = book_id
        self.required = required
        self.fulfilled = fulfilled


class InsufficientStock(WarehouseError):
    status_code = 409

    def __init__(self, book_id: str, shelf_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Not enough copies of {book_id} on shelf {shelf_id}: "
            f"requested={requested}, available={available}"
        )
        self.book_id = book_id
        self.shelf_id = shelf_id
        self.requested = requested
        self.available = available


class ServerError(WarehouseError):
    """The underlying store failed. Never retried."""
    status_code = 500


class ConcurrencyConflict(ServerError):
    """Another request changed the same order or shelf between read and write."""
    status_code = 409
