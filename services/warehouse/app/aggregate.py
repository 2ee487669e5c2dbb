"""
Warehouse Service — Order aggregate

The orders table is the read model; the aggregate is rebuilt from the event
store to learn the version the next event must follow.

State transitions:
    PENDING → FULFILLED  (all books taken from shelves)
"""


class OrderAggregate:
    def __init__(self) -> None:
        self.id: str | None = None
        self.books: dict[str, int] = {}
        self.status: str = "UNKNOWN"
        self.version: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status == "PENDING"

    def apply_order_placed(self, data: dict) -> None:
        self.id = data["order_id"]
        self.books = dict(data["books"])
        self.status = "PENDING"

    def apply_order_fulfilled(self, _data: dict) -> None:
        self.status = "FULFILLED"

    def apply_event(self, event_type: str, event_data: dict) -> None:
        handler = {
            "OrderPlaced": self.apply_order_placed,
            "OrderFulfilled": self.apply_order_fulfilled,
        }.get(event_type)
        if handler:
            handler(event_data)

    @classmethod
    def from_events(cls, events: list[dict]) -> "OrderAggregate":
        agg = cls()
        for e in events:
            agg.apply_event(e["event_type"], e["event_data"])
            agg.version = e["version"]
        return agg
