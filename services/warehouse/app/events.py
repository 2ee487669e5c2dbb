"""
Warehouse Service — Event definitions

Facts recorded in the event store and published on Redis. Named in the
past tense and never modified after they are written.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FulfilmentLine(BaseModel):
    """One instruction: take number_of_books copies of book from shelf."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    book: str
    shelf: str
    number_of_books: int = Field(alias="numberOfBooks")


class BooksPlacedOnShelf(BaseModel):
    """Copies of a book were put on a shelf"""
    book_id: str
    shelf_id: str
    number_of_books: int
    copies_on_shelf: int
    timestamp: datetime


class OrderPlaced(BaseModel):
    """An order was placed"""
    order_id: str
    books: dict[str, int]
    timestamp: datetime


class OrderFulfilled(BaseModel):
    """An order was fulfilled completely and removed"""
    order_id: str
    lines: list[FulfilmentLine]
    timestamp: datetime


class BooksRemovedFromShelf(BaseModel):
    """Copies of a book were taken off a shelf to fulfil an order"""
    book_id: str
    shelf_id: str
    order_id: str
    number_of_books: int
    copies_on_shelf: int
    timestamp: datetime
