"""
Warehouse Service — FastAPI entry point

Keeps track of book copies on shelves, takes orders and fulfils them.
Commands (PUT/POST) go through app.commands, queries (GET) through
app.queries. Every change is also recorded in the event store.

The engine, session factory and Redis pool belong to the app lifespan; each
request gets its own WarehouseStore bound to a fresh session.
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, queries, schema
from .errors import OrderNotFound, WarehouseError
from .events import FulfilmentLine
from .store import WarehouseStore

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./warehouse.db")
REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

router = APIRouter()


# ── Dependencies ─────────────────────────────────


async def get_store(request: Request) -> AsyncIterator[WarehouseStore]:
    async with request.app.state.async_session() as session:
        yield WarehouseStore(session)


def get_redis(request: Request) -> aioredis.Redis | None:
    return request.app.state.redis


# ── Request Models ───────────────────────────────


class PlaceOrderRequest(BaseModel):
    order: list[str]


# ── Command Endpoints (write side) ───────────────


@router.put("/warehouse/{book}/{shelf}/{number}")
async def cmd_place_books_on_shelf(
    book: str,
    shelf: str,
    number: int,
    store: WarehouseStore = Depends(get_store),
    redis: aioredis.Redis | None = Depends(get_redis),
) -> None:
    """Put `number` more copies of a book on a shelf."""
    await commands.place_books_on_shelf(store, redis, book, shelf, number)


@router.post("/order", status_code=201)
async def cmd_place_order(
    req: PlaceOrderRequest,
    store: WarehouseStore = Depends(get_store),
    redis: aioredis.Redis | None = Depends(get_redis),
) -> str:
    """Place an order; returns the new order id."""
    return await commands.place_order(store, redis, req.order)


@router.put("/fulfil/{order}")
async def cmd_fulfil_order(
    order: str,
    lines: list[FulfilmentLine],
    store: WarehouseStore = Depends(get_store),
    redis: aioredis.Redis | None = Depends(get_redis),
) -> None:
    """Fulfil an order by taking the listed books off their shelves."""
    await commands.fulfil_order(store, redis, order, lines)


# ── Query Endpoints (read side) ──────────────────


@router.get("/warehouse/{book}")
async def query_book_info(book: str, store: WarehouseStore = Depends(get_store)):
    """Shelf → number of copies, for shelves holding at least one copy."""
    return await queries.get_book_info(store, book)


@router.get("/order")
async def query_list_orders(store: WarehouseStore = Depends(get_store)):
    return await queries.list_orders(store)


@router.get("/order/{order_id}")
async def query_get_order(order_id: str, store: WarehouseStore = Depends(get_store)):
    order = await queries.get_order(store, order_id)
    if not order:
        raise OrderNotFound(order_id)
    return order


# ── Event Store (audit / debugging) ──────────────


@router.get("/events")
async def get_all_events(store: WarehouseStore = Depends(get_store)):
    return await store.load_all_events()


@router.get("/events/{aggregate_id:path}")
async def get_aggregate_events(aggregate_id: str, store: WarehouseStore = Depends(get_store)):
    return await store.load_events(aggregate_id)


@router.get("/health")
async def health():
    return {"status": "ok", "service": "warehouse-service"}


async def warehouse_error_handler(request: Request, exc: WarehouseError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


def create_app(database_url: str = DATABASE_URL, redis_url: str = REDIS_URL) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_async_engine(database_url, echo=False)
        await schema.create_all(engine)
        app.state.async_session = sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        app.state.redis = (
            aioredis.from_url(redis_url, decode_responses=True) if redis_url else None
        )
        logger.info("Warehouse service started")
        yield
        if app.state.redis is not None:
            await app.state.redis.aclose()
        await engine.dispose()

    app = FastAPI(title="Warehouse Service", lifespan=lifespan)
    app.add_exception_handler(WarehouseError, warehouse_error_handler)
    app.include_router(router)
    return app


app = create_app()
