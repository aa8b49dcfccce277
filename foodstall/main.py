"""
FastAPI Application Entry Point

Food Stall Order Queue - shared order log service.
Exposes the three store capabilities to remote stations and kitchen
displays: the atomic ticket sequencer, the order log, and the change feed.

Endpoints:
    - GET  /health: System health check
    - GET  /api/catalog: Fixed two-item catalog
    - POST /api/tickets/{item_type}/next: Reserve a ticket number
    - GET  /api/orders: Full order log (created_at ascending)
    - POST /api/orders: Append a confirmed basket
    - POST /api/orders/{order_id}/serve: Mark a line served
    - WS   /ws/orders: Change notifications

Version: 1.0.0
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Windows-specific event loop policy
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Internal imports
from foodstall.catalog import get_catalog, price_for
from foodstall.core.config import get_settings, setup_logging
from foodstall.exceptions import (
    AlreadyServed,
    CommitFailed,
    LineNotFound,
    RefreshFailed,
    SequencerUnavailable,
    ServeFailed,
    StoreError,
    TicketConflict,
    UnknownItem,
)
from foodstall.models import OrderStatus
from foodstall.order_log import OrderLog
from foodstall.schemas import (
    CatalogItemResponse,
    ChangeEvent,
    ErrorResponse,
    HealthResponse,
    NewOrderLine,
    OrderBatchCreate,
    OrderBatchResponse,
    OrderLine,
    OrderLineResponse,
    OrderListResponse,
    TicketReservationResponse,
)
from foodstall.services.realtime import BaseChangeFeed, get_change_feed
from foodstall.services.store import BaseOrderStore, get_order_store
from foodstall.tickets import TicketSequencer, display_label

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_store() -> BaseOrderStore:
    return get_order_store()


def get_feed() -> BaseChangeFeed:
    return get_change_feed()


def get_order_log(
    store: BaseOrderStore = Depends(get_store),
    feed: BaseChangeFeed = Depends(get_feed),
) -> OrderLog:
    return OrderLog(store, feed)


def get_sequencer(store: BaseOrderStore = Depends(get_store)) -> TicketSequencer:
    return TicketSequencer(store)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info(f"🚀 Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    if settings.use_real_services:
        from foodstall.database import init_db

        await init_db()
        logger.info("✅ Database initialized")

    store = get_order_store()
    feed = get_change_feed()
    logger.info(f"✅ Order Store: {store.provider_name}")
    logger.info(f"✅ Change Feed: {feed.provider_name}")
    logger.info("✅ Application ready!")

    yield  # Application runs

    logger.info("Shutting down...")
    await feed.close()
    await store.close()
    logger.info("✅ Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Shared order log for a two-item food stall: collision-free ticket "
        "numbers, batch order commits and real-time change notifications."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def to_response(line: OrderLine) -> OrderLineResponse:
    return OrderLineResponse(
        id=line.id,
        item_type=line.item_type.value,
        unit_price=line.unit_price,
        ticket_number=line.ticket_number,
        display_label=display_label(line.ticket_number, settings.ticket_count),
        status=line.status.value,
        created_at=line.created_at,
    )


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    store: BaseOrderStore = Depends(get_store),
    feed: BaseChangeFeed = Depends(get_feed),
) -> HealthResponse:
    """Verify the store and change feed are reachable."""
    store_status = "healthy" if await store.health_check() else "unhealthy"
    feed_status = "healthy" if await feed.health_check() else "unhealthy"

    overall = "operational" if store_status == feed_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        store=store_status,
        change_feed=feed_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# CATALOG & TICKETS
# =============================================================================

@app.get(
    "/api/catalog",
    response_model=list[CatalogItemResponse],
    tags=["Catalog"],
)
async def catalog() -> list[CatalogItemResponse]:
    """The fixed catalog with deployment prices."""
    return [
        CatalogItemResponse(
            item_type=entry.item_type.value,
            label=entry.label,
            unit_price=entry.unit_price,
        )
        for entry in get_catalog(settings).values()
    ]


@app.post(
    "/api/tickets/{item_type}/next",
    response_model=TicketReservationResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Tickets"],
    summary="Reserve Ticket Number",
)
async def reserve_ticket(
    item_type: str,
    sequencer: TicketSequencer = Depends(get_sequencer),
) -> TicketReservationResponse:
    """Atomically reserve the next ticket number for an item type."""
    try:
        number = await sequencer.reserve(item_type)
    except UnknownItem as e:
        raise HTTPException(status_code=404, detail=e.message)
    except SequencerUnavailable as e:
        raise HTTPException(status_code=503, detail=e.message)

    return TicketReservationResponse(
        item_type=item_type.lower(),
        ticket_number=number,
        display_label=display_label(number, settings.ticket_count),
    )


# =============================================================================
# ORDER LOG ENDPOINTS
# =============================================================================

@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    responses={503: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    status: Optional[str] = Query(None),
    order_log: OrderLog = Depends(get_order_log),
) -> OrderListResponse:
    """Full order log, oldest first, optionally filtered by status."""
    status_enum = None
    if status:
        try:
            status_enum = OrderStatus(status.lower())
        except ValueError:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Options: {[s.value for s in OrderStatus]}"
            )

    try:
        lines = await order_log.list_all()
    except RefreshFailed as e:
        raise HTTPException(status_code=503, detail=e.message)

    pending = OrderLog.pending(lines)
    shown = lines if status_enum is None else [line for line in lines if line.status == status_enum]

    return OrderListResponse(
        total=len(lines),
        pending=len(pending),
        orders=[to_response(line) for line in shown],
    )


@app.post(
    "/api/orders",
    response_model=OrderBatchResponse,
    responses={409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Append Confirmed Basket",
)
async def create_orders(
    batch: OrderBatchCreate,
    order_log: OrderLog = Depends(get_order_log),
) -> OrderBatchResponse:
    """
    Append a confirmed basket as one batch.

    Prices come from the catalog; every line is stored as pending.
    """
    lines = [
        NewOrderLine(
            item_type=line.item_type,
            unit_price=price_for(line.item_type, settings),
            ticket_number=line.ticket_number,
        )
        for line in batch.lines
    ]

    try:
        stored = await order_log.append(lines)
    except CommitFailed as e:
        status_code = 409 if isinstance(e.cause, TicketConflict) else 503
        raise HTTPException(status_code=status_code, detail=e.message)

    return OrderBatchResponse(
        success=True,
        message=f"{len(stored)} line(s) queued",
        orders=[to_response(line) for line in stored],
    )


@app.post(
    "/api/orders/{order_id}/serve",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    tags=["Orders"],
    summary="Mark Line Served",
)
async def serve_order(
    order_id: int,
    order_log: OrderLog = Depends(get_order_log),
) -> dict[str, Any]:
    """Mark a pending line as served (hand-off)."""
    try:
        await order_log.set_served(order_id)
    except LineNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except AlreadyServed as e:
        raise HTTPException(status_code=409, detail=e.message)
    except ServeFailed as e:
        raise HTTPException(status_code=503, detail=e.message)

    return {"success": True, "order_id": order_id, "status": OrderStatus.SERVED.value}


# =============================================================================
# CHANGE FEED
# =============================================================================

@app.websocket("/ws/orders")
async def orders_feed(
    websocket: WebSocket,
    feed: BaseChangeFeed = Depends(get_feed),
) -> None:
    """
    Stream order change events to a remote observer.

    The subscription is live before the socket is accepted, so a client
    that fetches /api/orders after connecting cannot miss a change.
    """
    outbox: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    async def forward(event: ChangeEvent) -> None:
        outbox.put_nowait(event)

    try:
        subscription = await feed.subscribe(forward)
    except StoreError as e:
        logger.error(f"WebSocket subscription failed: {e}")
        await websocket.close(code=1011)
        return

    await websocket.accept()
    logger.info("Change feed client connected")

    async def pump() -> None:
        try:
            while True:
                event = await outbox.get()
                await websocket.send_text(event.model_dump_json())
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info(f"Change feed client went away while sending: {e}")

    sender = asyncio.create_task(pump())
    try:
        # Drain client messages until it goes away
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Change feed client disconnected")
    finally:
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        await subscription.close()


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal Server Error",
            "detail": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "foodstall.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
