# schoolshop/app.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, load_settings
from .errors import OrderError
from .models import (
    CancelPatch,
    CatalogItem,
    CatalogItemIn,
    Order,
    OrderIn,
    OrderStats,
    RefundPatch,
    StatusPatch,
    TrackingPatch,
)
from .pg_store import PostgresStore
from .service import OrderService
from .store import MemoryStore, Store

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "EmptyOrder": 400,
    "ItemNotFound": 404,
    "InsufficientStock": 409,
    "RefundExceedsTotal": 400,
    "InvalidRefund": 400,
    "InvalidTransition": 409,
    "OrderNotCancellable": 409,
    "InvalidState": 409,
    "NotFound": 404,
    "ConcurrentUpdate": 409,
    "PersistenceFailure": 500,
}

router = APIRouter()


def get_service(request: Request) -> OrderService:
    return request.app.state.service


def build_store(settings: Settings) -> Store:
    if settings.store_backend == "memory":
        return MemoryStore()
    if settings.store_backend != "postgres":
        raise ValueError(f"unknown STORE_BACKEND {settings.store_backend!r}")
    return PostgresStore(settings.database_url or "", settings.pool_min, settings.pool_max)


def create_app(store: Optional[Store] = None, settings: Optional[Settings] = None, clock=None) -> FastAPI:
    settings = settings or load_settings()
    store = store if store is not None else build_store(settings)
    kwargs = {"clock": clock} if clock is not None else {}

    app = FastAPI(title="SchoolShop Orders API", version=__version__)
    app.state.service = OrderService(store, settings.policy, **kwargs)
    app.include_router(router)

    @app.on_event("startup")
    def startup():
        logging.basicConfig(level=settings.log_level)
        store.open()

    @app.on_event("shutdown")
    def shutdown():
        store.close()

    @app.exception_handler(OrderError)
    async def order_error(request: Request, exc: OrderError):
        return JSONResponse(
            status_code=STATUS_BY_KIND.get(exc.kind, 400),
            content={"kind": exc.kind, "detail": exc.message},
        )

    return app


# Health

@router.get("/health/db")
def health_db(service: OrderService = Depends(get_service)):
    try:
        return {"db_ok": service.store.ping()}
    except Exception as e:
        logger.exception("health check failed")
        return JSONResponse(status_code=500, content={"db_ok": False, "error": str(e)})

# Catalog

@router.put("/catalog/items/{item_id}", response_model=CatalogItem)
def put_catalog_item(item_id: int, body: CatalogItemIn, service: OrderService = Depends(get_service)):
    return service.put_catalog_item(item_id, body)

@router.get("/catalog/items/{item_id}", response_model=CatalogItem)
def get_catalog_item(item_id: int, service: OrderService = Depends(get_service)):
    return service.get_catalog_item(item_id)

# Orders

@router.post("/orders", response_model=Order, status_code=201)
def create_order(
    body: OrderIn,
    x_customer_id: str = Header(...),
    service: OrderService = Depends(get_service),
):
    return service.create_order(
        customer_id=x_customer_id,
        lines=body.items,
        shipping_address=body.shipping_address,
        payment_method=body.payment_method,
        gift=body.gift,
        notes=body.notes,
    )

@router.get("/orders/stats", response_model=OrderStats)
def order_stats(service: OrderService = Depends(get_service)):
    return service.order_stats()

@router.get("/orders/{order_id}", response_model=Order)
def get_order(
    order_id: int,
    x_customer_id: Optional[str] = Header(default=None),
    service: OrderService = Depends(get_service),
):
    return service.get_order(order_id, customer_id=x_customer_id)

# Lifecycle (staff)

@router.patch("/orders/{order_id}/status", response_model=Order)
def update_order_status(order_id: int, body: StatusPatch, service: OrderService = Depends(get_service)):
    return service.update_order_status(
        order_id, body.status, body.notes, body.tracking_number, body.tracking_url
    )

@router.patch("/orders/{order_id}/cancel", response_model=Order)
def cancel_order(
    order_id: int,
    body: CancelPatch,
    x_customer_id: Optional[str] = Header(default=None),
    service: OrderService = Depends(get_service),
):
    return service.cancel_order(order_id, body.reason, customer_id=x_customer_id)

@router.patch("/orders/{order_id}/tracking", response_model=Order)
def add_tracking(order_id: int, body: TrackingPatch, service: OrderService = Depends(get_service)):
    return service.add_tracking(order_id, body.tracking_number, body.tracking_url)

@router.patch("/orders/{order_id}/refund", response_model=Order)
def process_refund(order_id: int, body: RefundPatch, service: OrderService = Depends(get_service)):
    return service.process_refund(order_id, body.refund_amount, body.reason)


app = create_app()
