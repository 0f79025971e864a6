"""
main.py — FastAPI Entry Point for the Order Pipeline

REST interface for storefront checkout and operator dispatch.

Responsibilities:
    • Accept checkout submissions and create server-verified orders
    • Dispatch confirmed orders to a delivery provider and report per-order results
    • Proxy courier lookups and cancellations for the admin console
    • Provide system health information
"""

from dataclasses import asdict
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .checkout import CheckoutService
from .couriers import UnsupportedProviderError, get_adapter
from .db import create_database
from .dispatch import DispatchOrchestrator, ProviderNotFoundError
from .domain import AddressSnapshot, DispatchOrder, DispatchRequest
from .errors import AdapterError, CheckoutError, CredentialError
from .logging_config import get_logger, setup_logging
from .models import CancelBody, CheckoutRequest, CheckoutResponse, DispatchBody, DispatchResponse, QuoteBody
from .notifications import NotificationPublisher
from .repository import OrderStore

# Initialization
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Order Verification & Dispatch Pipeline")

_state = {}


@app.on_event("startup")
def on_startup():
    """
    Opens the database and the notification publisher.

    Tests install their own store through `configure()` before the first request,
    in which case nothing is created here.
    """
    log.info("Order-Pipeline startet...")
    if "store" not in _state:
        session_factory, _ = create_database(config.DATABASE_URL, create_tables=config.AUTO_CREATE_TABLES)
        configure(OrderStore(session_factory), NotificationPublisher())
    log.info("Order-Pipeline bereit.")


def configure(store: OrderStore, notifier=None, adapter_factory=get_adapter, max_workers: int = 1):
    _state["store"] = store
    _state["notifier"] = notifier
    _state["adapter_factory"] = adapter_factory
    _state["max_workers"] = max_workers


def get_store() -> OrderStore:
    return _state["store"]


def get_checkout_service(store: OrderStore = Depends(get_store)) -> CheckoutService:
    return CheckoutService(store, _state.get("notifier"))


def get_orchestrator(store: OrderStore = Depends(get_store)) -> DispatchOrchestrator:
    return DispatchOrchestrator(store, _state.get("adapter_factory", get_adapter), _state.get("max_workers", 1))


# Error Handling
@app.exception_handler(CheckoutError)
def checkout_error_handler(request: Request, exc: CheckoutError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(p) for p in first.get("loc", ())[1:]) or "request"
    return JSONResponse(status_code=400, content={"error": f"Invalid {field}: {first.get('msg', 'invalid value')}"})


def current_user_id(authorization: Optional[str] = Header(default=None),
                    x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """
    Authenticated user id, or None for guests.

    Token verification happens upstream at the gateway, which forwards the
    verified subject as X-User-Id alongside the bearer token.
    """
    if authorization and authorization.startswith("Bearer ") and x_user_id:
        return x_user_id
    return None


# API Endpoint: Storefront → Checkout
@app.post("/v1/orders", response_model=CheckoutResponse)
def submit_order(
        order: CheckoutRequest,
        user_id: Optional[str] = Depends(current_user_id),
        service: CheckoutService = Depends(get_checkout_service),
):
    """
    Creates an order from a checkout submission.

    All figures in the response are recomputed on the server; the client uses
    them to reconcile its optimistic totals.

    Returns:
        CheckoutResponse: order id, order number, total, subtotal, shipping_cost, discount.

    Raises:
        CheckoutError: Mapped to 400/403/429/500 by the exception handler.
    """
    try:
        created = service.create_order(order, user_id=user_id)
    except CheckoutError:
        raise
    except Exception as e:
        log.critical(f"Unerwarteter Fehler bei der Bestellannahme: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="An unexpected error occurred. Please try again.")

    totals = created.totals
    return CheckoutResponse(
        order_id=created.order_id,
        order_number=created.order_number,
        total=float(totals.total),
        subtotal=float(totals.subtotal),
        shipping_cost=float(totals.shipping_cost),
        discount=float(totals.discount),
    )


# API Endpoint: Admin → Dispatch
@app.post("/v1/dispatch", response_model=DispatchResponse)
def dispatch_orders(body: DispatchBody, orchestrator: DispatchOrchestrator = Depends(get_orchestrator)):
    """
    Sends the selected orders to one delivery provider.

    The response lists every order with its own outcome so the operator can
    retry only the failed ones. Partial failure still answers 200.
    """
    try:
        if body.orders is not None:
            provider = orchestrator.store.get_provider(body.provider_id)
            if provider is None or not provider.is_active:
                raise ProviderNotFoundError(f"Provider not found: {body.provider_id}")
            orders = [
                DispatchOrder(
                    id=o.id, order_number=o.order_number, total=o.total, payment_method=o.payment_method,
                    address=AddressSnapshot(**o.address.model_dump()) if o.address else None,
                )
                for o in body.orders
            ]
            summary = orchestrator.dispatch(orders, provider)
        elif body.order_ids:
            summary = orchestrator.dispatch_order_ids(body.order_ids, body.provider_id)
        else:
            raise HTTPException(status_code=400, detail="orders or order_ids are required")
    except ProviderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return DispatchResponse(
        results=[asdict(r) for r in summary.results],
        success_count=summary.success_count,
        failure_count=summary.failure_count,
    )


def _adapter_for(provider_id: str):
    provider = get_store().get_provider(provider_id)
    if provider is None or not provider.is_active:
        raise HTTPException(status_code=404, detail=f"Provider not found: {provider_id}")
    try:
        return _state.get("adapter_factory", get_adapter)(provider)
    except UnsupportedProviderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CredentialError as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/v1/couriers/{provider_id}/track/{tracking_id}")
def track_shipment(provider_id: str, tracking_id: str):
    """Passes a tracking lookup through to the provider."""
    adapter = _adapter_for(provider_id)
    try:
        return adapter.track(tracking_id)
    except (AdapterError, httpx.HTTPError, NotImplementedError) as e:
        raise HTTPException(status_code=502, detail=str(e) or "Tracking not supported")
    finally:
        adapter.close()


@app.post("/v1/couriers/{provider_id}/cancel/{tracking_id}")
def cancel_shipment(provider_id: str, tracking_id: str, body: Optional[CancelBody] = None):
    """
    Cancels a shipment at the provider.

    The order is only marked `cancelled` after the provider confirmed the
    cancellation; a rejected cancellation leaves it untouched.
    """
    body = body or CancelBody()
    adapter = _adapter_for(provider_id)
    try:
        result = adapter.cancel(tracking_id, body.reason)
    except NotImplementedError:
        raise HTTPException(status_code=400, detail="Cancellation not available for this provider")
    except (AdapterError, httpx.HTTPError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        adapter.close()

    if body.order_id:
        if get_store().mark_cancelled(body.order_id):
            log.info(f"[Order: {body.order_id}] Sendung {tracking_id} storniert, Order auf cancelled gesetzt.")
        else:
            log.warning(f"[Order: {body.order_id}] Sendung {tracking_id} storniert, Order nicht gefunden.")
    return result


@app.post("/v1/couriers/{provider_id}/price")
def quote_price(provider_id: str, body: QuoteBody):
    """Delivery charge quote for a destination before anything is dispatched."""
    adapter = _adapter_for(provider_id)
    quote = DispatchRequest(
        order_id="", order_number="", recipient_name="", recipient_phone="", address_line="",
        division="", district=body.district, thana=body.thana, cash_to_collect=body.cash_to_collect,
        declared_value=body.declared_value, weight_kg=body.weight_kg,
    )
    try:
        return adapter.price(quote)
    except NotImplementedError:
        raise HTTPException(status_code=400, detail="Price quotes not available for this provider")
    except (AdapterError, httpx.HTTPError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        adapter.close()


@app.get("/v1/couriers/{provider_id}/locations/{kind}")
def courier_locations(provider_id: str, kind: str, parent: Optional[str] = None):
    """
    One level of a provider's location hierarchy.

    `parent` is the id (or, for eCourier, the city name / postcode) of the
    enclosing level, e.g. `/locations/zones?parent=<city_id>` for Pathao.
    """
    adapter = _adapter_for(provider_id)
    try:
        return {"data": adapter.locations(kind, parent)}
    except NotImplementedError:
        raise HTTPException(status_code=400, detail="Location hierarchy not available for this provider")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (AdapterError, httpx.HTTPError) as e:
        raise HTTPException(status_code=502, detail=str(e))
    finally:
        adapter.close()


# Health Check Endpoint
@app.get("/health")
def health_check():
    return {"status": "ok"}
