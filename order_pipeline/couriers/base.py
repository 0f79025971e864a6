"""
base.py — Courier Adapter Interface

Every delivery provider gets one adapter that translates the canonical
`DispatchRequest` into the provider's authentication and payload shape and
translates the provider's response back into a `DispatchResult`.

Adapters never raise past `dispatch()` / `dispatch_bulk()`: transport errors,
timeouts and provider-side rejections all come back as failed results.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..config import courier_timeout
from ..domain import DispatchRequest, DispatchResult, Provider, is_valid_phone
from ..errors import AdapterError

log = logging.getLogger(__name__)

# Response keys that carry a tracking identifier, in order of preference
TRACKING_KEYS = ("consignment_id", "tracking_code", "tracking_id")


def extract_tracking_id(data: Any) -> Optional[str]:
    """
    Finds a tracking identifier in a provider response.

    Checks the top-level keys first, then the same keys nested under `data`.
    """
    if not isinstance(data, dict):
        return None
    for scope in (data, data.get("data")):
        if not isinstance(scope, dict):
            continue
        for key in TRACKING_KEYS:
            value = scope.get(key)
            if value not in (None, ""):
                return str(value)
    return None


def clamp(value, low, high):
    return max(low, min(high, value))


def money(value: Decimal) -> Decimal:
    return max(Decimal("0"), Decimal(value))


def join_address(*parts: str) -> str:
    return ", ".join(p for p in parts if p and p != "N/A")


def match_by_name(items: Iterable[dict], name_key: str, id_key: str, wanted: str):
    """Case-insensitive lookup of a location id by its display name."""
    wanted = (wanted or "").strip().lower()
    for item in items or []:
        if str(item.get(name_key, "")).strip().lower() == wanted:
            return item.get(id_key)
    return None


def error_message(response: httpx.Response) -> str:
    """Best-effort human-readable error from a provider's error response."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error", "errors", "msg", "detail"):
            value = body.get(key)
            if isinstance(value, dict):
                value = value.get("message") or value
            if value:
                return str(value)
    return f"HTTP {response.status_code}"


class CourierAdapter:
    """
    Base class for provider adapters.

    Subclasses set `provider_type` and the base URLs and implement `headers()`,
    `build_payload()` and `create()`. Bulk-capable providers set `supports_bulk`
    and implement `create_bulk()`.

    Args:
        provider (Provider): Provider row with decrypted credentials.
        client (httpx.Client | None): HTTP client; one with the provider's base URL is created if omitted.
    """
    provider_type = ""
    sandbox_url = ""
    live_url = ""
    supports_bulk = False
    max_bulk_size = 0
    # Location levels from widest to narrowest, e.g. ("cities", "zones", "areas")
    location_kinds = ()

    def __init__(self, provider: Provider, client: httpx.Client = None):
        self.provider = provider
        self.config = provider.config or {}
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=self.base_url, timeout=courier_timeout())

    @property
    def base_url(self) -> str:
        if not self.sandbox_url:
            return self.live_url
        return self.sandbox_url if self.provider.is_sandbox else self.live_url

    @property
    def log_prefix(self) -> str:
        return f"[Courier: {self.provider_type}]"

    def close(self):
        if self._owns_client:
            self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # --- Provider hooks ---

    def headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def build_payload(self, request: DispatchRequest) -> Dict[str, Any]:
        raise NotImplementedError

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        """Sends one create call and returns the provider's parsed response."""
        raise NotImplementedError

    def create_bulk(self, requests: List[DispatchRequest]) -> Any:
        raise NotImplementedError

    def tracking_id(self, data: Dict[str, Any]) -> Optional[str]:
        return extract_tracking_id(data)

    def track(self, tracking_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    def cancel(self, tracking_id: str, reason: str = "Cancelled") -> Dict[str, Any]:
        raise NotImplementedError

    def price(self, request: DispatchRequest) -> Dict[str, Any]:
        """Delivery charge quote for a shipment that has not been created yet."""
        raise NotImplementedError

    def locations(self, kind: str, parent=None) -> List[dict]:
        """
        One level of the provider's location hierarchy.

        Args:
            kind (str): One of `location_kinds`.
            parent: Id of the enclosing location; required for every level but the first.

        Raises:
            NotImplementedError: The provider has no location hierarchy.
            ValueError: Unknown kind or missing parent id.
        """
        if not self.location_kinds:
            raise NotImplementedError
        if kind not in self.location_kinds:
            raise ValueError(f"Invalid location lookup: {kind}")
        if kind != self.location_kinds[0] and parent in (None, ""):
            raise ValueError(f"Location lookup {kind} needs a parent id")
        return self.location_level(kind, parent)

    def location_level(self, kind: str, parent) -> List[dict]:
        raise NotImplementedError

    # --- HTTP ---

    def request(self, method: str, path: str, **kwargs) -> Any:
        """
        Performs one provider call and returns the decoded JSON body.

        Raises:
            AdapterError: Non-2xx status or a body that is not JSON.
            httpx.HTTPError: Transport failures, including timeouts.
        """
        headers = {"Content-Type": "application/json", **self.headers(), **kwargs.pop("headers", {})}
        response = self.client.request(method, path, headers=headers, **kwargs)
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise AdapterError(error_message(response), status_code=response.status_code) from e
        try:
            return response.json()
        except ValueError as e:
            raise AdapterError(f"Invalid JSON response from {self.provider_type}") from e

    # --- Canonical boundary ---

    def dispatch(self, request: DispatchRequest) -> DispatchResult:
        """Creates one shipment. Never raises."""
        log_prefix = f"{self.log_prefix}[Order: {request.order_number}]"
        if not is_valid_phone(request.recipient_phone):
            log.warning(f"{log_prefix} Ungültige Empfänger-Telefonnummer, kein Versand.")
            return DispatchResult.failed(request.order_id, request.order_number, "Invalid recipient phone number")

        try:
            data = self.create(request)
            tracking = self.tracking_id(data)
        except httpx.TimeoutException as e:
            log.error(f"{log_prefix} Timeout beim Kurier ({e.__class__.__name__}).")
            return DispatchResult.failed(request.order_id, request.order_number, f"{self.provider_type} timed out")
        except httpx.HTTPError as e:
            log.error(f"{log_prefix} Verbindung zum Kurier fehlgeschlagen: {e}")
            return DispatchResult.failed(request.order_id, request.order_number, f"{self.provider_type} unreachable: {e}")
        except AdapterError as e:
            log.warning(f"{log_prefix} Kurier hat abgelehnt: {e}")
            return DispatchResult.failed(request.order_id, request.order_number, str(e))
        except Exception as e:
            log.error(f"{log_prefix} Unerwarteter Fehler im Adapter: {e}", exc_info=True)
            return DispatchResult.failed(request.order_id, request.order_number, str(e) or "Dispatch failed")

        log.info(f"{log_prefix} Sendung angelegt (Tracking: {tracking}).")
        return DispatchResult(order_id=request.order_id, order_number=request.order_number,
                              success=True, tracking_id=tracking)

    def dispatch_bulk(self, requests: List[DispatchRequest]) -> List[DispatchResult]:
        """
        Creates shipments for a whole batch in one provider call. Never raises.

        The outcome is all-or-nothing for the batch: a failed call fails every
        order with the same error, a successful call succeeds every order. Each
        order gets its own tracking id when the provider returns one per order,
        otherwise the shared id.
        """
        if not self.supports_bulk:
            return [self.dispatch(r) for r in requests]

        results = []
        valid = []
        for r in requests:
            if is_valid_phone(r.recipient_phone):
                valid.append(r)
            else:
                results.append(DispatchResult.failed(r.order_id, r.order_number, "Invalid recipient phone number"))
        if not valid:
            return results

        try:
            per_order, shared = self.create_bulk(valid)
        except Exception as e:
            if isinstance(e, httpx.TimeoutException):
                message = f"{self.provider_type} timed out"
            elif isinstance(e, AdapterError):
                message = str(e)
            else:
                message = str(e) or "Bulk dispatch failed"
            log.error(f"{self.log_prefix} Bulk-Versand ({len(valid)} Orders) fehlgeschlagen: {message}")
            results.extend(DispatchResult.failed(r.order_id, r.order_number, message) for r in valid)
            return results

        log.info(f"{self.log_prefix} Bulk-Versand für {len(valid)} Orders angelegt.")
        results.extend(
            DispatchResult(order_id=r.order_id, order_number=r.order_number, success=True,
                           tracking_id=per_order.get(r.order_number) or shared)
            for r in valid
        )
        return results
