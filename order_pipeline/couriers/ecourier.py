"""
ecourier.py — eCourier Adapter (API-KEY / API-SECRET / USER-ID headers)
"""

from typing import Any, Dict, List, Optional

from ..domain import DispatchRequest, sanitize
from ..errors import AdapterError
from .base import CourierAdapter, clamp, extract_tracking_id, money


def _check_success(body: Any, fallback: str):
    if isinstance(body, dict) and body.get("success") is False:
        raise AdapterError(str(body.get("message") or body.get("errors") or fallback))


def _listing(body: Any) -> List[dict]:
    """eCourier lists come bare or wrapped in `message` / `data`."""
    if isinstance(body, dict):
        body = body.get("message") if isinstance(body.get("message"), list) else body.get("data")
    return body if isinstance(body, list) else []


class ECourierAdapter(CourierAdapter):
    provider_type = "ecourier"
    sandbox_url = "https://staging.ecourier.com.bd/api"
    live_url = "https://backoffice.ecourier.com.bd/api"
    location_kinds = ("cities", "thanas", "areas")

    def headers(self) -> Dict[str, str]:
        return {
            "API-KEY": self.provider.api_key,
            "API-SECRET": self.provider.api_secret,
            "USER-ID": str(self.config.get("user_id", "")),
        }

    def build_payload(self, request: DispatchRequest) -> Dict[str, Any]:
        return {
            "recipient_name": sanitize(request.recipient_name, 100),
            "recipient_mobile": sanitize(request.recipient_phone, 20),
            "recipient_city": sanitize(request.district, 50),
            "recipient_thana": sanitize(request.thana, 50),
            "recipient_area": sanitize(request.thana, 50),
            "recipient_address": sanitize(request.address_line, 300),
            "package_code": self.config.get("package_code", ""),
            "product_price": float(money(request.declared_value)),
            "payment_method": "COD" if request.cash_to_collect > 0 else "PREPAID",
            "recipient_postcode": "",
            "parcel_type": "BOX",
            "requested_delivery_time": "",
            "pick_hub": self.config.get("pick_hub", ""),
            "comments": sanitize(request.notes, 500),
            "number_of_item": clamp(request.quantity, 1, 100),
            "actual_product_price": float(money(request.declared_value)),
        }

    def tracking_id(self, data: Dict[str, Any]) -> Optional[str]:
        if isinstance(data, dict) and data.get("ID"):
            return str(data["ID"])
        return extract_tracking_id(data)

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        body = self.request("POST", "/order-place", json=self.build_payload(request))
        _check_success(body, "eCourier rejected the order")
        return body

    def track(self, tracking_id: str) -> Dict[str, Any]:
        return self.request("POST", "/track", json={"ecr": tracking_id})

    def cancel(self, tracking_id: str, reason: str = "Cancelled") -> Dict[str, Any]:
        body = self.request("POST", "/cancel-order", json={
            "ecr": tracking_id,
            "comment": sanitize(reason or "Cancelled", 200),
        })
        _check_success(body, "eCourier could not cancel the order")
        return body

    def price(self, request: DispatchRequest) -> Dict[str, Any]:
        return self.request("POST", "/price-calculate", json={
            "recipient_city": sanitize(request.district, 50),
            "recipient_thana": sanitize(request.thana, 50),
            "recipient_area": sanitize(request.thana, 50),
            "package_code": self.config.get("package_code", ""),
            "product_price": float(money(request.declared_value)),
        })

    def packages(self) -> List[dict]:
        return _listing(self.request("POST", "/packages"))

    # --- Location hierarchy: city → thana (by city name) → area (by postcode) ---

    def location_level(self, kind: str, parent) -> List[dict]:
        if kind == "cities":
            return _listing(self.request("POST", "/city-list"))
        if kind == "thanas":
            return _listing(self.request("POST", "/thana-list", json={"city": sanitize(parent, 50)}))
        return _listing(self.request("POST", "/area-list", json={"postcode": sanitize(parent, 20)}))
