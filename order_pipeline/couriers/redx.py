"""
redx.py — RedX Adapter (API access token header, parcel create + tracking)
"""

from decimal import Decimal
from typing import Any, Dict

from ..domain import DispatchRequest, sanitize
from .base import CourierAdapter, clamp, join_address, money


class RedXAdapter(CourierAdapter):
    provider_type = "redx"
    sandbox_url = "https://sandbox.redx.com.bd/v1.0.0-beta"
    live_url = "https://openapi.redx.com.bd/v1.0.0-beta"

    def headers(self) -> Dict[str, str]:
        return {"API-ACCESS-TOKEN": f"Bearer {self.provider.api_key}"}

    def build_payload(self, request: DispatchRequest) -> Dict[str, Any]:
        # RedX erwartet Gewicht in Gramm und Beträge als Strings
        grams = int(clamp(request.weight_kg * 1000, Decimal("100"), Decimal("50000")))
        payload = {
            "customer_name": sanitize(request.recipient_name, 100),
            "customer_phone": sanitize(request.recipient_phone, 20),
            "delivery_area": sanitize(request.district, 100),
            "customer_address": sanitize(join_address(request.address_line, request.thana, request.district), 300),
            "merchant_invoice_id": sanitize(request.order_number, 50),
            "cash_collection_amount": str(money(request.cash_to_collect)),
            "parcel_weight": grams,
            "instruction": sanitize(request.notes, 500),
            "value": str(money(request.declared_value)),
        }
        area_ids = self.config.get("delivery_area_ids") or {}
        if request.district in area_ids:
            payload["delivery_area_id"] = area_ids[request.district]
        return payload

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        return self.request("POST", "/parcel", json=self.build_payload(request))

    def areas(self) -> Dict[str, Any]:
        return self.request("GET", "/areas")

    def track(self, tracking_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/parcel/track/{tracking_id}")
