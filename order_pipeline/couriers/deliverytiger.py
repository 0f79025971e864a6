"""
deliverytiger.py — Delivery Tiger Adapter (bearer API key)

Like Pathao, Delivery Tiger wants district and thana ids, resolved here from
the provider's own district/thana lists.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..domain import DispatchRequest, sanitize
from ..errors import AdapterError
from .base import CourierAdapter, clamp, extract_tracking_id, join_address, match_by_name, money


def _model(body: Any) -> Any:
    return body.get("model") if isinstance(body, dict) else None


class DeliveryTigerAdapter(CourierAdapter):
    provider_type = "deliverytiger"
    live_url = "https://api.deliverytiger.com.bd/api"
    location_kinds = ("districts", "thanas", "areas")

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.provider.api_key}"}

    def districts(self) -> List[dict]:
        return _model(self.request("GET", "/District/GetDistricts")) or []

    def thanas(self, district_id) -> List[dict]:
        return _model(self.request("GET", f"/District/GetThana/{district_id}")) or []

    def areas(self, thana_id) -> List[dict]:
        return _model(self.request("GET", f"/District/GetArea/{thana_id}")) or []

    def location_level(self, kind: str, parent) -> List[dict]:
        if kind == "districts":
            return self.districts()
        if kind == "thanas":
            return self.thanas(int(parent))
        return self.areas(int(parent))

    def build_payload(self, request: DispatchRequest, district_id=None, thana_id=None) -> Dict[str, Any]:
        return {
            "customerName": sanitize(request.recipient_name, 100),
            "mobile": sanitize(request.recipient_phone, 20),
            "otherMobile": "",
            "address": sanitize(join_address(request.address_line, request.thana, request.district), 300),
            "districtId": district_id,
            "thanaId": thana_id,
            "areaId": 0,
            "collectionAmount": float(money(request.cash_to_collect)),
            "productPrice": float(money(request.declared_value)),
            "weight": float(clamp(request.weight_kg, Decimal("0.1"), Decimal("50"))),
            "orderType": "Delivery",
            "deliveryRangeId": self.config.get("delivery_range_id"),
            "merchantOrderId": sanitize(request.order_number, 50),
            "note": sanitize(request.notes, 500),
        }

    def tracking_id(self, data: Dict[str, Any]) -> Optional[str]:
        model = _model(data)
        if isinstance(model, dict) and model.get("courierOrderId"):
            return str(model["courierOrderId"])
        return extract_tracking_id(data)

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        district_id = match_by_name(self.districts(), "district", "districtId", request.district)
        if district_id is None:
            raise AdapterError(f"Delivery Tiger district not found: {request.district}")
        thana_id = match_by_name(self.thanas(district_id), "thana", "thanaId", request.thana)
        if thana_id is None:
            raise AdapterError(f"Delivery Tiger thana not found: {request.thana}")
        return self.request("POST", "/Order/PlaceOrder", json=self.build_payload(request, district_id, thana_id))

    def price(self, request: DispatchRequest) -> Dict[str, Any]:
        return self.request("POST", "/Pricing/GetPrice", json={
            "deliveryRangeId": self.config.get("delivery_range_id"),
            "weight": float(clamp(request.weight_kg, Decimal("0.1"), Decimal("50"))),
            "collectionAmount": float(money(request.cash_to_collect)),
        })

    def track(self, tracking_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/Order/GetOrderTracking/{tracking_id}")
