"""
steadfast.py — Steadfast Adapter (API key + secret headers, bulk create)
"""

from typing import Any, Dict, List, Optional, Tuple

from ..domain import DispatchRequest, sanitize
from ..errors import AdapterError
from .base import CourierAdapter, extract_tracking_id, join_address, money


def _check_status(body: Any) -> Any:
    # Steadfast antwortet teils mit HTTP 200 und einem Fehlerstatus im Body
    if isinstance(body, dict) and body.get("status") not in (None, 200, "200", "success"):
        raise AdapterError(str(body.get("message") or f"Steadfast status {body.get('status')}"))
    return body


class SteadfastAdapter(CourierAdapter):
    provider_type = "steadfast"
    sandbox_url = "https://portal.packzy.com/api/v1"
    live_url = "https://portal.steadfast.com.bd/api/v1"
    supports_bulk = True
    max_bulk_size = 500

    def headers(self) -> Dict[str, str]:
        return {"Api-Key": self.provider.api_key, "Secret-Key": self.provider.api_secret}

    def build_payload(self, request: DispatchRequest) -> Dict[str, Any]:
        return {
            "invoice": sanitize(request.order_number, 50),
            "recipient_name": sanitize(request.recipient_name, 100),
            "recipient_phone": sanitize(request.recipient_phone, 20),
            "recipient_address": sanitize(
                join_address(request.address_line, request.thana, request.district, request.division), 300),
            "cod_amount": float(money(request.cash_to_collect)),
            "note": sanitize(request.notes, 500),
        }

    def tracking_id(self, data: Dict[str, Any]) -> Optional[str]:
        consignment = data.get("consignment") if isinstance(data, dict) else None
        return extract_tracking_id(consignment) or extract_tracking_id(data)

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        return _check_status(self.request("POST", "/create_order", json=self.build_payload(request)))

    def create_bulk(self, requests: List[DispatchRequest]) -> Tuple[Dict[str, str], Optional[str]]:
        """
        One bulk call for up to 500 orders.

        Returns:
            tuple: (tracking id per invoice where the response lists them, shared tracking id or None)
        """
        if len(requests) > self.max_bulk_size:
            raise AdapterError(f"Max {self.max_bulk_size} orders per bulk request")
        body = _check_status(self.request(
            "POST", "/create_order/bulk-order",
            json={"data": [self.build_payload(r) for r in requests]},
        ))

        items = body if isinstance(body, list) else (body.get("data") if isinstance(body, dict) else None)
        per_order = {}
        for item in items if isinstance(items, list) else []:
            tracking = extract_tracking_id(item)
            if isinstance(item, dict) and item.get("invoice") and tracking:
                per_order[str(item["invoice"])] = tracking
        shared = extract_tracking_id(body) if isinstance(body, dict) else None
        return per_order, shared

    def track(self, tracking_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/status_by_cid/{tracking_id}")

    def track_by_invoice(self, invoice: str) -> Dict[str, Any]:
        return self.request("GET", f"/status_by_invoice/{invoice}")

    def balance(self) -> Dict[str, Any]:
        return self.request("GET", "/get_balance")
