"""
paperfly.py — Paperfly Adapter (basic auth + static merchant key header)
"""

import base64
from typing import Any, Dict, Optional

from ..domain import DispatchRequest, sanitize
from ..errors import AdapterError
from .base import CourierAdapter, extract_tracking_id, money


class PaperflyAdapter(CourierAdapter):
    provider_type = "paperfly"
    live_url = "https://api.paperfly.com.bd"

    def headers(self) -> Dict[str, str]:
        username = self.provider.api_key or self.config.get("username", "")
        password = self.provider.api_secret or self.config.get("password", "")
        basic = base64.b64encode(f"{username}:{password}".encode()).decode()
        return {"paperflykey": self.config.get("paperfly_key", ""), "Authorization": f"Basic {basic}"}

    def build_payload(self, request: DispatchRequest) -> Dict[str, Any]:
        cfg = self.config
        return {
            "merOrderRef": sanitize(request.order_number, 50),
            "pickMerchantName": sanitize(cfg.get("merchant_name") or "Shop", 100),
            "pickMerchantAddress": sanitize(cfg.get("pickup_address", ""), 300),
            "pickMerchantThana": sanitize(cfg.get("pickup_thana", ""), 50),
            "pickMerchantDistrict": sanitize(cfg.get("pickup_district", ""), 50),
            "pickupMerchantPhone": sanitize(cfg.get("pickup_phone", ""), 20),
            "productSizeWeight": "standard",
            "productBrief": "Package",
            "packagePrice": str(money(request.cash_to_collect)),
            "max_weight": str(request.weight_kg),
            "deliveryOption": cfg.get("delivery_option", "regular"),
            "custname": sanitize(request.recipient_name, 100),
            "custaddress": sanitize(request.address_line, 300),
            "customerThana": sanitize(request.thana, 50),
            "customerDistrict": sanitize(request.district, 50),
            "custPhone": sanitize(request.recipient_phone, 20),
            "custcity": sanitize(request.district or "Dhaka", 50),
        }

    def tracking_id(self, data: Dict[str, Any]) -> Optional[str]:
        success = data.get("success") if isinstance(data, dict) else None
        if isinstance(success, dict) and success.get("tracking_number"):
            return str(success["tracking_number"])
        return extract_tracking_id(data)

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        body = self.request("POST", "/merchant/api/service/new_order.php", json=self.build_payload(request))
        if isinstance(body, dict) and body.get("error"):
            error = body["error"]
            raise AdapterError(str(error.get("message") if isinstance(error, dict) else error))
        return body

    def track(self, tracking_id: str) -> Dict[str, Any]:
        return self.request("POST", "/merchant/api/service/tracking.php",
                            json={"ReferenceNumber": sanitize(tracking_id, 50)})
