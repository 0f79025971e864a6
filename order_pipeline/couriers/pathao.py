"""
pathao.py — Pathao Adapter (OAuth password-grant token)

Pathao addresses are ids in a city → zone → area hierarchy, so the adapter
resolves the order's district and thana names against the hierarchy before
creating the order. Access tokens are cached per provider and refreshed a
minute before they expire.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from ..domain import DispatchRequest, sanitize
from ..errors import AdapterError
from .base import CourierAdapter, clamp, join_address, match_by_name, money
from .tokens import token_cache_for

log = logging.getLogger(__name__)

API = "/aladdin/api/v1"
DEFAULT_TOKEN_LIFETIME = 3600
DELIVERY_TYPE_NORMAL = 48
ITEM_TYPE_PARCEL = 2


def _rows(body: Any) -> List[dict]:
    """Pathao wraps lists as {"data": {"data": [...]}}."""
    data = body.get("data") if isinstance(body, dict) else None
    if isinstance(data, dict):
        data = data.get("data")
    return data if isinstance(data, list) else []


class PathaoAdapter(CourierAdapter):
    provider_type = "pathao"
    sandbox_url = "https://hermes-api.pathao.com"
    live_url = "https://api-hermes.pathao.com"
    location_kinds = ("cities", "zones", "areas")

    def __init__(self, provider, client=None):
        super().__init__(provider, client)
        self.tokens = token_cache_for(provider.id)
        self._cities = None
        self._zones = {}

    # --- Auth ---

    def issue_token(self) -> Tuple[str, float]:
        """Password-grant token request. Returns (token, lifetime seconds)."""
        preset = self.config.get("access_token")
        if preset:
            return preset, DEFAULT_TOKEN_LIFETIME

        log.info(f"{self.log_prefix} Fordere neues Access-Token an.")
        response = self.client.post(f"{API}/issue-token", json={
            "client_id": self.provider.api_key or self.config.get("client_id"),
            "client_secret": self.provider.api_secret or self.config.get("client_secret"),
            "username": self.config.get("username"),
            "password": self.config.get("password"),
            "grant_type": "password",
        })
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        token = body.get("access_token") or body.get("token")
        if response.is_error or not token:
            raise AdapterError("Pathao authentication failed. Please configure valid credentials.")
        return token, float(body.get("expires_in") or DEFAULT_TOKEN_LIFETIME)

    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens.get(self.issue_token)}"}

    def request(self, method: str, path: str, **kwargs):
        try:
            return super().request(method, path, **kwargs)
        except AdapterError as e:
            if e.status_code != 401:
                raise
        # Token vom Anbieter verworfen: einmal neu holen und wiederholen
        log.warning(f"{self.log_prefix} Token abgelehnt (401), erneuere und wiederhole.")
        self.tokens.invalidate()
        return super().request(method, path, **kwargs)

    # --- Location hierarchy ---

    def cities(self) -> List[dict]:
        if self._cities is None:
            self._cities = _rows(self.request("GET", f"{API}/countries/1/city-list"))
        return self._cities

    def zones(self, city_id) -> List[dict]:
        if city_id not in self._zones:
            self._zones[city_id] = _rows(self.request("GET", f"{API}/cities/{city_id}/zone-list"))
        return self._zones[city_id]

    def areas(self, zone_id) -> List[dict]:
        return _rows(self.request("GET", f"{API}/zones/{zone_id}/area-list"))

    def location_level(self, kind: str, parent) -> List[dict]:
        if kind == "cities":
            return self.cities()
        if kind == "zones":
            return self.zones(int(parent))
        return self.areas(int(parent))

    def stores(self) -> List[dict]:
        return _rows(self.request("GET", f"{API}/stores"))

    def resolve_location(self, district: str, thana: str) -> Tuple[Any, Any]:
        city_id = match_by_name(self.cities(), "city_name", "city_id", district)
        if city_id is None:
            raise AdapterError(f"Pathao city not found: {district}")
        zone_id = match_by_name(self.zones(city_id), "zone_name", "zone_id", thana)
        if zone_id is None:
            raise AdapterError(f"Pathao zone not found: {thana}")
        return city_id, zone_id

    # --- Orders ---

    def build_payload(self, request: DispatchRequest, city_id=None, zone_id=None) -> Dict[str, Any]:
        return {
            "store_id": self.config.get("store_id"),
            "merchant_order_id": sanitize(request.order_number, 50),
            "recipient_name": sanitize(request.recipient_name, 100),
            "recipient_phone": sanitize(request.recipient_phone, 20),
            "recipient_address": sanitize(join_address(request.address_line, request.thana, request.district), 300),
            "recipient_city": city_id,
            "recipient_zone": zone_id,
            "delivery_type": self.config.get("delivery_type", DELIVERY_TYPE_NORMAL),
            "item_type": self.config.get("item_type", ITEM_TYPE_PARCEL),
            "item_quantity": clamp(request.quantity, 1, 100),
            "item_weight": float(clamp(request.weight_kg, Decimal("0.1"), Decimal("50"))),
            "amount_to_collect": float(money(request.cash_to_collect)),
            "special_instruction": sanitize(request.notes, 500),
        }

    def create(self, request: DispatchRequest) -> Dict[str, Any]:
        city_id, zone_id = self.resolve_location(request.district, request.thana)
        return self.request("POST", f"{API}/orders", json=self.build_payload(request, city_id, zone_id))

    def price(self, request: DispatchRequest) -> Dict[str, Any]:
        city_id, zone_id = self.resolve_location(request.district, request.thana)
        return self.request("POST", f"{API}/merchant/price-plan", json={
            "store_id": self.config.get("store_id"),
            "item_type": self.config.get("item_type", ITEM_TYPE_PARCEL),
            "delivery_type": self.config.get("delivery_type", DELIVERY_TYPE_NORMAL),
            "item_weight": float(clamp(request.weight_kg, Decimal("0.1"), Decimal("50"))),
            "recipient_city": city_id,
            "recipient_zone": zone_id,
        })

    def track(self, tracking_id: str) -> Dict[str, Any]:
        return self.request("GET", f"{API}/orders/{tracking_id}")
