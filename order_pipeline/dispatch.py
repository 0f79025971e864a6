"""
dispatch.py — Dispatch Orchestrator

Turns a set of confirmed orders into courier shipments with one selected
provider and records the outcome per order.

Workflow Overview:
1. Repeated order ids are dropped; each order is sent at most once per call.
2. Unknown order ids fail with "Order not found", orders without an address
   fail with "No address found". Neither is sent.
3. Build the provider's adapter (decrypts credentials).
4. Bulk-capable provider and more than one order: one bulk call per chunk.
   Otherwise one call per order, sequentially by default.
5. Every successful result moves its order to `shipped` with the tracking id.
   Failed orders stay untouched so the operator can retry them.

Partial failure is the normal outcome here: nothing in this module raises
because one order (or one batch) failed.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, List

from .couriers import get_adapter
from .domain import DispatchOrder, DispatchRequest, DispatchResult, DispatchSummary, Provider
from .errors import AdapterError, CredentialError
from .repository import OrderStore

log = logging.getLogger(__name__)

NO_ADDRESS = "No address found"
ORDER_NOT_FOUND = "Order not found"


class ProviderNotFoundError(Exception):
    """Unknown or inactive provider id."""


def _summarize(results: List[DispatchResult]) -> DispatchSummary:
    return DispatchSummary(
        results=results,
        success_count=sum(1 for r in results if r.success),
        failure_count=sum(1 for r in results if not r.success),
    )


class DispatchOrchestrator:
    """
    Args:
        store (OrderStore): Provider lookup and order status updates.
        adapter_factory (Callable): Builds an adapter for a provider; `get_adapter` by default.
        max_workers (int): Parallel single-order dispatches. 1 keeps calls sequential, which
            is the safe default given courier rate limits.
    """

    def __init__(self, store: OrderStore, adapter_factory: Callable = get_adapter, max_workers: int = 1):
        self.store = store
        self.adapter_factory = adapter_factory
        self.max_workers = max(1, max_workers)

    def dispatch_order_ids(self, order_ids: List[str], provider_id: str) -> DispatchSummary:
        """
        Loads the orders from the store and dispatches them.

        Every distinct id gets exactly one result, unknown ids included.
        """
        provider = self.store.get_provider(provider_id)
        if provider is None or not provider.is_active:
            raise ProviderNotFoundError(f"Provider not found: {provider_id}")

        order_ids = list(dict.fromkeys(order_ids))
        orders = self.store.load_dispatch_orders(order_ids)
        found = {order.id for order in orders}
        missing = [oid for oid in order_ids if oid not in found]
        if not missing:
            return self.dispatch(orders, provider)

        log.warning(f"[Dispatch: {provider.provider_type}] {len(missing)} unbekannte Order-IDs: {missing}")
        by_id = {r.order_id: r for r in self.dispatch(orders, provider).results}
        for oid in missing:
            by_id[oid] = DispatchResult.failed(oid, "", ORDER_NOT_FOUND)
        return _summarize([by_id[oid] for oid in order_ids])

    def dispatch(self, orders: List[DispatchOrder], provider: Provider) -> DispatchSummary:
        """
        Dispatches every order to one provider.

        Returns:
            DispatchSummary: One result per distinct order id, in input order, plus counts.
        """
        log_prefix = f"[Dispatch: {provider.provider_type}]"

        unique: Dict[str, DispatchOrder] = {}
        for order in orders:
            if order.id in unique:
                log.warning(f"[Order: {order.order_number}] Mehrfach ausgewählt, wird nur einmal versendet.")
                continue
            unique[order.id] = order
        orders = list(unique.values())
        log.info(f"{log_prefix} Starte Versand für {len(orders)} Orders.")

        results: Dict[str, DispatchResult] = {}
        requests: List[DispatchRequest] = []
        for order in orders:
            if order.address is None:
                log.warning(f"[Order: {order.order_number}] Keine Adresse, wird nicht versendet.")
                results[order.id] = DispatchResult.failed(order.id, order.order_number, NO_ADDRESS)
            else:
                requests.append(DispatchRequest.from_order(order))

        if requests:
            for result in self._send(requests, provider, log_prefix):
                results[result.order_id] = result

        ordered = [results[order.id] for order in orders if order.id in results]
        for result in ordered:
            if result.success:
                self._mark_shipped(result)

        summary = _summarize(ordered)
        log.info(f"{log_prefix} {summary.success_count}/{len(ordered)} Orders erfolgreich versendet.")
        return summary

    def _send(self, requests: List[DispatchRequest], provider: Provider, log_prefix: str) -> List[DispatchResult]:
        if not provider.is_active:
            return [DispatchResult.failed(r.order_id, r.order_number, "Provider is inactive") for r in requests]

        try:
            adapter = self.adapter_factory(provider)
        except (AdapterError, CredentialError) as e:
            log.error(f"{log_prefix} Adapter konnte nicht erstellt werden: {e}")
            return [DispatchResult.failed(r.order_id, r.order_number, str(e)) for r in requests]

        try:
            if adapter.supports_bulk and len(requests) > 1:
                size = adapter.max_bulk_size or len(requests)
                results = []
                for start in range(0, len(requests), size):
                    results.extend(adapter.dispatch_bulk(requests[start:start + size]))
                return results

            if self.max_workers > 1 and len(requests) > 1:
                with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                    return list(pool.map(adapter.dispatch, requests))
            return [adapter.dispatch(r) for r in requests]
        finally:
            adapter.close()

    def _mark_shipped(self, result: DispatchResult):
        try:
            self.store.mark_shipped(result.order_id, result.tracking_id)
        except Exception as e:
            # Sendung existiert beim Kurier, nur der Status fehlt: nicht erneut versenden!
            log.critical(f"[Order: {result.order_number}] Versendet (Tracking: {result.tracking_id}), "
                         f"aber Statusupdate fehlgeschlagen: {e}. BENÖTIGT MANUELLE AKTION!")
