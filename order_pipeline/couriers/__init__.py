"""
Courier adapters, one per delivery provider type.

`get_adapter()` is the only entry point the dispatch path needs: it decrypts the
provider's stored credentials and returns the adapter for its provider type.
"""

import httpx

from ..domain import Provider
from ..errors import AdapterError
from .base import CourierAdapter, extract_tracking_id
from .credentials import with_decrypted_credentials
from .deliverytiger import DeliveryTigerAdapter
from .ecourier import ECourierAdapter
from .paperfly import PaperflyAdapter
from .pathao import PathaoAdapter
from .redx import RedXAdapter
from .steadfast import SteadfastAdapter

ADAPTERS = {
    cls.provider_type: cls
    for cls in (PathaoAdapter, SteadfastAdapter, RedXAdapter, PaperflyAdapter, ECourierAdapter, DeliveryTigerAdapter)
}


class UnsupportedProviderError(AdapterError):
    pass


def get_adapter(provider: Provider, client: httpx.Client = None) -> CourierAdapter:
    """
    Builds the adapter for a provider.

    Raises:
        UnsupportedProviderError: Unknown provider_type.
        CredentialError: Stored credentials cannot be decrypted.
    """
    adapter_cls = ADAPTERS.get(provider.provider_type)
    if adapter_cls is None:
        raise UnsupportedProviderError("Unsupported provider type")
    return adapter_cls(with_decrypted_credentials(provider), client=client)


__all__ = ("ADAPTERS", "CourierAdapter", "UnsupportedProviderError", "extract_tracking_id", "get_adapter")
