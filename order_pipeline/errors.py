"""
errors.py — Error Taxonomy for Checkout and Dispatch

Checkout errors abort the whole submission and carry an HTTP-equivalent status
code so the API layer can map them without inspecting the message. Courier
errors never leave an adapter: they are converted into failed dispatch results.
"""


class CheckoutError(Exception):
    """Base class for every error that aborts a checkout."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CheckoutError):
    """Malformed input. Nothing has been written."""
    status_code = 400


class BlockedError(CheckoutError):
    """Phone or user is on the active block-list."""
    status_code = 403


class RateLimitError(CheckoutError):
    """Too many orders from one phone; retry after a wait."""
    status_code = 429


class NotFoundError(CheckoutError):
    """A cart line references a product that does not exist."""
    status_code = 400

    def __init__(self, message: str, product_id: str = None):
        super().__init__(message)
        self.product_id = product_id


class UnavailableError(CheckoutError):
    """A cart line references a product that is no longer active."""
    status_code = 400

    def __init__(self, message: str, product_name: str = None):
        super().__init__(message)
        self.product_name = product_name


class OutOfStockError(CheckoutError):
    """Requested quantity exceeds stock on a product that cannot be preordered."""
    status_code = 400

    def __init__(self, product_name: str, available: int):
        super().__init__(f'"{product_name}" has only {available} in stock')
        self.product_name = product_name
        self.available = available


class PersistenceError(CheckoutError):
    """Infrastructure failure during the address/order/line writes."""
    status_code = 500


class AdapterError(Exception):
    """Courier-side failure; carried inside a DispatchResult, never raised to callers."""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class CredentialError(Exception):
    """Provider credentials could not be decrypted."""
