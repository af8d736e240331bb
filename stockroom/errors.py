"""Error taxonomy shared by services and the HTTP layer.

Every error carries the HTTP status the API answers with; the exception
handler in ``stockroom.main`` renders them as ``{"detail": message}``.
"""


class StockError(Exception):
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StockError):
    """Malformed or missing input."""

    status_code = 422


class NotFoundError(StockError):
    status_code = 404


class DuplicateNameError(StockError):
    status_code = 409


class DuplicateBarcodeError(StockError):
    status_code = 409


class InsufficientStockError(StockError):
    status_code = 400

    def __init__(self, product_name: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for '{product_name}': requested {requested}, "
            f"at most {available} unit(s) can be removed"
        )
        self.requested = requested
        self.available = available


class DependencyError(StockError):
    """Deletion blocked by records that still reference the target."""

    status_code = 409


class ConcurrentUpdateError(StockError):
    """The product changed between read and write; the caller may retry."""

    status_code = 409


class TransportError(StockError):
    """Storage or network failure, not a domain rule violation."""

    status_code = 503


class EmailDeliveryError(TransportError):
    status_code = 500


class LedgerInvariantError(StockError):
    status_code = 500
