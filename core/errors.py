# core/errors.py


class StorefrontError(Exception):
    """Base class for reconciliation errors."""


class AddRejected(StorefrontError):
    """An add was refused; the collection is unchanged."""

    def __init__(self, product_id: str, stock: int, message: str = ""):
        super().__init__(message or f"cannot add {product_id}")
        self.product_id = product_id
        self.stock = stock


class OutOfStock(AddRejected):
    pass


class AtCapacity(AddRejected):
    pass


class OracleUnreachable(StorefrontError):
    """Stock lookup failed; callers must treat this as no information."""


class RemoteWriteFailed(StorefrontError):
    pass


class RemoteReadFailed(StorefrontError):
    pass
