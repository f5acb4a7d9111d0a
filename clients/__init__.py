# clients/__init__.py
from .remote import RemoteCollectionClient
from .stock import StockOracle

__all__ = ["RemoteCollectionClient", "StockOracle"]
