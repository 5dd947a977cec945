from .auth import Seller, SessionToken
from .customers import Customer
from .catalog import App, Code
from .sales import Sale, SaleItem, SaleCode
from .security import SecurityEvent

__all__ = [
    'Seller', 'SessionToken',
    'Customer',
    'App', 'Code',
    'Sale', 'SaleItem', 'SaleCode',
    'SecurityEvent',
]
