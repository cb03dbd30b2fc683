from .tenancy import Branch
from .auth import User
from .security import SecurityEvent
from .inventory import Product, StockMovement, MOVEMENT_TYPES
from .billing import Invoice, InvoiceItem, Payment, PAYMENT_METHODS, PAYMENT_STATUSES, PAYMENT_TYPES
from .documents import DocumentSequence

__all__ = [
    'Branch',
    'User', 'SecurityEvent',
    'Product', 'StockMovement', 'MOVEMENT_TYPES',
    'Invoice', 'InvoiceItem', 'Payment',
    'PAYMENT_METHODS', 'PAYMENT_STATUSES', 'PAYMENT_TYPES',
    'DocumentSequence',
]
