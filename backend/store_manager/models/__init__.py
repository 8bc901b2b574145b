from .tenancy import Store, SessionToken, DocumentSequence
from .customers import Customer
from .catalog import Product
from .orders import Order, OrderItem
from .invoices import Invoice
from .ledger import Payment, Transaction
from .notifications import Notification

__all__ = [
    'Store', 'SessionToken', 'DocumentSequence',
    'Customer',
    'Product',
    'Order', 'OrderItem',
    'Invoice',
    'Payment', 'Transaction',
    'Notification',
]
