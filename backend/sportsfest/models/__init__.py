from .tenancy import Organization, OrganizationMember, EventYear
from .inventory import Product
from .carts import CartSession
from .orders import Order, OrderItem, OrderPayment
from .invoices import OrderInvoice

__all__ = [
    'Organization', 'OrganizationMember', 'EventYear',
    'Product',
    'CartSession',
    'Order', 'OrderItem', 'OrderPayment',
    'OrderInvoice',
]
