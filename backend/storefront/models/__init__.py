from .catalog import Product, ProductVariant
from .accounts import Client, Admin, SessionToken
from .orders import Order
from .security import RequestEvent
from .uploads import UploadJob

__all__ = [
    'Product', 'ProductVariant',
    'Client', 'Admin', 'SessionToken',
    'Order',
    'RequestEvent',
    'UploadJob',
]
