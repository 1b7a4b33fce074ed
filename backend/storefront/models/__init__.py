from .catalog import Category, Product, ProductVariant
from .orders import Order, OrderLine, Refund
from .promotions import PromoCode
from .settings import SettingsDocument
from .stock import StockMovement

__all__ = [
    'Category', 'Product', 'ProductVariant',
    'Order', 'OrderLine', 'Refund',
    'PromoCode',
    'SettingsDocument',
    'StockMovement',
]
