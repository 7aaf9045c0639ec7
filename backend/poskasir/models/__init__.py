from .auth import User
from .catalog import Category, Product, ProductOption, StockHistory
from .orders import PaymentMethod, CancellationReason, Order, OrderItem, OrderItemOption
from .activity import ActivityLog
from .settings import Setting

__all__ = [
    'User',
    'Category', 'Product', 'ProductOption', 'StockHistory',
    'PaymentMethod', 'CancellationReason', 'Order', 'OrderItem', 'OrderItemOption',
    'ActivityLog',
    'Setting',
]
