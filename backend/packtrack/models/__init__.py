from .tenancy import Workspace
from .inventory import Product, StockMovement
from .orders import Order, OrderItem
from .returns import Return
from .evidence import Video, PackingEvidence
from .audit import AuditLog

__all__ = [
    'Workspace',
    'Product', 'StockMovement',
    'Order', 'OrderItem',
    'Return',
    'Video', 'PackingEvidence',
    'AuditLog',
]
