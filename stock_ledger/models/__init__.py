# stock_ledger/models/__init__.py
from .inventory import ChangeType, InventoryRecord, InventoryType, StockLog, StockType
from .order import Brand, ItemType, Order, OrderItem, OrderStatus, Store
from .dish import DishInstance, DishTemplate, Option
from .outbox import OutboxEvent
from .processed_event import ProcessedEvent

# Export all models
__all__ = [
    "Brand",
    "ChangeType",
    "DishInstance",
    "DishTemplate",
    "InventoryRecord",
    "InventoryType",
    "ItemType",
    "Option",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OutboxEvent",
    "ProcessedEvent",
    "StockLog",
    "StockType",
    "Store",
]
