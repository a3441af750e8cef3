from enum import Enum
from tortoise import fields, models


class InventoryType(str, Enum):
    DISH_TEMPLATE = "DishTemplate"
    BUNDLE = "Bundle"  # voucher-template backed bundles


class StockType(str, Enum):
    TOTAL = "total_stock"
    AVAILABLE = "available_stock"


class ChangeType(str, Enum):
    ORDER = "order"
    RESTOCK = "restock"
    DAMAGE = "damage"
    SYSTEM_ADJUSTMENT = "system_adjustment"
    CANCELLATION_RESTORE = "cancellation_restore"
    MANUAL_ADD = "manual_add"
    MANUAL_SUBTRACT = "manual_subtract"
    INITIAL_STOCK = "initial_stock"


class InventoryRecord(models.Model):
    """Stock counters and control flags for one item of one store."""
    id = fields.UUIDField(primary_key=True)
    store = fields.ForeignKeyField("models.Store", related_name="inventory_records")
    inventory_type = fields.CharEnumField(InventoryType, max_length=32, default=InventoryType.DISH_TEMPLATE)
    # Template (dish or voucher) this record tracks. Not a FK: bundles point at voucher templates.
    item_ref = fields.UUIDField()
    item_name = fields.CharField(max_length=255)

    total_stock = fields.IntField(default=0)
    available_stock = fields.IntField(default=0) # Daily limit style sub-count
    min_stock_alert = fields.IntField(default=0)
    target_stock_level = fields.IntField(null=True)

    is_inventory_tracked = fields.BooleanField(default=False)
    enable_available_stock = fields.BooleanField(default=False)
    is_sold_out = fields.BooleanField(default=False)
    auto_replenish = fields.BooleanField(default=False)

    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "inventory_records"
        unique_together = (("store", "item_ref", "inventory_type"),)
        indexes = [
            ("store_id",),
            ("store_id", "is_inventory_tracked"),
        ]


class StockLog(models.Model):
    """
    Append-only ledger row. One row per counter touched by a mutation.
    The auto-increment id gives the causal order of an item's trail.
    """
    id = fields.BigIntField(primary_key=True)
    store = fields.ForeignKeyField("models.Store", related_name="stock_logs")
    inventory_type = fields.CharEnumField(InventoryType, max_length=32)
    item_ref = fields.UUIDField()
    item_name = fields.CharField(max_length=255)

    stock_type = fields.CharEnumField(StockType, max_length=32)
    change_type = fields.CharEnumField(ChangeType, max_length=32)
    previous_stock = fields.IntField()
    new_stock = fields.IntField()
    change_amount = fields.IntField() # new_stock - previous_stock
    reason = fields.CharField(max_length=500, default="")

    order_id = fields.UUIDField(null=True)
    admin_id = fields.CharField(max_length=64, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "stock_logs"
        indexes = [
            ("store_id", "item_ref"),
            ("store_id", "change_type", "created_at"),
            ("store_id", "created_at"),
            ("order_id", "change_type"),
        ]
