from enum import Enum
from tortoise import fields, models
import uuid


class OrderStatus(str, Enum):
    PLACED = "PLACED"
    PAID = "PAID"  # Payment captured (delivery platform orders arrive paid)
    PREPARING = "PREPARING"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ItemType(str, Enum):
    DISH = "dish"
    BUNDLE = "bundle"


class Brand(models.Model):
    id = fields.UUIDField(primary_key=True)
    name = fields.CharField(max_length=255)

    class Meta:
        table = "brands"


class Store(models.Model):
    id = fields.UUIDField(primary_key=True)
    brand = fields.ForeignKeyField("models.Brand", related_name="stores")
    name = fields.CharField(max_length=255)
    is_active = fields.BooleanField(default=True)

    class Meta:
        table = "stores"
        indexes = [
            ("brand_id",),
        ]


class Order(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    store = fields.ForeignKeyField("models.Store", related_name="orders")
    status = fields.CharEnumField(OrderStatus, default=OrderStatus.PLACED)
    order_code = fields.CharField(max_length=32, default="") # Human readable, e.g. 20250119-007
    # Delivery platform metadata (empty for POS / online orders)
    platform = fields.CharField(max_length=32, null=True)
    platform_order_id = fields.CharField(max_length=128, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "orders"
        indexes = [
            ("store_id",),
            ("status",),
            ("platform", "platform_order_id"),
        ]


class OrderItem(models.Model):
    id = fields.UUIDField(primary_key=True, default=uuid.uuid4)
    order = fields.ForeignKeyField("models.Order", related_name="items")
    item_type = fields.CharEnumField(ItemType, default=ItemType.DISH)
    # Raw references as delivered by the caller; they may dangle.
    dish_instance_id = fields.CharField(max_length=64, null=True)
    bundle_instance_id = fields.CharField(max_length=64, null=True)
    item_name = fields.CharField(max_length=255, default="")
    quantity = fields.IntField()

    class Meta:
        table = "order_items"
        indexes = [
            ("order_id",),
        ]
