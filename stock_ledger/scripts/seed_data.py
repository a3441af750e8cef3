# scripts/seed_data.py
import asyncio
import logging

from stock_ledger.core.db import close_db, init_db
from stock_ledger.models.dish import DishInstance, DishTemplate, Option
from stock_ledger.models.order import Brand, ItemType, Order, OrderItem, OrderStatus, Store
from stock_ledger.schemas.inventory import InventoryUpdateRequest
from stock_ledger.services.factory import build_stock_service

log = logging.getLogger(__name__)


async def seed():
    brand, _ = await Brand.get_or_create(name="Demo Burgers")
    store, _ = await Store.get_or_create(brand=brand, name="Demo Burgers - Main Street")
    log.info(f"Store: {store.id}")

    burger, _ = await DishTemplate.get_or_create(brand=brand, name="Classic Burger", defaults={"base_price": "149.00"})
    fries, _ = await DishTemplate.get_or_create(brand=brand, name="Fries", defaults={"base_price": "49.00"})
    await DishTemplate.get_or_create(brand=brand, name="Cold Drink", defaults={"base_price": "39.00"})

    side, _ = await Option.get_or_create(
        brand=brand, name="Add fries", defaults={"ref_dish_template": fries, "price": "30.00"}
    )
    instance, _ = await DishInstance.get_or_create(
        brand=brand,
        template=burger,
        name="Classic Burger + fries",
        defaults={
            "base_price": "149.00",
            "final_price": "179.00",
            "options": [{
                "option_category_id": None,
                "option_category_name": "Sides",
                "selections": [{"option_id": str(side.id), "name": side.name, "price": 30}],
            }],
        },
    )

    service = build_stock_service()
    # Untracked zero records for every template, then stock the two we sell
    result = await service.initialize_dish_inventory(store.id, admin_id="seed")
    log.info(f"Initialised inventory: {result.model_dump()}")
    for template, total, available in ((burger, 50, 20), (fries, 100, 40)):
        record = await service.get_inventory_item_by_dish_template(store.id, template.id)
        await service.update_inventory(store.id, record.id, _tracked(total, available), admin_id="seed")

    order = await Order.create(
        store=store, status=OrderStatus.PAID, order_code="DEMO-001", platform="ubereats", platform_order_id="UE-1001"
    )
    await OrderItem.create(
        order=order, item_type=ItemType.DISH, dish_instance_id=str(instance.id), item_name=instance.name, quantity=2
    )
    log.info(f"Paid delivery order: {order.id}")


def _tracked(total: int, available: int):
    return InventoryUpdateRequest(
        stock=total,
        available_stock=available,
        is_inventory_tracked=True,
        enable_available_stock=True,
        min_stock_alert=5,
        reason="Seed stock",
    )


async def main():
    await init_db()
    await seed()
    await close_db()

if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    asyncio.run(main())
