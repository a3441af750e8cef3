import asyncio
import pytest
from contextlib import asynccontextmanager
from uuid import uuid4

from stock_ledger.core.db import close_db, init_db
from stock_ledger.core.errors import InsufficientStockError
from stock_ledger.models.inventory import ChangeType, StockLog
from stock_ledger.models.order import Brand, Store
from stock_ledger.schemas.inventory import InventoryCreateRequest
from stock_ledger.services.factory import build_stats_service, build_stock_service


@asynccontextmanager
async def sqlite_store():
    """Fresh in-memory database with one store; yields the store id."""
    await init_db("sqlite://:memory:")
    try:
        brand = await Brand.create(name="Demo Burgers")
        store = await Store.create(brand=brand, name="Main Street")
        yield store.id
    finally:
        await close_db()


async def create(service, store_id, name, **fields):
    outcome = await service.create_inventory(
        store_id, InventoryCreateRequest(item_ref=uuid4(), item_name=name, **fields)
    )
    return outcome.record


class TestTortoiseInventoryRepository:

    @pytest.mark.asyncio
    async def test_mutations_keep_counters_and_ledger_in_step(self):
        async with sqlite_store() as store_id:
            service = build_stock_service()
            fries = await create(
                service, store_id, "Fries",
                initial_total_stock=5, initial_available_stock=3, enable_available_stock=True,
            )

            reduced = await service.reduce_stock(store_id, fries.id, 2, reason="Walk-in sale")
            assert (reduced.record.total_stock, reduced.record.available_stock) == (3, 1)
            assert [(e.previous_stock, e.new_stock) for e in reduced.entries] == [(5, 3), (3, 1)]

            with pytest.raises(InsufficientStockError):
                await service.reduce_stock(store_id, fries.id, 4)
            unchanged = await service.get_inventory_item(store_id, fries.id)
            assert (unchanged.total_stock, unchanged.available_stock) == (3, 1)

            added = await service.add_stock(store_id, fries.id, 10)
            assert added.record.total_stock == 13
            assert added.entries[0].change_type == ChangeType.RESTOCK

            capped = await service.set_available_stock(store_id, fries.id, 4)
            assert capped.record.available_stock == 4

            sold_out = await service.toggle_sold_out(store_id, fries.id, True)
            assert sold_out.record.is_sold_out
            assert sold_out.entries[0].change_amount == 0

            report = await build_stats_service().verify_ledger_consistency(store_id, fries.id)
            assert report.consistent
            assert report.entries_checked == 7
            assert (report.total_stock.expected, report.available_stock.expected) == (13, 4)

    @pytest.mark.asyncio
    async def test_concurrent_reductions_never_oversell(self):
        async with sqlite_store() as store_id:
            service = build_stock_service()
            shake = await create(service, store_id, "Shake", initial_total_stock=1)

            results = await asyncio.gather(
                *(service.reduce_stock(store_id, shake.id, 1) for _ in range(3)),
                return_exceptions=True,
            )

            failures = [r for r in results if isinstance(r, Exception)]
            assert len(failures) == 2
            assert all(isinstance(f, InsufficientStockError) for f in failures)
            record = await service.get_inventory_item(store_id, shake.id)
            assert record.total_stock == 0
            assert await StockLog.filter(item_ref=shake.item_ref, change_type=ChangeType.ORDER).count() == 1

            report = await build_stats_service().verify_ledger_consistency(store_id, shake.id)
            assert report.consistent
