import logging
from datetime import datetime, timezone
from typing import List, Optional
import uuid

from tortoise.exceptions import IntegrityError
from tortoise.expressions import F, Q
from tortoise.transactions import in_transaction

from stock_ledger.core.errors import DuplicateInventoryError, InsufficientStockError, InventoryNotFoundError
from stock_ledger.models.dish import DishInstance, DishTemplate, Option
from stock_ledger.models.inventory import ChangeType, InventoryRecord, InventoryType, StockLog, StockType
from stock_ledger.models.order import ItemType, Order, Store
from stock_ledger.repositories.base import InventoryRepository, MenuCatalog, OrderReader, StockLedgerRepository
from stock_ledger.repositories.mutations import plan_mutation
from stock_ledger.schemas.dish import DishInstanceView, DishTemplateView, OptionView
from stock_ledger.schemas.inventory import (
    InventoryRecordOut,
    LedgerQuery,
    MutationOutcome,
    NewInventoryRecord,
    StockLedgerEntryOut,
    StockMutation,
)
from stock_ledger.schemas.order import OrderSnapshot, PlatformInfo

log = logging.getLogger(__name__)


class TortoiseInventoryRepository(InventoryRepository):

    async def get(self, store_id, inventory_id):
        record = await InventoryRecord.get_or_none(id=inventory_id, store_id=store_id)
        return InventoryRecordOut.model_validate(record) if record else None

    async def get_by_item(self, store_id, item_ref, inventory_type=InventoryType.DISH_TEMPLATE):
        record = await InventoryRecord.get_or_none(
            store_id=store_id, item_ref=item_ref, inventory_type=inventory_type
        )
        return InventoryRecordOut.model_validate(record) if record else None

    async def list(self, store_id, inventory_type=None, only_available=False, search="", tracked_only=False):
        query = InventoryRecord.filter(store_id=store_id)
        if inventory_type:
            query = query.filter(inventory_type=inventory_type)
        if tracked_only:
            query = query.filter(is_inventory_tracked=True)
        if only_available:
            query = query.filter(
                Q(
                    Q(enable_available_stock=True, available_stock__gt=0),
                    Q(enable_available_stock=False, total_stock__gt=0),
                    join_type="OR",
                )
            )
        if search:
            query = query.filter(item_name__icontains=search)
        records = await query.order_by("item_name")
        return [InventoryRecordOut.model_validate(r) for r in records]

    async def create(self, data: NewInventoryRecord, reason: str, admin_id: Optional[str] = None) -> MutationOutcome:
        async with in_transaction() as conn:
            existing = await InventoryRecord.filter(
                store_id=data.store_id, item_ref=data.item_ref, inventory_type=data.inventory_type
            ).using_db(conn).exists()
            if existing:
                raise DuplicateInventoryError(f"'{data.item_name}' already has an inventory record in this store.")
            try:
                record = await InventoryRecord.create(**data.model_dump(), using_db=conn)
            except IntegrityError:
                # Lost a race against a concurrent create of the same key
                raise DuplicateInventoryError(f"'{data.item_name}' already has an inventory record in this store.")

            entries = []
            initial = [(StockType.TOTAL, record.total_stock)]
            if record.available_stock > 0:
                initial.append((StockType.AVAILABLE, record.available_stock))
            for stock_type, value in initial:
                row = await StockLog.create(
                    store_id=record.store_id,
                    inventory_type=record.inventory_type,
                    item_ref=record.item_ref,
                    item_name=record.item_name,
                    stock_type=stock_type,
                    change_type=ChangeType.INITIAL_STOCK,
                    previous_stock=0,
                    new_stock=value,
                    change_amount=value,
                    reason=reason,
                    admin_id=admin_id,
                    using_db=conn,
                )
                entries.append(StockLedgerEntryOut.model_validate(row))

        return MutationOutcome(record=InventoryRecordOut.model_validate(record), entries=entries)

    async def apply(self, store_id: uuid.UUID, inventory_id: uuid.UUID, mutation: StockMutation) -> MutationOutcome:
        async with in_transaction() as conn:
            # Row lock: concurrent mutations of the same record queue up here
            record = await InventoryRecord.filter(
                id=inventory_id, store_id=store_id
            ).select_for_update().using_db(conn).first()
            if record is None:
                raise InventoryNotFoundError("Inventory record not found for this store.")

            snapshot = InventoryRecordOut.model_validate(record)
            plan = plan_mutation(snapshot, mutation)

            updates = dict(mutation.settings)
            guards = {}
            for stock_type, net in plan.net_deltas.items():
                field = stock_type.value
                if net is None:
                    updates[field] = plan.final(stock_type)
                    continue
                updates[field] = F(field) + net
                if net < 0:
                    # Conditional decrement: matches no row if the counter dropped meanwhile
                    guards[f"{field}__gte"] = -net
            if updates:
                updates["updated_at"] = datetime.now(timezone.utc)
                changed = await InventoryRecord.filter(id=record.id, **guards).using_db(conn).update(**updates)
                if changed == 0:
                    fresh = await InventoryRecord.get(id=record.id).using_db(conn)
                    stock_type = next(st for st in plan.net_deltas if f"{st.value}__gte" in guards)
                    raise InsufficientStockError(
                        record.item_name, stock_type.value, guards[f"{stock_type.value}__gte"],
                        getattr(fresh, stock_type.value),
                    )

            stored = await InventoryRecord.get(id=record.id).using_db(conn)
            entries = []
            for step in plan.steps:
                # Anchor the row on the value actually stored
                drift = getattr(stored, step.stock_type.value) - plan.final(step.stock_type)
                if drift:
                    log.warning(f"Ledger drift {drift} on {record.id} ({step.stock_type.value})")
                row = await StockLog.create(
                    store_id=stored.store_id,
                    inventory_type=stored.inventory_type,
                    item_ref=stored.item_ref,
                    item_name=stored.item_name,
                    stock_type=step.stock_type,
                    change_type=step.change_type,
                    previous_stock=step.previous + drift,
                    new_stock=step.new + drift,
                    change_amount=step.amount,
                    reason=mutation.reason,
                    order_id=mutation.order_id,
                    admin_id=mutation.admin_id,
                    using_db=conn,
                )
                entries.append(StockLedgerEntryOut.model_validate(row))

        return MutationOutcome(record=InventoryRecordOut.model_validate(stored), entries=entries)


def _ledger_filters(query: LedgerQuery) -> dict:
    filters = {"store_id": query.store_id}
    if query.item_ref:
        filters["item_ref"] = query.item_ref
    if query.inventory_type:
        filters["inventory_type"] = query.inventory_type
    if query.stock_type:
        filters["stock_type"] = query.stock_type
    if query.change_type:
        filters["change_type"] = query.change_type
    if query.order_id:
        filters["order_id"] = query.order_id
    if query.created_from:
        filters["created_at__gte"] = query.created_from
    if query.created_to:
        filters["created_at__lte"] = query.created_to
    return filters


class TortoiseStockLedgerRepository(StockLedgerRepository):

    async def find(self, query, offset=0, limit=None, newest_first=True):
        ordering = ("-created_at", "-id") if newest_first else ("created_at", "id")
        qs = StockLog.filter(**_ledger_filters(query)).order_by(*ordering).offset(offset)
        if limit is not None:
            qs = qs.limit(limit)
        return [StockLedgerEntryOut.model_validate(row) for row in await qs]

    async def count(self, query):
        return await StockLog.filter(**_ledger_filters(query)).count()

    async def find_for_order(self, order_id, change_type=None):
        qs = StockLog.filter(order_id=order_id)
        if change_type:
            qs = qs.filter(change_type=change_type)
        return [StockLedgerEntryOut.model_validate(row) for row in await qs.order_by("id")]


class TortoiseMenuCatalog(MenuCatalog):

    async def get_dish_instance(self, instance_id):
        instance = await DishInstance.get_or_none(id=instance_id)
        if not instance:
            return None
        return DishInstanceView(
            id=instance.id,
            template_id=instance.template_id,
            name=instance.name,
            options=instance.options or [],
        )

    async def get_option(self, option_id):
        option = await Option.get_or_none(id=option_id)
        if not option:
            return None
        return OptionView(id=option.id, name=option.name, ref_dish_template_id=option.ref_dish_template_id)

    async def list_store_dish_templates(self, store_id) -> Optional[List[DishTemplateView]]:
        store = await Store.get_or_none(id=store_id)
        if not store:
            return None
        templates = await DishTemplate.filter(brand_id=store.brand_id).order_by("name")
        return [DishTemplateView(id=t.id, name=t.name) for t in templates]


class TortoiseOrderReader(OrderReader):

    async def get_order(self, order_id):
        # Pre-fetch the lines to avoid N+1 queries
        order = await Order.get_or_none(id=order_id).prefetch_related("items")
        if not order:
            return None

        items = []
        for item in order.items:
            if item.item_type == ItemType.BUNDLE:
                items.append({
                    "item_type": "bundle",
                    "bundle_instance_id": item.bundle_instance_id,
                    "item_name": item.item_name,
                    "quantity": item.quantity,
                })
            else:
                items.append({
                    "item_type": "dish",
                    "dish_instance_id": item.dish_instance_id,
                    "item_name": item.item_name,
                    "quantity": item.quantity,
                })

        platform_info = None
        if order.platform:
            platform_info = PlatformInfo(platform=order.platform, platform_order_id=order.platform_order_id)

        return OrderSnapshot(
            id=order.id,
            store_id=order.store_id,
            status=order.status,
            order_code=order.order_code,
            platform_info=platform_info,
            items=items,
        )
