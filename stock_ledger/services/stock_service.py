import logging
from collections import OrderedDict
from typing import List, Optional
from uuid import UUID

from stock_ledger.core.errors import (
    InvalidOrderStateError,
    InvalidStockRequestError,
    InvalidTemplateIdError,
    InventoryError,
    InventoryNotFoundError,
    StoreNotFoundError,
    AvailableStockExceedsTotalError,
)
from stock_ledger.models.inventory import ChangeType, InventoryType, StockType
from stock_ledger.models.order import OrderStatus
from stock_ledger.repositories.base import InventoryRepository, MenuCatalog, StockLedgerRepository
from stock_ledger.schemas.inventory import (
    BulkInventoryItem,
    BulkItemResult,
    BulkUpdateResult,
    InitializeResult,
    InventoryCreateRequest,
    InventoryRecordOut,
    InventoryUpdateRequest,
    MutationOutcome,
    NewInventoryRecord,
    RestoreSummary,
    StockChange,
    StockMutation,
)
from stock_ledger.schemas.order import OrderSnapshot

log = logging.getLogger(__name__)

SETTING_FIELDS = (
    "min_stock_alert",
    "target_stock_level",
    "is_inventory_tracked",
    "enable_available_stock",
    "is_sold_out",
    "auto_replenish",
)


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidStockRequestError(f"Quantity must be a positive integer, got {quantity!r}.")
    return quantity


def _absolute(stock_type: StockType, previous: int, value: int) -> StockChange:
    change_type = ChangeType.MANUAL_ADD if value > previous else ChangeType.MANUAL_SUBTRACT
    return StockChange(stock_type=stock_type, value=value, change_type=change_type)


class StockMutationService:
    """
    The only writer of inventory records and stock ledger rows.

    Each public mutation becomes a single ``InventoryRepository.apply`` call,
    so a guard failure leaves both the record and the ledger untouched.
    """

    def __init__(self, inventory: InventoryRepository, ledger: StockLedgerRepository, catalog: MenuCatalog):
        self.inventory = inventory
        self.ledger = ledger
        self.catalog = catalog

    # ----------- Reads -----------

    async def get_store_inventory(
        self,
        store_id: UUID,
        inventory_type: Optional[InventoryType] = None,
        only_available: bool = False,
        search: str = "",
    ) -> List[InventoryRecordOut]:
        return await self.inventory.list(
            store_id, inventory_type=inventory_type, only_available=only_available, search=search
        )

    async def get_inventory_item(self, store_id: UUID, inventory_id: UUID) -> InventoryRecordOut:
        record = await self.inventory.get(store_id, inventory_id)
        if record is None:
            raise InventoryNotFoundError("Inventory record not found for this store.")
        return record

    async def get_inventory_item_by_dish_template(
        self, store_id: UUID, template_id: UUID
    ) -> Optional[InventoryRecordOut]:
        """Resolver lookup path: a missing record is not an error here."""
        return await self.inventory.get_by_item(store_id, template_id, InventoryType.DISH_TEMPLATE)

    # ----------- Record creation -----------

    async def create_inventory(
        self, store_id: UUID, request: InventoryCreateRequest, admin_id: Optional[str] = None
    ) -> MutationOutcome:
        item_name = request.item_name
        if not item_name:
            if request.inventory_type != InventoryType.DISH_TEMPLATE:
                raise InvalidStockRequestError("item_name is required for bundle inventory.")
            templates = await self.catalog.list_store_dish_templates(store_id)
            if templates is None:
                raise StoreNotFoundError("Store not found.")
            template = next((t for t in templates if t.id == request.item_ref), None)
            if template is None:
                raise InvalidTemplateIdError(f"Dish template {request.item_ref} does not belong to this store's brand.")
            item_name = template.name

        available = request.initial_available_stock if request.enable_available_stock else 0
        if available > request.initial_total_stock:
            raise AvailableStockExceedsTotalError(
                f"Available stock ({available}) cannot exceed total stock ({request.initial_total_stock})."
            )

        data = NewInventoryRecord(
            store_id=store_id,
            inventory_type=request.inventory_type,
            item_ref=request.item_ref,
            item_name=item_name,
            total_stock=request.initial_total_stock,
            available_stock=available,
            min_stock_alert=request.min_stock_alert,
            target_stock_level=request.target_stock_level,
            is_inventory_tracked=request.is_inventory_tracked,
            enable_available_stock=request.enable_available_stock,
            is_sold_out=request.is_sold_out,
            auto_replenish=request.auto_replenish,
        )
        outcome = await self.inventory.create(data, reason="Initial stock", admin_id=admin_id)
        log.info(f"Created inventory record {outcome.record.id} for '{item_name}' in store {store_id}")
        return outcome

    # ----------- Quantity mutations -----------

    async def reduce_stock(
        self,
        store_id: UUID,
        inventory_id: UUID,
        quantity: int,
        reason: str = "",
        change_type: ChangeType = ChangeType.ORDER,
        order_id: Optional[UUID] = None,
        admin_id: Optional[str] = None,
    ) -> MutationOutcome:
        """
        Decrement total stock, and available stock too when it is enabled.
        Fails with InsufficientStockError if either counter would go negative.
        """
        _require_quantity(quantity)
        record = await self.get_inventory_item(store_id, inventory_id)
        if not record.is_inventory_tracked:
            log.debug(f"Skipping reduction of untracked item '{record.item_name}'")
            return MutationOutcome(record=record, applied=False)

        changes = [StockChange(stock_type=StockType.TOTAL, delta=-quantity)]
        if record.enable_available_stock:
            changes.append(StockChange(stock_type=StockType.AVAILABLE, delta=-quantity))

        return await self.inventory.apply(store_id, inventory_id, StockMutation(
            changes=changes,
            change_type=change_type,
            reason=reason or "Order consumption",
            order_id=order_id,
            admin_id=admin_id,
        ))

    async def add_stock(
        self,
        store_id: UUID,
        inventory_id: UUID,
        quantity: int,
        reason: str = "",
        stock_type: StockType = StockType.TOTAL,
        change_type: ChangeType = ChangeType.RESTOCK,
        admin_id: Optional[str] = None,
    ) -> MutationOutcome:
        _require_quantity(quantity)
        record = await self.get_inventory_item(store_id, inventory_id)
        if not record.is_inventory_tracked:
            return MutationOutcome(record=record, applied=False)
        if stock_type == StockType.AVAILABLE and not record.enable_available_stock:
            raise InvalidStockRequestError(f"Available stock is not enabled for '{record.item_name}'.")

        return await self.inventory.apply(store_id, inventory_id, StockMutation(
            changes=[StockChange(stock_type=stock_type, delta=quantity)],
            change_type=change_type,
            reason=reason or "Stock added",
            admin_id=admin_id,
            enforce_available_cap=stock_type == StockType.AVAILABLE,
        ))

    async def process_damage(
        self,
        store_id: UUID,
        inventory_id: UUID,
        quantity: int,
        reason: str,
        stock_type: StockType = StockType.TOTAL,
        admin_id: Optional[str] = None,
    ) -> MutationOutcome:
        """Write off damaged or expired units. A reason is mandatory."""
        if not reason or not reason.strip():
            raise InvalidStockRequestError("A reason is required when recording damage.")
        _require_quantity(quantity)
        record = await self.get_inventory_item(store_id, inventory_id)
        if not record.is_inventory_tracked:
            return MutationOutcome(record=record, applied=False)
        if stock_type == StockType.AVAILABLE and not record.enable_available_stock:
            raise InvalidStockRequestError(f"Available stock is not enabled for '{record.item_name}'.")

        return await self.inventory.apply(store_id, inventory_id, StockMutation(
            changes=[StockChange(stock_type=stock_type, delta=-quantity)],
            change_type=ChangeType.DAMAGE,
            reason=reason.strip(),
            admin_id=admin_id,
        ))

    # ----------- Absolute admin sets -----------

    async def set_available_stock(
        self,
        store_id: UUID,
        inventory_id: UUID,
        available_stock: int,
        reason: str = "",
        admin_id: Optional[str] = None,
    ) -> MutationOutcome:
        if isinstance(available_stock, bool) or not isinstance(available_stock, int) or available_stock < 0:
            raise InvalidStockRequestError("Available stock must be a non-negative integer.")
        record = await self.get_inventory_item(store_id, inventory_id)
        if not record.enable_available_stock:
            raise InvalidStockRequestError(f"Available stock is not enabled for '{record.item_name}'.")

        return await self.inventory.apply(store_id, inventory_id, StockMutation(
            changes=[StockChange(stock_type=StockType.AVAILABLE, value=available_stock)],
            change_type=ChangeType.SYSTEM_ADJUSTMENT,
            reason=reason or "Available stock set",
            admin_id=admin_id,
            enforce_available_cap=True,
        ))

    async def toggle_sold_out(
        self, store_id: UUID, inventory_id: UUID, is_sold_out: bool, admin_id: Optional[str] = None
    ) -> MutationOutcome:
        record = await self.get_inventory_item(store_id, inventory_id)
        stock_type = StockType.AVAILABLE if record.enable_available_stock else StockType.TOTAL
        # Zero-amount row: audit trail only, replay is unaffected
        return await self.inventory.apply(store_id, inventory_id, StockMutation(
            changes=[StockChange(stock_type=stock_type, delta=0)],
            settings={"is_sold_out": is_sold_out},
            change_type=ChangeType.SYSTEM_ADJUSTMENT,
            reason="Marked as sold out" if is_sold_out else "Sold-out flag cleared",
            admin_id=admin_id,
        ))

    async def update_inventory(
        self,
        store_id: UUID,
        inventory_id: UUID,
        update: InventoryUpdateRequest,
        admin_id: Optional[str] = None,
    ) -> MutationOutcome:
        """
        Absolute update of counters and settings.

        ``stock`` sets total stock when ``stock_type`` is ``total_stock`` or
        ``both``. Available stock takes ``available_stock`` when given, otherwise
        ``stock``, and is only written while available stock is enabled.
        Turning ``enable_available_stock`` off zeroes available stock.
        """
        record = await self.get_inventory_item(store_id, inventory_id)
        settings = {
            name: getattr(update, name) for name in SETTING_FIELDS if getattr(update, name) is not None
        }
        enable_available = settings.get("enable_available_stock", record.enable_available_stock)

        changes = []
        if update.stock is not None and update.stock_type in ("both", StockType.TOTAL.value):
            changes.append(_absolute(StockType.TOTAL, record.total_stock, update.stock))
        if update.stock_type in ("both", StockType.AVAILABLE.value):
            target = update.available_stock if update.available_stock is not None else update.stock
            if target is not None and enable_available:
                changes.append(_absolute(StockType.AVAILABLE, record.available_stock, target))
        if not enable_available and record.available_stock > 0:
            changes.append(StockChange(
                stock_type=StockType.AVAILABLE, value=0, change_type=ChangeType.MANUAL_SUBTRACT
            ))

        if not changes and not settings:
            return MutationOutcome(record=record, applied=False)

        return await self.inventory.apply(store_id, inventory_id, StockMutation(
            changes=changes,
            settings=settings,
            change_type=ChangeType.SYSTEM_ADJUSTMENT,
            reason=update.reason or "Manual stock adjustment",
            admin_id=admin_id,
            enforce_available_cap=True,
        ))

    # ----------- Order compensation -----------

    async def restore_inventory_for_cancelled_order(self, order: OrderSnapshot) -> RestoreSummary:
        """
        Give back everything the order consumed, one transaction per record.

        Records that already carry a restore row for this order are skipped, so
        re-running after a partial failure only finishes the remaining records.
        """
        if order.status != OrderStatus.CANCELLED:
            raise InvalidOrderStateError(
                f"Only cancelled orders can have their inventory restored (order is {order.status.value})."
            )

        summary = RestoreSummary(order_id=order.id)
        consumed = await self.ledger.find_for_order(order.id, ChangeType.ORDER)
        if not consumed:
            return summary

        done = {
            (e.store_id, e.item_ref, e.inventory_type)
            for e in await self.ledger.find_for_order(order.id, ChangeType.CANCELLATION_RESTORE)
        }
        grouped = OrderedDict()
        for entry in consumed:
            grouped.setdefault((entry.store_id, entry.item_ref, entry.inventory_type), []).append(entry)

        pending = [key for key in grouped if key not in done]
        if not pending:
            summary.already_restored = True
            return summary

        reason = f"Order cancellation restore: #{order.order_code or order.id}"
        for key in pending:
            store_id, item_ref, inventory_type = key
            record = await self.inventory.get_by_item(store_id, item_ref, inventory_type)
            if record is None or not record.is_inventory_tracked:
                summary.skipped += 1
                continue
            changes = [StockChange(stock_type=e.stock_type, delta=-e.change_amount) for e in grouped[key]]
            await self.inventory.apply(store_id, record.id, StockMutation(
                changes=changes,
                change_type=ChangeType.CANCELLATION_RESTORE,
                reason=reason,
                order_id=order.id,
            ))
            summary.restored += 1

        log.info(f"Restored {summary.restored} item(s) for cancelled order {order.id} ({summary.skipped} skipped)")
        return summary

    # ----------- Bulk operations -----------

    async def initialize_dish_inventory(self, store_id: UUID, admin_id: Optional[str] = None) -> InitializeResult:
        """Create an untracked zero record for every dish template of the store's brand."""
        templates = await self.catalog.list_store_dish_templates(store_id)
        if templates is None:
            raise StoreNotFoundError("Store not found.")

        result = InitializeResult(total=len(templates))
        for template in templates:
            try:
                existing = await self.inventory.get_by_item(store_id, template.id, InventoryType.DISH_TEMPLATE)
                if existing is None:
                    await self.inventory.create(
                        NewInventoryRecord(store_id=store_id, item_ref=template.id, item_name=template.name),
                        reason="Dish inventory initialisation",
                        admin_id=admin_id,
                    )
                    result.created += 1
                elif existing.item_name != template.name:
                    await self.inventory.apply(store_id, existing.id, StockMutation(
                        settings={"item_name": template.name},
                        change_type=ChangeType.SYSTEM_ADJUSTMENT,
                        admin_id=admin_id,
                    ))
                    result.updated += 1
                else:
                    result.skipped += 1
            except Exception as e:
                log.exception(f"Failed to initialise inventory for template {template.id}")
                result.errors.append({
                    "template_id": str(template.id),
                    "template_name": template.name,
                    "error": str(e),
                })
        return result

    async def bulk_update_inventory(
        self, store_id: UUID, items: List[BulkInventoryItem], admin_id: Optional[str] = None
    ) -> BulkUpdateResult:
        """Apply each item independently; one failure never stops the rest."""
        if not items:
            raise InvalidStockRequestError("Bulk update needs at least one item.")

        result = BulkUpdateResult()
        for index, item in enumerate(items):
            try:
                record = None
                if item.inventory_id:
                    record = await self.inventory.get(store_id, item.inventory_id)
                if record is None and item.item_ref:
                    record = await self.inventory.get_by_item(store_id, item.item_ref, item.inventory_type)

                if record is not None:
                    if not item.reason:
                        item = item.model_copy(update={"reason": "Bulk inventory update"})
                    await self.update_inventory(store_id, record.id, item, admin_id)
                    result.updated += 1
                    result.results.append(BulkItemResult(
                        index=index, inventory_id=record.id, success=True, action="updated"
                    ))
                    continue

                if not item.item_ref:
                    raise InventoryNotFoundError("No matching inventory record and no item_ref to create one from.")
                outcome = await self.create_inventory(store_id, InventoryCreateRequest(
                    inventory_type=item.inventory_type,
                    item_ref=item.item_ref,
                    item_name=item.item_name,
                    initial_total_stock=item.stock or 0,
                    initial_available_stock=item.available_stock or 0,
                    min_stock_alert=item.min_stock_alert or 0,
                    target_stock_level=item.target_stock_level,
                    is_inventory_tracked=True if item.is_inventory_tracked is None else item.is_inventory_tracked,
                    enable_available_stock=bool(item.enable_available_stock),
                    is_sold_out=bool(item.is_sold_out),
                    auto_replenish=bool(item.auto_replenish),
                ), admin_id)
                result.created += 1
                result.results.append(BulkItemResult(
                    index=index, inventory_id=outcome.record.id, success=True, action="created"
                ))
            except Exception as e:
                if not isinstance(e, InventoryError):
                    log.exception(f"Bulk inventory item {index} failed")
                result.failed += 1
                result.results.append(BulkItemResult(
                    index=index, inventory_id=item.inventory_id, success=False, error=str(e)
                ))
        return result
