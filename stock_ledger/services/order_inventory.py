"""
Inventory handling for delivery-platform orders.

Delivery orders arrive from third parties, so their references can be stale or
malformed. Resolution is fail-open for broken references (the line or option is
skipped with a warning) and fail-closed only for a genuine shortage.
"""
import logging
from typing import Dict, List, Optional, Tuple, Union
from uuid import UUID

from stock_ledger.models.inventory import ChangeType
from stock_ledger.models.order import OrderStatus
from stock_ledger.repositories.base import MenuCatalog
from stock_ledger.schemas.dish import OptionSelection
from stock_ledger.schemas.fulfillment import (
    InventoryIssue,
    InventoryReductionResult,
    InventoryValidationResult,
    OrderConsumption,
    ReductionErrorItem,
    RestorationResult,
    SingleItemCheck,
    SingleItemReduction,
)
from stock_ledger.schemas.order import DishLineItem, OrderSnapshot
from stock_ledger.services.stock_service import StockMutationService

log = logging.getLogger(__name__)


def parse_template_id(value) -> Optional[UUID]:
    """A well-formed id or None; never raises."""
    if isinstance(value, UUID):
        return value
    if not value:
        return None
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


def can_process_inventory_for_delivery_order(order: OrderSnapshot) -> bool:
    """True for a paid delivery-platform order with at least one dish line."""
    if not order.platform_info or not order.platform_info.platform:
        return False
    if not order.dish_items:
        return False
    return order.status == OrderStatus.PAID


class OrderInventoryResolver:

    def __init__(self, stock_service: StockMutationService, catalog: MenuCatalog):
        self.stock_service = stock_service
        self.catalog = catalog

    def _skip(self, result: InventoryValidationResult, message: str):
        log.warning(message)
        result.warnings.append(message)

    async def _referenced_template(
        self, selection: OptionSelection, line: DishLineItem, result: InventoryValidationResult
    ) -> Optional[UUID]:
        if selection.referenced_template_id:
            return selection.referenced_template_id
        if not selection.option_id:
            return None

        option_id = parse_template_id(selection.option_id)
        if option_id is None:
            self._skip(result, f"Line '{line.item_name}': invalid option id {selection.option_id!r} ({selection.name})")
            return None
        try:
            option = await self.catalog.get_option(option_id)
        except Exception as e:
            self._skip(result, f"Line '{line.item_name}': option {option_id} lookup failed: {e}")
            return None
        if option is None:
            self._skip(result, f"Line '{line.item_name}': option {option_id} not found")
            return None
        return option.ref_dish_template_id

    async def _add_line_demand(
        self, line: DishLineItem, demand: Dict[UUID, int], result: InventoryValidationResult
    ):
        instance_id = parse_template_id(line.dish_instance_id)
        if instance_id is None:
            self._skip(result, f"Line '{line.item_name}': invalid dish instance reference {line.dish_instance_id!r}")
            return
        try:
            instance = await self.catalog.get_dish_instance(instance_id)
        except Exception as e:
            self._skip(result, f"Line '{line.item_name}': dish instance {instance_id} lookup failed: {e}")
            return
        if instance is None:
            self._skip(result, f"Line '{line.item_name}': dish instance {instance_id} not found")
            return

        demand[instance.template_id] = demand.get(instance.template_id, 0) + line.quantity

        # One referenced unit per line unit, however many selections point at it
        referenced: List[UUID] = []
        for category in instance.options:
            for selection in category.selections:
                template_id = await self._referenced_template(selection, line, result)
                if template_id and template_id not in referenced:
                    referenced.append(template_id)
        for template_id in referenced:
            demand[template_id] = demand.get(template_id, 0) + line.quantity

    async def validate_delivery_order_inventory(self, order: OrderSnapshot) -> InventoryValidationResult:
        """
        Build the demand map of an order and check it against stock.

        Every template is checked even after an issue is found. Templates with
        no record, or whose record is untracked, carry no constraint but stay
        in the demand map.
        """
        result = InventoryValidationResult(success=True)
        dish_items = order.dish_items
        if not dish_items:
            return result

        demand = result.inventory_map
        for line in dish_items:
            await self._add_line_demand(line, demand, result)

        for template_id, required in demand.items():
            record = await self.stock_service.get_inventory_item_by_dish_template(order.store_id, template_id)
            if record is None or not record.is_inventory_tracked:
                continue
            if record.is_sold_out:
                result.issues.append(InventoryIssue(
                    template_id=template_id, item_name=record.item_name,
                    issue="sold_out", required=required, available=0,
                ))
                continue
            if record.enable_available_stock and record.available_stock < required:
                result.issues.append(InventoryIssue(
                    template_id=template_id, item_name=record.item_name,
                    issue="insufficient_stock", required=required, available=record.available_stock,
                ))

        result.success = not result.issues
        if result.issues:
            log.info(f"Order {order.id}: inventory validation found {len(result.issues)} issue(s)")
        return result

    async def reduce_delivery_order_inventory(
        self, order: OrderSnapshot, inventory_map: Dict[Union[UUID, str], int]
    ) -> InventoryReductionResult:
        """
        Reduce stock for every template of a validated demand map.

        Errors are collected per template and nothing already reduced is rolled
        back; ``success`` is false as soon as one reduction failed.
        """
        result = InventoryReductionResult()
        if not inventory_map:
            return result

        platform = order.platform_info.platform.upper() if order.platform_info else ""
        reference = order.platform_order_id or order.order_code or order.id
        reason = f"Delivery order consumption: {platform} #{reference}"

        for raw_id, quantity in inventory_map.items():
            item_name = None
            try:
                template_id = parse_template_id(raw_id)
                if template_id is None or quantity <= 0:
                    result.skipped += 1
                    continue
                record = await self.stock_service.get_inventory_item_by_dish_template(order.store_id, template_id)
                if record is None or record.is_sold_out or not record.is_inventory_tracked:
                    result.skipped += 1
                    continue
                item_name = record.item_name

                await self.stock_service.reduce_stock(
                    order.store_id, record.id, quantity, reason=reason, order_id=order.id
                )
                result.processed += 1
            except Exception as e:
                log.error(f"Order {order.id}: reducing template {raw_id} by {quantity} failed: {e}")
                result.errors.append(ReductionErrorItem(
                    template_id=str(raw_id), item_name=item_name, quantity=quantity, error=str(e)
                ))
                result.success = False

        log.info(
            f"Order {order.id}: {result.processed} reduced, {result.skipped} skipped, {len(result.errors)} failed"
        )
        return result

    async def process_paid_delivery_order(
        self, order: OrderSnapshot
    ) -> Tuple[InventoryValidationResult, Optional[InventoryReductionResult]]:
        """Validate, then reduce only if validation passed."""
        validation = await self.validate_delivery_order_inventory(order)
        if not validation.success:
            return validation, None
        return validation, await self.reduce_delivery_order_inventory(order, validation.inventory_map)

    async def consume_paid_delivery_order(self, order: OrderSnapshot) -> OrderConsumption:
        """
        Eligibility gate, then the once-per-order guard, then validate and reduce.

        An order that already has consumption rows in the ledger is never
        reduced again, so retried calls and redelivered events are harmless.
        """
        if not can_process_inventory_for_delivery_order(order):
            log.info(f"Order {order.id} is not eligible for inventory consumption")
            return OrderConsumption(outcome="not_eligible")
        if await self.stock_service.ledger.find_for_order(order.id, ChangeType.ORDER):
            log.info(f"Order {order.id} already consumed its inventory")
            return OrderConsumption(outcome="already_consumed")

        validation, reduction = await self.process_paid_delivery_order(order)
        if reduction is None:
            return OrderConsumption(outcome="unavailable", validation=validation)
        return OrderConsumption(outcome="reduced", validation=validation, reduction=reduction)

    async def reduce_single_item_for_delivery(
        self,
        store_id: UUID,
        template_id,
        quantity: int,
        order_id: Optional[UUID],
        platform_name: str,
    ) -> SingleItemReduction:
        try:
            parsed = parse_template_id(template_id)
            if parsed is None:
                return SingleItemReduction(success=False, reason="invalid_template_id")

            record = await self.stock_service.get_inventory_item_by_dish_template(store_id, parsed)
            if record is None:
                return SingleItemReduction(success=False, reason="no_inventory_record")
            if not record.is_inventory_tracked:
                return SingleItemReduction(success=True, reason="not_tracked", item_name=record.item_name)
            if record.is_sold_out:
                return SingleItemReduction(success=False, reason="sold_out", item_name=record.item_name)

            await self.stock_service.reduce_stock(
                store_id,
                record.id,
                quantity,
                reason=f"Delivery order consumption: {(platform_name or '').upper()} order",
                order_id=order_id,
            )
            return SingleItemReduction(
                success=True, reason="reduced", item_name=record.item_name, reduced_quantity=quantity
            )
        except Exception as e:
            log.error(f"Single item reduction failed for template {template_id}: {e}")
            return SingleItemReduction(success=False, reason="reduction_error", error=str(e))

    async def check_single_item_inventory(self, store_id: UUID, template_id, required: int) -> SingleItemCheck:
        """Availability of one template. Lookup failures report available."""
        try:
            parsed = parse_template_id(template_id)
            if parsed is None:
                return SingleItemCheck(available=True, reason="no_template_mapping")

            record = await self.stock_service.get_inventory_item_by_dish_template(store_id, parsed)
            if record is None:
                return SingleItemCheck(available=True, reason="no_inventory_record")
            if not record.is_inventory_tracked:
                return SingleItemCheck(available=True, reason="not_tracked")
            if record.is_sold_out:
                return SingleItemCheck(available=False, reason="sold_out", required=required, available_stock=0)
            if record.enable_available_stock and record.available_stock < required:
                return SingleItemCheck(
                    available=False,
                    reason="insufficient_stock",
                    required=required,
                    available_stock=record.available_stock,
                )
            return SingleItemCheck(available=True, reason="sufficient")
        except Exception as e:
            log.warning(f"Inventory check failed for template {template_id}: {e}")
            return SingleItemCheck(available=True, reason="check_error")

    async def restore_delivery_order_inventory(self, order: OrderSnapshot) -> RestorationResult:
        """Never raises: cancellation must go through even if restoring stock fails."""
        try:
            summary = await self.stock_service.restore_inventory_for_cancelled_order(order)
        except Exception as e:
            log.exception(f"Inventory restoration failed for order {order.id}")
            return RestorationResult(
                success=False,
                error=str(e),
                message="Inventory restoration failed; the order cancellation is not affected.",
            )

        message = "Inventory already restored." if summary.already_restored else "Inventory restored."
        return RestorationResult(success=True, message=message, restored=summary.restored)
