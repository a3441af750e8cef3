import pytest
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from stock_ledger.core.errors import InsufficientStockError
from stock_ledger.models.inventory import ChangeType
from stock_ledger.models.order import OrderStatus
from stock_ledger.schemas.dish import DishInstanceView, OptionCategorySelection, OptionSelection, OptionView
from stock_ledger.schemas.order import OrderSnapshot
from stock_ledger.services.order_inventory import can_process_inventory_for_delivery_order, parse_template_id
from stock_ledger.testing.memory_repositories import InMemoryBackend

STORE = uuid4()


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def resolver(backend):
    return backend.resolver


def stock(backend, template_id, name, **fields):
    """Tracked record for a dish template, available stock enabled by default."""
    fields.setdefault("is_inventory_tracked", True)
    fields.setdefault("enable_available_stock", True)
    fields.setdefault("total_stock", fields.get("available_stock", 0))
    return backend.inventory.add(store_id=STORE, item_ref=template_id, item_name=name, **fields)


def instance(backend, template_id, *sides, name="Burger"):
    selections = [OptionSelection(option_id=str(uuid4()), name="Side", referenced_template_id=t) for t in sides]
    view = DishInstanceView(
        id=uuid4(),
        template_id=template_id,
        name=name,
        options=[OptionCategorySelection(option_category_name="Sides", selections=selections)],
    )
    backend.catalog.instances[view.id] = view
    return view


def order(*lines, status=OrderStatus.PAID, platform="ubereats", extra_items=()):
    items = [
        {"item_type": "dish", "dish_instance_id": str(view.id), "item_name": view.name, "quantity": quantity}
        for view, quantity in lines
    ]
    items.extend(extra_items)
    return OrderSnapshot(
        id=uuid4(),
        store_id=STORE,
        status=status,
        order_code="20250119-007",
        platform_info={"platform": platform, "platform_order_id": "UE-1001"} if platform else None,
        items=items,
    )


class TestDemandValidation:

    @pytest.mark.asyncio
    async def test_single_line_within_stock(self, backend, resolver):
        burger = uuid4()
        stock(backend, burger, "Burger", available_stock=10)

        result = await resolver.validate_delivery_order_inventory(order((instance(backend, burger), 2)))

        assert result.success
        assert result.inventory_map == {burger: 2}
        assert result.issues == []

    @pytest.mark.asyncio
    async def test_option_demand_scales_with_line_quantity(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        stock(backend, burger, "Burger", available_stock=10)
        stock(backend, fries, "Fries", available_stock=10)

        result = await resolver.validate_delivery_order_inventory(order((instance(backend, burger, fries), 2)))

        assert result.success
        assert result.inventory_map == {burger: 2, fries: 2}

    @pytest.mark.asyncio
    async def test_demand_accumulates_across_lines(self, backend, resolver):
        burger, wrap, fries = uuid4(), uuid4(), uuid4()

        result = await resolver.validate_delivery_order_inventory(order(
            (instance(backend, burger, fries), 1),
            (instance(backend, wrap, fries, name="Wrap"), 2),
        ))

        assert result.inventory_map[fries] == 3
        assert result.inventory_map[burger] == 1
        assert result.inventory_map[wrap] == 2

    @pytest.mark.asyncio
    async def test_insufficient_available_stock(self, backend, resolver):
        burger = uuid4()
        stock(backend, burger, "Burger", available_stock=3)

        result = await resolver.validate_delivery_order_inventory(order((instance(backend, burger), 5)))

        assert not result.success
        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue.template_id == burger
        assert issue.item_name == "Burger"
        assert issue.issue == "insufficient_stock"
        assert (issue.required, issue.available) == (5, 3)

    @pytest.mark.asyncio
    async def test_sold_out_template(self, backend, resolver):
        burger = uuid4()
        stock(backend, burger, "Burger", available_stock=10, is_sold_out=True)

        result = await resolver.validate_delivery_order_inventory(order((instance(backend, burger), 1)))

        assert not result.success
        issue = result.issues[0]
        assert issue.issue == "sold_out"
        assert (issue.required, issue.available) == (1, 0)

    @pytest.mark.asyncio
    async def test_all_templates_are_checked(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        stock(backend, burger, "Burger", available_stock=1)
        stock(backend, fries, "Fries", available_stock=10, is_sold_out=True)

        result = await resolver.validate_delivery_order_inventory(order((instance(backend, burger, fries), 2)))

        assert [i.issue for i in result.issues] == ["insufficient_stock", "sold_out"]

    @pytest.mark.asyncio
    async def test_unconstrained_records_never_raise_issues(self, backend, resolver):
        untracked, no_available, missing = uuid4(), uuid4(), uuid4()
        stock(backend, untracked, "Soup", is_inventory_tracked=False)
        stock(backend, no_available, "Salad", enable_available_stock=False, total_stock=0)

        result = await resolver.validate_delivery_order_inventory(order(
            (instance(backend, untracked), 50),
            (instance(backend, no_available), 50),
            (instance(backend, missing), 50),
        ))

        assert result.success
        assert result.inventory_map == {untracked: 50, no_available: 50, missing: 50}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reference", [None, "", "not-a-uuid", "1234"])
    async def test_malformed_instance_reference_is_skipped(self, backend, resolver, reference):
        burger = uuid4()
        snapshot = order(
            (instance(backend, burger), 1),
            extra_items=[{"item_type": "dish", "dish_instance_id": reference, "item_name": "Ghost", "quantity": 3}],
        )

        result = await resolver.validate_delivery_order_inventory(snapshot)

        assert result.success
        assert result.inventory_map == {burger: 1}
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_unknown_or_broken_instance_is_skipped(self, backend, resolver):
        burger = uuid4()
        broken = instance(backend, uuid4())
        backend.catalog.broken_ids.add(broken.id)
        snapshot = order(
            (instance(backend, burger), 1),
            extra_items=[{"item_type": "dish", "dish_instance_id": str(uuid4()), "quantity": 1}],
        )
        snapshot = snapshot.model_copy(update={"items": snapshot.items + order((broken, 4)).items})

        result = await resolver.validate_delivery_order_inventory(snapshot)

        assert result.inventory_map == {burger: 1}
        assert len(result.warnings) == 2

    @pytest.mark.asyncio
    async def test_option_resolved_through_catalog(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        option = OptionView(id=uuid4(), name="Add fries", ref_dish_template_id=fries)
        backend.catalog.options[option.id] = option
        view = DishInstanceView(id=uuid4(), template_id=burger, options=[OptionCategorySelection(
            selections=[OptionSelection(option_id=str(option.id), name="Add fries")]
        )])
        backend.catalog.instances[view.id] = view

        result = await resolver.validate_delivery_order_inventory(order((view, 3)))

        assert result.inventory_map == {burger: 3, fries: 3}

    @pytest.mark.asyncio
    async def test_failed_option_lookup_keeps_the_line(self, backend, resolver):
        burger = uuid4()
        broken_option = uuid4()
        backend.catalog.broken_ids.add(broken_option)
        view = DishInstanceView(id=uuid4(), template_id=burger, options=[OptionCategorySelection(selections=[
            OptionSelection(option_id=str(broken_option), name="Sauce"),
            OptionSelection(option_id="garbage", name="Cheese"),
            OptionSelection(option_id=str(uuid4()), name="Deleted option"),
        ])])
        backend.catalog.instances[view.id] = view

        result = await resolver.validate_delivery_order_inventory(order((view, 2)))

        assert result.success
        assert result.inventory_map == {burger: 2}
        assert len(result.warnings) == 3

    @pytest.mark.asyncio
    async def test_repeated_selection_counts_once_per_line(self, backend, resolver):
        burger, fries = uuid4(), uuid4()

        result = await resolver.validate_delivery_order_inventory(
            order((instance(backend, burger, fries, fries), 2))
        )

        assert result.inventory_map[fries] == 2

    @pytest.mark.asyncio
    async def test_bundle_lines_carry_no_demand(self, backend, resolver):
        snapshot = order(extra_items=[{"item_type": "bundle", "bundle_instance_id": str(uuid4()), "quantity": 2}])

        result = await resolver.validate_delivery_order_inventory(snapshot)

        assert result.success
        assert result.inventory_map == {}


class TestEligibility:

    def test_paid_delivery_order_with_dish(self, backend):
        assert can_process_inventory_for_delivery_order(order((instance(backend, uuid4()), 1)))

    def test_requires_platform_metadata(self, backend):
        assert not can_process_inventory_for_delivery_order(order((instance(backend, uuid4()), 1), platform=None))

    def test_requires_paid_status(self, backend):
        view = instance(backend, uuid4())
        for status in (OrderStatus.PLACED, OrderStatus.CANCELLED, OrderStatus.DELIVERED):
            assert not can_process_inventory_for_delivery_order(order((view, 1), status=status))

    def test_requires_a_dish_line(self):
        bundle_only = order(extra_items=[{"item_type": "bundle", "quantity": 1}])
        assert not can_process_inventory_for_delivery_order(bundle_only)

    def test_parse_template_id(self):
        value = uuid4()
        assert parse_template_id(value) == value
        assert parse_template_id(str(value)) == value
        assert parse_template_id("nope") is None
        assert parse_template_id(None) is None


class TestReduction:

    @pytest.mark.asyncio
    async def test_paid_order_reduces_every_template(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        burger_record = stock(backend, burger, "Burger", available_stock=10)
        fries_record = stock(backend, fries, "Fries", available_stock=10)
        snapshot = order((instance(backend, burger, fries), 2))

        validation, reduction = await resolver.process_paid_delivery_order(snapshot)

        assert validation.success
        assert reduction.success
        assert (reduction.processed, reduction.skipped) == (2, 0)
        assert backend.inventory.records[burger_record.id].available_stock == 8
        assert backend.inventory.records[fries_record.id].total_stock == 8
        rows = await backend.ledger.find_for_order(snapshot.id, ChangeType.ORDER)
        assert len(rows) == 4
        assert all(r.reason == "Delivery order consumption: UBEREATS #UE-1001" for r in rows)

    @pytest.mark.asyncio
    async def test_failed_validation_reduces_nothing(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        stock(backend, burger, "Burger", available_stock=10)
        stock(backend, fries, "Fries", available_stock=1)

        validation, reduction = await resolver.process_paid_delivery_order(
            order((instance(backend, burger, fries), 2))
        )

        assert not validation.success
        assert reduction is None
        assert backend.ledger.entries == []

    @pytest.mark.asyncio
    async def test_second_template_fails(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        stock(backend, burger, "Burger", available_stock=10)
        # Available stock disabled: passes validation, then runs out on total stock
        stock(backend, fries, "Fries", enable_available_stock=False, total_stock=0)
        snapshot = order((instance(backend, burger, fries), 2))

        reduction = await resolver.reduce_delivery_order_inventory(snapshot, {burger: 2, fries: 2})

        assert not reduction.success
        assert (reduction.processed, reduction.skipped) == (1, 0)
        assert len(reduction.errors) == 1
        assert reduction.errors[0].template_id == str(fries)
        assert reduction.errors[0].quantity == 2
        assert reduction.errors[0].item_name == "Fries"
        assert "Insufficient stock" in reduction.errors[0].error

    @pytest.mark.asyncio
    async def test_storage_error_is_collected(self, backend, resolver):
        burger, fries = uuid4(), uuid4()
        stock(backend, burger, "Burger", available_stock=10)
        stock(backend, fries, "Fries", available_stock=10)
        snapshot = order((instance(backend, burger, fries), 1))

        with patch.object(
            backend.stock_service, "reduce_stock", AsyncMock(side_effect=[None, RuntimeError("connection reset")])
        ):
            reduction = await resolver.reduce_delivery_order_inventory(snapshot, {burger: 1, fries: 1})

        assert not reduction.success
        assert reduction.processed == 1
        assert reduction.errors[0].template_id == str(fries)
        assert reduction.errors[0].error == "connection reset"

    @pytest.mark.asyncio
    async def test_skips_what_cannot_be_reduced(self, backend, resolver):
        sold, untracked, tracked = uuid4(), uuid4(), uuid4()
        stock(backend, sold, "Shake", available_stock=5, is_sold_out=True)
        stock(backend, untracked, "Water", is_inventory_tracked=False)
        stock(backend, tracked, "Burger", available_stock=5)

        reduction = await resolver.reduce_delivery_order_inventory(order(), {
            "not-a-uuid": 1,
            uuid4(): 1,
            sold: 1,
            untracked: 1,
            tracked: 0,
        })

        assert reduction.success
        assert (reduction.processed, reduction.skipped) == (0, 5)
        assert backend.ledger.entries == []

    @pytest.mark.asyncio
    async def test_empty_map(self, resolver):
        reduction = await resolver.reduce_delivery_order_inventory(order(), {})

        assert reduction.success
        assert reduction.processed == 0


    @pytest.mark.asyncio
    async def test_reason_falls_back_to_order_code(self, backend, resolver):
        burger = uuid4()
        stock(backend, burger, "Burger", available_stock=10)
        view = instance(backend, burger)
        snapshot = OrderSnapshot(
            id=uuid4(),
            store_id=STORE,
            status=OrderStatus.PAID,
            order_code="20250119-008",
            platform_info={"platform": "doordash"},
            items=[{"item_type": "dish", "dish_instance_id": str(view.id), "quantity": 1}],
        )

        await resolver.reduce_delivery_order_inventory(snapshot, {burger: 1})

        rows = await backend.ledger.find_for_order(snapshot.id, ChangeType.ORDER)
        assert {r.reason for r in rows} == {"Delivery order consumption: DOORDASH #20250119-008"}


class TestConsumption:

    @pytest.mark.asyncio
    async def test_paid_order_is_reduced(self, backend, resolver):
        burger = uuid4()
        record = stock(backend, burger, "Burger", available_stock=10)

        consumption = await resolver.consume_paid_delivery_order(order((instance(backend, burger), 2)))

        assert consumption.outcome == "reduced"
        assert consumption.reduction.processed == 1
        assert backend.inventory.records[record.id].total_stock == 8

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [OrderStatus.CANCELLED, OrderStatus.PLACED])
    async def test_ineligible_order_keeps_its_stock(self, backend, resolver, status):
        burger = uuid4()
        record = stock(backend, burger, "Burger", available_stock=10)

        consumption = await resolver.consume_paid_delivery_order(
            order((instance(backend, burger), 2), status=status)
        )

        assert consumption.outcome == "not_eligible"
        assert consumption.reduction is None
        assert backend.inventory.records[record.id].total_stock == 10
        assert backend.ledger.entries == []

    @pytest.mark.asyncio
    async def test_order_without_platform_is_not_eligible(self, backend, resolver):
        burger = uuid4()
        stock(backend, burger, "Burger", available_stock=10)

        consumption = await resolver.consume_paid_delivery_order(order((instance(backend, burger), 1), platform=None))

        assert consumption.outcome == "not_eligible"

    @pytest.mark.asyncio
    async def test_second_consumption_reduces_nothing(self, backend, resolver):
        burger = uuid4()
        record = stock(backend, burger, "Burger", available_stock=10)
        snapshot = order((instance(backend, burger), 2))

        first = await resolver.consume_paid_delivery_order(snapshot)
        second = await resolver.consume_paid_delivery_order(snapshot)

        assert (first.outcome, second.outcome) == ("reduced", "already_consumed")
        assert backend.inventory.records[record.id].total_stock == 8

    @pytest.mark.asyncio
    async def test_shortage_is_unavailable(self, backend, resolver):
        burger = uuid4()
        stock(backend, burger, "Burger", available_stock=1)

        consumption = await resolver.consume_paid_delivery_order(order((instance(backend, burger), 2)))

        assert consumption.outcome == "unavailable"
        assert [i.item_name for i in consumption.validation.issues] == ["Burger"]
        assert backend.ledger.entries == []


class TestSingleItem:

    @pytest.mark.asyncio
    async def test_reduce_reason_codes(self, backend, resolver):
        tracked, untracked, sold, empty = uuid4(), uuid4(), uuid4(), uuid4()
        stock(backend, tracked, "Burger", available_stock=5)
        stock(backend, untracked, "Water", is_inventory_tracked=False)
        stock(backend, sold, "Shake", available_stock=5, is_sold_out=True)
        stock(backend, empty, "Fries", available_stock=0)
        order_id = uuid4()

        async def reduce(template_id, quantity=2):
            return await resolver.reduce_single_item_for_delivery(STORE, template_id, quantity, order_id, "deliveroo")

        reduced = await reduce(tracked)
        assert (reduced.success, reduced.reason, reduced.reduced_quantity) == (True, "reduced", 2)
        assert (await reduce("bad id")).reason == "invalid_template_id"
        assert (await reduce(uuid4())).reason == "no_inventory_record"
        not_tracked = await reduce(untracked)
        assert (not_tracked.success, not_tracked.reason) == (True, "not_tracked")
        assert (await reduce(sold)).reason == "sold_out"
        failed = await reduce(empty)
        assert (failed.success, failed.reason) == (False, "reduction_error")
        assert failed.error

        rows = await backend.ledger.find_for_order(order_id)
        assert {r.reason for r in rows} == {"Delivery order consumption: DELIVEROO order"}

    @pytest.mark.asyncio
    async def test_quantity_rejected_as_reduction_error(self, backend, resolver):
        tracked = uuid4()
        stock(backend, tracked, "Burger", available_stock=5)

        result = await resolver.reduce_single_item_for_delivery(STORE, tracked, 0, None, "ubereats")

        assert result.reason == "reduction_error"
        assert backend.ledger.entries == []

    @pytest.mark.asyncio
    async def test_check_reason_codes(self, backend, resolver):
        tracked, untracked, sold = uuid4(), uuid4(), uuid4()
        stock(backend, tracked, "Burger", available_stock=3)
        stock(backend, untracked, "Water", is_inventory_tracked=False)
        stock(backend, sold, "Shake", available_stock=5, is_sold_out=True)

        assert (await resolver.check_single_item_inventory(STORE, tracked, 3)).reason == "sufficient"
        short = await resolver.check_single_item_inventory(STORE, tracked, 4)
        assert (short.available, short.reason, short.available_stock) == (False, "insufficient_stock", 3)
        assert (await resolver.check_single_item_inventory(STORE, sold, 1)).reason == "sold_out"
        assert (await resolver.check_single_item_inventory(STORE, untracked, 99)).reason == "not_tracked"
        assert (await resolver.check_single_item_inventory(STORE, uuid4(), 1)).reason == "no_inventory_record"
        assert (await resolver.check_single_item_inventory(STORE, None, 1)).reason == "no_template_mapping"

    @pytest.mark.asyncio
    async def test_check_fails_open(self, backend, resolver):
        with patch.object(
            backend.stock_service, "get_inventory_item_by_dish_template", AsyncMock(side_effect=RuntimeError("timeout"))
        ):
            result = await resolver.check_single_item_inventory(STORE, uuid4(), 1)

        assert result.available
        assert result.reason == "check_error"


class TestRestoration:

    @pytest.mark.asyncio
    async def test_cancelled_order_gets_stock_back(self, backend, resolver):
        burger = uuid4()
        record = stock(backend, burger, "Burger", available_stock=10)
        snapshot = order((instance(backend, burger), 2))
        await resolver.process_paid_delivery_order(snapshot)

        cancelled = snapshot.model_copy(update={"status": OrderStatus.CANCELLED})
        result = await resolver.restore_delivery_order_inventory(cancelled)
        again = await resolver.restore_delivery_order_inventory(cancelled)

        assert result.success
        assert result.restored == 1
        assert result.message == "Inventory restored."
        assert again.message == "Inventory already restored."
        assert backend.inventory.records[record.id].available_stock == 10

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, backend, resolver):
        result = await resolver.restore_delivery_order_inventory(order(status=OrderStatus.PAID))

        assert not result.success
        assert "cancelled" in result.error
        assert result.message == "Inventory restoration failed; the order cancellation is not affected."

    @pytest.mark.asyncio
    async def test_storage_failure_is_reported(self, backend, resolver):
        with patch.object(backend.ledger, "find_for_order", AsyncMock(side_effect=RuntimeError("db down"))):
            result = await resolver.restore_delivery_order_inventory(order(status=OrderStatus.CANCELLED))

        assert not result.success
        assert result.error == "db down"


class TestRaceBetweenValidationAndReduction:

    @pytest.mark.asyncio
    async def test_shortage_found_during_reduction_is_an_error_outcome(self, backend, resolver):
        burger = uuid4()
        record = stock(backend, burger, "Burger", available_stock=2)
        snapshot = order((instance(backend, burger), 2))

        validation = await resolver.validate_delivery_order_inventory(snapshot)
        # Another order takes the last units in between
        await backend.stock_service.reduce_stock(STORE, record.id, 1)
        reduction = await resolver.reduce_delivery_order_inventory(snapshot, validation.inventory_map)

        assert validation.success
        assert not reduction.success
        assert backend.inventory.records[record.id].available_stock == 1

    @pytest.mark.asyncio
    async def test_insufficient_error_type(self, backend):
        record = stock(backend, uuid4(), "Burger", available_stock=1)

        with pytest.raises(InsufficientStockError):
            await backend.stock_service.reduce_stock(STORE, record.id, 2)
