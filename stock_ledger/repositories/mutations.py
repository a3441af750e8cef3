from dataclasses import dataclass, field
from typing import Dict, List

from stock_ledger.core.errors import (
    AvailableStockExceedsTotalError,
    InsufficientStockError,
    InvalidStockRequestError,
)
from stock_ledger.models.inventory import ChangeType, StockType
from stock_ledger.schemas.inventory import InventoryRecordOut, StockMutation

SETTABLE_FIELDS = {
    "item_name",
    "min_stock_alert",
    "target_stock_level",
    "is_inventory_tracked",
    "enable_available_stock",
    "is_sold_out",
    "auto_replenish",
}


@dataclass
class CounterStep:
    stock_type: StockType
    previous: int
    new: int
    change_type: ChangeType

    @property
    def amount(self) -> int:
        return self.new - self.previous


@dataclass
class MutationPlan:
    record: InventoryRecordOut
    steps: List[CounterStep] = field(default_factory=list)
    # Per counter: summed delta, or None when an absolute value was set
    net_deltas: Dict[StockType, object] = field(default_factory=dict)

    def final(self, stock_type: StockType) -> int:
        return self.record.stock_of(stock_type)


def plan_mutation(record: InventoryRecordOut, mutation: StockMutation) -> MutationPlan:
    """
    Compute the record a mutation leads to, applying every invariant guard.
    Pure: both storage backends run it while holding the record lock.
    """
    unknown = set(mutation.settings) - SETTABLE_FIELDS
    if unknown:
        raise InvalidStockRequestError(f"Unsupported inventory settings: {sorted(unknown)}")

    updated = record.model_copy(update=mutation.settings)
    counters = {
        StockType.TOTAL: updated.total_stock,
        StockType.AVAILABLE: updated.available_stock,
    }
    plan = MutationPlan(record=updated)

    for change in mutation.changes:
        if (change.delta is None) == (change.value is None):
            raise InvalidStockRequestError("A stock change needs exactly one of delta or value.")
        previous = counters[change.stock_type]
        new = previous + change.delta if change.delta is not None else change.value
        if new < 0:
            required = -change.delta if change.delta is not None else change.value
            raise InsufficientStockError(record.item_name, change.stock_type.value, required, previous)

        counters[change.stock_type] = new
        plan.steps.append(CounterStep(
            change.stock_type, previous, new, change.change_type or mutation.change_type
        ))
        if change.delta is not None and plan.net_deltas.get(change.stock_type, 0) is not None:
            plan.net_deltas[change.stock_type] = plan.net_deltas.get(change.stock_type, 0) + change.delta
        else:
            plan.net_deltas[change.stock_type] = None

    if (
        mutation.enforce_available_cap
        and updated.enable_available_stock
        and counters[StockType.AVAILABLE] > counters[StockType.TOTAL]
    ):
        raise AvailableStockExceedsTotalError(
            f"Available stock ({counters[StockType.AVAILABLE]}) cannot exceed "
            f"total stock ({counters[StockType.TOTAL]}) for '{record.item_name}'."
        )

    plan.record = updated.model_copy(update={
        "total_stock": counters[StockType.TOTAL],
        "available_stock": counters[StockType.AVAILABLE],
    })
    return plan
