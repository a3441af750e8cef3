"""Storage ports used by the inventory services.

The services never touch ORM models directly. They talk to these interfaces,
which have a Tortoise implementation for production and an in-memory one for
tests. Both must honour the same contract for ``InventoryRepository.apply``:

* the read-check-write of a record is one atomic unit,
* no counter ever ends up negative (``InsufficientStockError`` otherwise),
* every ``StockChange`` produces one ledger row whose previous/new values are
  the ones actually stored, written in the same unit as the record change,
* on any error nothing is written.
"""
from abc import ABC, abstractmethod
from typing import List, Optional
import uuid

from stock_ledger.models.inventory import ChangeType, InventoryType
from stock_ledger.schemas.dish import DishInstanceView, DishTemplateView, OptionView
from stock_ledger.schemas.inventory import (
    InventoryRecordOut,
    LedgerQuery,
    MutationOutcome,
    NewInventoryRecord,
    StockLedgerEntryOut,
    StockMutation,
)
from stock_ledger.schemas.order import OrderSnapshot


class InventoryRepository(ABC):

    @abstractmethod
    async def get(self, store_id: uuid.UUID, inventory_id: uuid.UUID) -> Optional[InventoryRecordOut]:
        ...

    @abstractmethod
    async def get_by_item(
        self,
        store_id: uuid.UUID,
        item_ref: uuid.UUID,
        inventory_type: InventoryType = InventoryType.DISH_TEMPLATE,
    ) -> Optional[InventoryRecordOut]:
        ...

    @abstractmethod
    async def list(
        self,
        store_id: uuid.UUID,
        inventory_type: Optional[InventoryType] = None,
        only_available: bool = False,
        search: str = "",
        tracked_only: bool = False,
    ) -> List[InventoryRecordOut]:
        """Records of a store sorted by item name."""

    @abstractmethod
    async def create(
        self, data: NewInventoryRecord, reason: str, admin_id: Optional[str] = None
    ) -> MutationOutcome:
        """Insert a record plus `initial_stock` ledger rows for its counters.

        Raises DuplicateInventoryError when the key is taken.
        """

    @abstractmethod
    async def apply(
        self, store_id: uuid.UUID, inventory_id: uuid.UUID, mutation: StockMutation
    ) -> MutationOutcome:
        """Atomically apply settings and counter changes, appending ledger rows.

        Raises InventoryNotFoundError, InsufficientStockError or
        AvailableStockExceedsTotalError.
        """


class StockLedgerRepository(ABC):

    @abstractmethod
    async def find(
        self,
        query: LedgerQuery,
        offset: int = 0,
        limit: Optional[int] = None,
        newest_first: bool = True,
    ) -> List[StockLedgerEntryOut]:
        ...

    @abstractmethod
    async def count(self, query: LedgerQuery) -> int:
        ...

    @abstractmethod
    async def find_for_order(
        self, order_id: uuid.UUID, change_type: Optional[ChangeType] = None
    ) -> List[StockLedgerEntryOut]:
        """Rows linked to an order, oldest first."""


class MenuCatalog(ABC):
    """Read-only access to the menu collaborator (dish instances, options, templates)."""

    @abstractmethod
    async def get_dish_instance(self, instance_id: uuid.UUID) -> Optional[DishInstanceView]:
        ...

    @abstractmethod
    async def get_option(self, option_id: uuid.UUID) -> Optional[OptionView]:
        ...

    @abstractmethod
    async def list_store_dish_templates(self, store_id: uuid.UUID) -> Optional[List[DishTemplateView]]:
        """Templates of the store's brand, or None when the store does not exist."""


class OrderReader(ABC):

    @abstractmethod
    async def get_order(self, order_id: uuid.UUID) -> Optional[OrderSnapshot]:
        ...
