"""Wiring of services onto the Tortoise-backed repositories."""
from stock_ledger.repositories.tortoise_repo import (
    TortoiseInventoryRepository,
    TortoiseMenuCatalog,
    TortoiseOrderReader,
    TortoiseStockLedgerRepository,
)
from stock_ledger.services.order_inventory import OrderInventoryResolver
from stock_ledger.services.stock_service import StockMutationService
from stock_ledger.services.stock_stats import StockStatsService


def build_stock_service() -> StockMutationService:
    return StockMutationService(
        TortoiseInventoryRepository(), TortoiseStockLedgerRepository(), TortoiseMenuCatalog()
    )


def build_stats_service() -> StockStatsService:
    return StockStatsService(TortoiseInventoryRepository(), TortoiseStockLedgerRepository())


def build_resolver() -> OrderInventoryResolver:
    return OrderInventoryResolver(build_stock_service(), TortoiseMenuCatalog())


def build_order_reader() -> TortoiseOrderReader:
    return TortoiseOrderReader()
