from typing import Optional

from fastapi import Header

from stock_ledger.repositories.base import OrderReader
from stock_ledger.services.factory import build_order_reader, build_resolver, build_stats_service, build_stock_service
from stock_ledger.services.order_inventory import OrderInventoryResolver
from stock_ledger.services.stock_service import StockMutationService
from stock_ledger.services.stock_stats import StockStatsService


# Overridden in tests through app.dependency_overrides
def get_stock_service() -> StockMutationService:
    return build_stock_service()


def get_stats_service() -> StockStatsService:
    return build_stats_service()


def get_resolver() -> OrderInventoryResolver:
    return build_resolver()


def get_order_reader() -> OrderReader:
    return build_order_reader()


def get_admin_id(x_admin_id: Optional[str] = Header(None)) -> Optional[str]:
    """Actor id of admin calls. Authentication happens upstream."""
    return x_admin_id
