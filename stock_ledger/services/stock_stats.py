"""Read-only reporting over inventory records and the stock ledger."""
import logging
import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Iterable, Optional, Tuple, Union
from uuid import UUID
from zoneinfo import ZoneInfo

from stock_ledger.core.config import (
    CRITICAL_DAYS_THRESHOLD,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    STATS_LOOKBACK_DAYS,
    STATS_SHORT_WINDOW_DAYS,
    STATS_TIMEZONE,
)
from stock_ledger.core.errors import InvalidDateError, InvalidStockRequestError, InventoryNotFoundError
from stock_ledger.models.inventory import ChangeType, InventoryType, StockType
from stock_ledger.repositories.base import InventoryRepository, StockLedgerRepository
from stock_ledger.schemas.inventory import InventoryRecordOut, LedgerQuery, StockLedgerEntryOut
from stock_ledger.schemas.stats import (
    ChangeSummary,
    ChangeSummaryBucket,
    CounterCheck,
    HealthItem,
    HealthReport,
    ItemInventoryStats,
    LedgerConsistencyReport,
    LedgerPage,
    Pagination,
    WindowStats,
)

log = logging.getLogger(__name__)

DateInput = Union[None, str, date, datetime]

PERIODS = ("today", "yesterday", "last_7_days", "last_30_days", "this_month", "last_month")
GROUP_BY_FIELDS = ("change_type", "stock_type", "inventory_type")


def stats_timezone() -> tzinfo:
    if STATS_TIMEZONE.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(STATS_TIMEZONE)


def parse_date_bound(value: DateInput, end_of_day: bool = False) -> Optional[datetime]:
    """
    Turn a filter bound into an aware datetime.

    Plain dates (``date`` objects or ``YYYY-MM-DD`` strings) expand to the start
    or the end of that day in the reporting timezone.
    """
    if value is None or value == "":
        return None
    tz = stats_timezone()

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                parsed = datetime.combine(date.fromisoformat(text), time.max if end_of_day else time.min)
            else:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidDateError(f"Invalid date: {value!r}. Use YYYY-MM-DD or an ISO 8601 datetime.")
    else:
        raise InvalidDateError(f"Invalid date: {value!r}.")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def parse_date_range(start: DateInput, end: DateInput) -> Tuple[Optional[datetime], Optional[datetime]]:
    start_dt = parse_date_bound(start)
    end_dt = parse_date_bound(end, end_of_day=True)
    if start_dt and end_dt and start_dt > end_dt:
        raise InvalidDateError("start_date must not be after end_date.")
    return start_dt, end_dt


def period_range(period: str, now: datetime) -> Tuple[datetime, datetime]:
    """Named reporting period around ``now``, in the reporting timezone."""
    local = now.astimezone(stats_timezone())
    today = local.date()
    tz = local.tzinfo

    def start_of(day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=tz)

    def end_of(day: date) -> datetime:
        return datetime.combine(day, time.max, tzinfo=tz)

    if period == "today":
        return start_of(today), end_of(today)
    if period == "yesterday":
        yesterday = today - timedelta(days=1)
        return start_of(yesterday), end_of(yesterday)
    if period == "last_7_days":
        return start_of(today - timedelta(days=7)), end_of(today)
    if period == "last_30_days":
        return start_of(today - timedelta(days=30)), end_of(today)
    if period == "this_month":
        first = today.replace(day=1)
        next_first = (first + timedelta(days=32)).replace(day=1)
        return start_of(first), end_of(next_first - timedelta(days=1))
    if period == "last_month":
        last_day = today.replace(day=1) - timedelta(days=1)
        return start_of(last_day.replace(day=1)), end_of(last_day)
    raise InvalidDateError(f"Unknown period '{period}'. Expected one of: {', '.join(PERIODS)}.")


def _window_stats(entries: Iterable[StockLedgerEntryOut]) -> WindowStats:
    stats = WindowStats()
    for entry in entries:
        stats.net_change += entry.change_amount
        if entry.change_amount > 0:
            stats.added += entry.change_amount
        elif entry.change_type == ChangeType.ORDER:
            stats.consumed += -entry.change_amount
        elif entry.change_type == ChangeType.DAMAGE:
            stats.damaged += -entry.change_amount
    return stats


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StockStatsService:

    def __init__(
        self,
        inventory: InventoryRepository,
        ledger: StockLedgerRepository,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.inventory = inventory
        self.ledger = ledger
        self.clock = clock

    async def get_inventory_logs(
        self,
        store_id: UUID,
        inventory_id: Optional[UUID] = None,
        inventory_type: Optional[InventoryType] = None,
        stock_type: Optional[StockType] = None,
        change_type: Optional[ChangeType] = None,
        start_date: DateInput = None,
        end_date: DateInput = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> LedgerPage:
        """Ledger rows of a store, newest first, one page at a time."""
        created_from, created_to = parse_date_range(start_date, end_date)
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        query = LedgerQuery(
            store_id=store_id,
            inventory_type=inventory_type,
            stock_type=stock_type,
            change_type=change_type,
            created_from=created_from,
            created_to=created_to,
        )
        if inventory_id:
            record = await self.inventory.get(store_id, inventory_id)
            if record is None:
                raise InventoryNotFoundError("Inventory record not found for this store.")
            query.item_ref = record.item_ref
            query.inventory_type = record.inventory_type

        total = await self.ledger.count(query)
        logs = await self.ledger.find(query, offset=(page - 1) * limit, limit=limit)
        total_pages = math.ceil(total / limit)
        return LedgerPage(
            logs=logs,
            pagination=Pagination(
                total=total,
                total_pages=total_pages,
                current_page=page,
                limit=limit,
                has_next_page=page < total_pages,
                has_prev_page=page > 1,
            ),
        )

    async def _stats_for(self, record: InventoryRecordOut) -> ItemInventoryStats:
        now = self.clock()
        today = now.astimezone(stats_timezone()).date()
        long_start = datetime.combine(today - timedelta(days=STATS_LOOKBACK_DAYS), time.min, tzinfo=stats_timezone())
        short_start = datetime.combine(
            today - timedelta(days=STATS_SHORT_WINDOW_DAYS), time.min, tzinfo=stats_timezone()
        )

        # The total_stock trail alone, so a sale is not counted once per counter
        trail = await self.ledger.find(LedgerQuery(
            store_id=record.store_id,
            item_ref=record.item_ref,
            inventory_type=record.inventory_type,
            stock_type=StockType.TOTAL,
            created_from=long_start,
        ), newest_first=False)
        last_30 = _window_stats(trail)
        last_7 = _window_stats(e for e in trail if e.created_at >= short_start)

        rate = last_30.consumed / STATS_LOOKBACK_DAYS
        days_left = math.floor(record.effective_stock / rate) if rate > 0 else None

        latest = await self.ledger.find(LedgerQuery(
            store_id=record.store_id, item_ref=record.item_ref, inventory_type=record.inventory_type
        ), limit=1)

        return ItemInventoryStats(
            current_total_stock=record.total_stock,
            current_available_stock=record.available_stock,
            min_stock_alert=record.min_stock_alert,
            target_stock_level=record.target_stock_level,
            is_tracked=record.is_inventory_tracked,
            enable_available_stock=record.enable_available_stock,
            is_sold_out=record.is_sold_out,
            consumption_rate=rate,
            estimated_days_left=days_left,
            last_update=latest[0].created_at if latest else None,
            needs_restock=record.needs_restock,
            last_7_days=last_7,
            last_30_days=last_30,
        )

    async def get_item_inventory_stats(self, store_id: UUID, inventory_id: UUID) -> ItemInventoryStats:
        """Consumption and forecast for one record. A missing record yields the zeroed shape."""
        record = await self.inventory.get(store_id, inventory_id)
        if record is None:
            return ItemInventoryStats()
        return await self._stats_for(record)

    async def get_inventory_health_report(
        self,
        store_id: UUID,
        inventory_type: Optional[InventoryType] = None,
        critical_days_threshold: int = CRITICAL_DAYS_THRESHOLD,
    ) -> HealthReport:
        records = await self.inventory.list(store_id, inventory_type=inventory_type, tracked_only=True)
        report = HealthReport(total=len(records))

        for record in records:
            stats = await self._stats_for(record)
            if record.is_sold_out:
                status, bucket = "sold_out", report.sold_out
            elif record.needs_restock:
                status, bucket = "needs_restock", report.needs_restock
            elif stats.estimated_days_left is not None and stats.estimated_days_left <= critical_days_threshold:
                status, bucket = "critical", report.critical
            else:
                status, bucket = "healthy", report.healthy

            bucket.append(HealthItem(
                id=record.id,
                item_type=record.inventory_type,
                item_name=record.item_name,
                total_stock=record.total_stock,
                available_stock=record.available_stock,
                daily_consumption=stats.consumption_rate,
                estimated_days_left=stats.estimated_days_left,
                enable_available_stock=record.enable_available_stock,
                is_tracked=record.is_inventory_tracked,
                is_sold_out=record.is_sold_out,
                status=status,
            ))
        return report

    async def get_stock_change_summary(
        self,
        store_id: UUID,
        period: Optional[str] = None,
        start_date: DateInput = None,
        end_date: DateInput = None,
        inventory_type: Optional[InventoryType] = None,
        group_by: str = "change_type",
    ) -> ChangeSummary:
        """Totals per group; decreases are reported as positive magnitudes."""
        if group_by not in GROUP_BY_FIELDS:
            raise InvalidStockRequestError(f"group_by must be one of: {', '.join(GROUP_BY_FIELDS)}.")
        if period:
            created_from, created_to = period_range(period, self.clock())
        else:
            created_from, created_to = parse_date_range(start_date, end_date)

        entries = await self.ledger.find(LedgerQuery(
            store_id=store_id,
            inventory_type=inventory_type,
            created_from=created_from,
            created_to=created_to,
        ), newest_first=False)

        summary: ChangeSummary = {}
        for entry in entries:
            key = getattr(entry, group_by).value
            bucket = summary.setdefault(key, ChangeSummaryBucket())
            bucket.total_changes += 1
            bucket.total_amount += entry.change_amount
            if entry.change_amount > 0:
                bucket.increases += entry.change_amount
            elif entry.change_amount < 0:
                bucket.decreases += -entry.change_amount
        return summary

    async def verify_ledger_consistency(self, store_id: UUID, inventory_id: UUID) -> LedgerConsistencyReport:
        """Replay the record's ledger from zero and compare with the stored counters."""
        record = await self.inventory.get(store_id, inventory_id)
        if record is None:
            raise InventoryNotFoundError("Inventory record not found for this store.")

        entries = await self.ledger.find(LedgerQuery(
            store_id=store_id, item_ref=record.item_ref, inventory_type=record.inventory_type
        ), newest_first=False)
        # Creation order is id order; timestamps may tie
        entries.sort(key=lambda e: e.id)

        expected = {StockType.TOTAL: 0, StockType.AVAILABLE: 0}
        for entry in entries:
            if entry.previous_stock != expected[entry.stock_type]:
                log.warning(
                    f"Ledger gap on {record.id} ({entry.stock_type.value}): entry {entry.id} starts at "
                    f"{entry.previous_stock}, replay is at {expected[entry.stock_type]}"
                )
            expected[entry.stock_type] += entry.change_amount

        total = CounterCheck(expected=expected[StockType.TOTAL], actual=record.total_stock)
        available = CounterCheck(expected=expected[StockType.AVAILABLE], actual=record.available_stock)
        return LedgerConsistencyReport(
            inventory_id=record.id,
            consistent=total.expected == total.actual and available.expected == available.actual,
            entries_checked=len(entries),
            total_stock=total,
            available_stock=available,
        )
