import asyncio
import calendar
import logging
from datetime import datetime, date, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from bizdata.core import schemas
from bizdata.core.schemas import DataAnswer, DataSource, Period


# -----------------------------------------------------------------------------
# GATEWAY MODULE
# Purpose: answer entity reads from the primary store, or from the snapshot
# when the primary store fails or is too slow.
# Every answer is tagged with the source that produced it, and every summary
# number is computed here so callers never need raw rows for aggregates.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

# Daily breakdowns longer than this only list days that had sales
MAX_BREAKDOWN_DAYS = 366


def shift_months(moment: datetime, months: int) -> datetime:
    """Move by whole months, clamping the day (Mar 31 - 1 month -> Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def rolling_start(period: Period, end: datetime) -> datetime:
    """Start of the rolling window of one `period` that ends at `end`."""
    if period == Period.DAY:
        return end - timedelta(days=1)
    if period == Period.WEEK:
        return end - timedelta(days=7)
    if period == Period.MONTH:
        return shift_months(end, -1)
    if period == Period.QUARTER:
        return shift_months(end, -3)
    return shift_months(end, -12)


def top_payment_methods(sales: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Rank payment methods by total amount.

    Example:
        [{"method": "credit_card", "count": 4, "total": 52000.0},
         {"method": "cash", "count": 9, "total": 18000.0}]
    """
    methods: Dict[str, Dict[str, float]] = {}
    for sale in sales:
        bucket = methods.setdefault(
            sale.get("payment_method") or "unknown", {"count": 0, "total": 0.0}
        )
        bucket["count"] += 1
        bucket["total"] += sale.get("amount") or 0.0

    ranked = [{"method": method, **data} for method, data in methods.items()]
    return sorted(ranked, key=lambda item: item["total"], reverse=True)


def daily_breakdown(
    sales: List[Dict[str, Any]], start: datetime, end: datetime
) -> List[Dict[str, Any]]:
    """Sales per calendar day, zero-filled across the window."""
    days: Dict[date, Dict[str, float]] = {}

    first, last = start.date(), end.date()
    if (last - first).days < MAX_BREAKDOWN_DAYS:
        current = first
        while current <= last:
            days[current] = {"sales": 0.0, "count": 0}
            current += timedelta(days=1)

    for sale in sales:
        sale_date = sale.get("sale_date")
        if sale_date is None:
            continue
        bucket = days.setdefault(sale_date.date(), {"sales": 0.0, "count": 0})
        bucket["sales"] += sale.get("amount") or 0.0
        bucket["count"] += 1

    return [
        {"date": day.isoformat(), "sales": data["sales"], "count": data["count"]}
        for day, data in sorted(days.items())
    ]


def sales_analytics(
    sales: List[Dict[str, Any]], start: datetime, end: datetime
) -> Dict[str, Any]:
    total = sum(sale.get("amount") or 0.0 for sale in sales)
    return {
        "total_sales": total,
        "sales_count": len(sales),
        "average_sale_amount": total / len(sales) if sales else 0.0,
        "top_payment_methods": top_payment_methods(sales),
        "daily_breakdown": daily_breakdown(sales, start, end),
    }


def inventory_summary(
    products: List[Dict[str, Any]], low_stock_threshold: int
) -> Dict[str, Any]:
    breakdown: Dict[str, Dict[str, float]] = {}
    for product in products:
        category = product.get("category") or "uncategorized"
        bucket = breakdown.setdefault(category, {"count": 0, "stock": 0, "value": 0.0})
        bucket["count"] += 1
        bucket["stock"] += product.get("stock") or 0
        bucket["value"] += (product.get("price") or 0.0) * (product.get("stock") or 0)

    return {
        "total_products": len(products),
        "low_stock_items": sum(
            1 for p in products if (p.get("stock") or 0) < low_stock_threshold
        ),
        "total_inventory_value": sum(data["value"] for data in breakdown.values()),
        "categories": sorted(c for c in breakdown if c != "uncategorized"),
        "category_breakdown": breakdown,
    }


def profitability(sales_total: float, expense_total: float) -> Dict[str, float]:
    gross_profit = sales_total - expense_total
    return {
        "gross_profit": gross_profit,
        "profit_margin": gross_profit / sales_total * 100 if sales_total > 0 else 0.0,
    }


class DataGateway:
    """
    Per-entity reads with snapshot fallback.

    `primary` and `snapshot` expose the same read methods (see stores.py).
    A read against the primary store that raises, or runs past
    `primary_timeout` seconds, is retried once against the snapshot.
    """

    def __init__(
        self,
        primary,
        snapshot,
        primary_timeout: float = 5.0,
        low_stock_threshold: int = 10,
        sales_sample_limit: int = 20,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.primary = primary
        self.snapshot = snapshot
        self.primary_timeout = primary_timeout
        self.low_stock_threshold = low_stock_threshold
        self.sales_sample_limit = sales_sample_limit
        self.clock = clock

        self._readers = {
            "customers": self.query_customers,
            "sales": self.analyze_sales,
            "products": self.query_products,
            "finances": self.financial_report,
            "overview": self.business_overview,
        }

    async def read(self, entity: str, query: schemas.ToolInput) -> DataAnswer:
        reader = self._readers.get(entity)
        if reader is None:
            raise KeyError(f"No gateway reader for entity: {entity}")
        return await reader(query)

    async def _with_fallback(
        self, entity: str, fetch: Callable[[Any], Awaitable[Dict[str, Any]]]
    ) -> Tuple[Dict[str, Any], DataSource]:
        try:
            result = await asyncio.wait_for(fetch(self.primary), self.primary_timeout)
            return result, DataSource.PRIMARY
        except Exception as error:
            # asyncio.TimeoutError lands here too; cancellation does not
            logger.warning(
                f"Primary store failed for {entity}, answering from snapshot: {error!r}"
            )

        result = await fetch(self.snapshot)
        return result, DataSource.SECONDARY

    def _resolve_window(
        self,
        period: Period,
        start_date: Optional[datetime],
        end_date: Optional[datetime],
    ) -> Tuple[datetime, datetime]:
        end = end_date or self.clock()
        start = start_date or rolling_start(period, end)
        return start, end

    async def query_customers(self, query: schemas.CustomerQuery) -> DataAnswer:
        async def fetch(store):
            return {
                "customers": await store.find_customers(query.filter, query.limit),
                "total": await store.count_customers(query.filter),
            }

        data, source = await self._with_fallback("customers", fetch)
        customers = data["customers"]

        month_ago = shift_months(self.clock(), -1)
        recent = [c for c in customers if c.get("created_at") and c["created_at"] > month_ago]

        return DataAnswer(
            payload={"customers": customers},
            source=source,
            total=data["total"],
            summary={
                "total_customers": len(customers),
                "recent_customers": len(recent),
            },
        )

    async def analyze_sales(self, query: schemas.SalesAnalysisQuery) -> DataAnswer:
        start, end = self._resolve_window(query.period, query.start_date, query.end_date)

        async def fetch(store):
            return {"sales": await store.find_sales(start, end)}

        data, source = await self._with_fallback("sales", fetch)
        sales = data["sales"]

        return DataAnswer(
            payload={
                "period": query.period.value,
                "date_range": {"start": start, "end": end},
                "sales": sales[: self.sales_sample_limit],
            },
            source=source,
            total=len(sales),
            summary=sales_analytics(sales, start, end),
        )

    async def query_products(self, query: schemas.ProductQuery) -> DataAnswer:
        stock_below = self.low_stock_threshold if query.low_stock else None

        async def fetch(store):
            return {
                "products": await store.find_products(query.category, stock_below, query.limit),
                "total": await store.count_products(query.category, stock_below),
            }

        data, source = await self._with_fallback("products", fetch)
        products = data["products"]

        return DataAnswer(
            payload={"products": products},
            source=source,
            total=data["total"],
            summary=inventory_summary(products, self.low_stock_threshold),
        )

    async def financial_report(self, query: schemas.FinancialReportQuery) -> DataAnswer:
        start, end = self._resolve_window(query.period, query.start_date, query.end_date)

        async def fetch(store):
            result: Dict[str, Any] = {}
            if query.include_sales:
                result["sales"] = await store.find_sales(start, end)
            if query.include_expenses:
                result["expenses"] = await store.find_expenses(start, end)
                result["by_category"] = await store.expense_totals_by_category(start, end)
            return result

        data, source = await self._with_fallback("finances", fetch)

        report: Dict[str, Any] = {
            "period": query.period.value,
            "date_range": {"start": start, "end": end},
        }

        if query.include_sales:
            sales = data["sales"]
            sales_total = sum(s.get("amount") or 0.0 for s in sales)
            report["sales"] = {
                "total": sales_total,
                "count": len(sales),
                "average": sales_total / len(sales) if sales else 0.0,
            }

        if query.include_expenses:
            expenses = data["expenses"]
            report["expenses"] = {
                "total": sum(e.get("amount") or 0.0 for e in expenses),
                "count": len(expenses),
                "by_category": data["by_category"],
            }

        summary = None
        if query.include_sales and query.include_expenses:
            summary = profitability(report["sales"]["total"], report["expenses"]["total"])
            report["profitability"] = summary

        return DataAnswer(payload=report, source=source, summary=summary)

    async def business_overview(self, query: schemas.BusinessOverviewQuery) -> DataAnswer:
        """
        Read every enabled section concurrently.

        Each section keeps its own source tag; the overview as a whole is
        `secondary` if any section had to fall back.
        """
        pending: Dict[str, Awaitable[DataAnswer]] = {}
        if query.include_customers:
            pending["customers"] = self.query_customers(schemas.CustomerQuery(limit=5))
        if query.include_sales:
            pending["sales"] = self.analyze_sales(
                schemas.SalesAnalysisQuery(
                    period=query.period,
                    start_date=query.start_date,
                    end_date=query.end_date,
                )
            )
        if query.include_inventory:
            pending["inventory"] = self.query_products(
                schemas.ProductQuery(limit=10, low_stock=True)
            )
        if query.include_finances:
            pending["finances"] = self.financial_report(
                schemas.FinancialReportQuery(
                    period=query.period,
                    start_date=query.start_date,
                    end_date=query.end_date,
                )
            )

        answers = dict(zip(pending, await asyncio.gather(*pending.values())))
        degraded = [key for key, answer in answers.items() if answer.degraded]

        return DataAnswer(
            payload={key: answer.model_dump() for key, answer in answers.items()},
            source=DataSource.SECONDARY if degraded else DataSource.PRIMARY,
            summary={"sections": list(answers), "degraded_sections": degraded},
        )
