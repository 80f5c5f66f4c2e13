import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

from pydantic import TypeAdapter, ValidationError
from pydantic.alias_generators import to_snake
from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from bizdata.core import models
from bizdata.core.schemas import CustomerFilter


# -----------------------------------------------------------------------------
# STORES MODULE
# Purpose: the two places business data can come from.
#   PrimaryStore      -> live database (SQLAlchemy async)
#   SecondarySnapshot -> static JSON files loaded once at startup
# Both expose the same read methods and return plain dicts, so the gateway
# can run one code path against either and compute summaries the same way.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


def _to_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _customer_dict(row: models.Customer) -> Dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "email": row.email,
        "company": row.company,
        "phone": row.phone,
        "created_at": row.created_at,
    }


def _product_dict(row: models.Product) -> Dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "sku": row.sku,
        "price": _to_float(row.price),
        "stock": row.stock or 0,
        "category": row.category,
        "is_active": row.is_active,
        "created_at": row.created_at,
    }


def _sale_dict(row: models.Sale) -> Dict[str, Any]:
    return {
        "id": row.id,
        "customer_id": row.customer_id,
        "customer_name": row.customer.name if row.customer else None,
        "product_name": row.product_name,
        "amount": _to_float(row.amount),
        "payment_method": row.payment_method,
        "sale_date": row.sale_date,
    }


def _expense_dict(row: models.Expense) -> Dict[str, Any]:
    return {
        "id": row.id,
        "description": row.description,
        "amount": _to_float(row.amount),
        "category": row.category,
        "payment_method": row.payment_method,
        "expense_date": row.expense_date,
    }


class PrimaryStore:
    """Entity-scoped reads against the live database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @staticmethod
    def _customer_conditions(customer_filter: Optional[CustomerFilter]) -> list:
        conditions = []
        if customer_filter:
            if customer_filter.name:
                conditions.append(models.Customer.name.ilike(f"%{customer_filter.name}%"))
            if customer_filter.email:
                conditions.append(models.Customer.email.ilike(f"%{customer_filter.email}%"))
            if customer_filter.company:
                conditions.append(
                    models.Customer.company.ilike(f"%{customer_filter.company}%")
                )
        return conditions

    @staticmethod
    def _product_conditions(
        category: Optional[str], stock_below: Optional[int]
    ) -> list:
        conditions = [models.Product.is_active == True]
        if category:
            conditions.append(models.Product.category.ilike(f"%{category}%"))
        if stock_below is not None:
            conditions.append(models.Product.stock < stock_below)
        return conditions

    async def find_customers(
        self, customer_filter: Optional[CustomerFilter], limit: int
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(models.Customer)
            .where(*self._customer_conditions(customer_filter))
            .order_by(desc(models.Customer.created_at))
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_customer_dict(row) for row in result.scalars().all()]

    async def count_customers(self, customer_filter: Optional[CustomerFilter]) -> int:
        stmt = select(func.count(models.Customer.id)).where(
            *self._customer_conditions(customer_filter)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def find_products(
        self, category: Optional[str], stock_below: Optional[int], limit: int
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(models.Product)
            .where(*self._product_conditions(category, stock_below))
            .order_by(desc(models.Product.created_at))
            .limit(limit)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_product_dict(row) for row in result.scalars().all()]

    async def count_products(
        self, category: Optional[str], stock_below: Optional[int]
    ) -> int:
        stmt = select(func.count(models.Product.id)).where(
            *self._product_conditions(category, stock_below)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0

    async def find_sales(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        stmt = (
            select(models.Sale)
            .options(selectinload(models.Sale.customer))
            .where(models.Sale.sale_date.between(start, end))
            .order_by(desc(models.Sale.sale_date))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_sale_dict(row) for row in result.scalars().all()]

    async def find_expenses(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        stmt = (
            select(models.Expense)
            .where(models.Expense.expense_date.between(start, end))
            .order_by(desc(models.Expense.expense_date))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [_expense_dict(row) for row in result.scalars().all()]

    async def expense_totals_by_category(
        self, start: datetime, end: datetime
    ) -> Dict[str, Dict[str, float]]:
        """
        Expense totals grouped by category for a date range.

        Example:
            {"rent": {"total": 120000.0, "count": 1}, "travel": {"total": 8000.0, "count": 3}}
        """
        stmt = (
            select(
                models.Expense.category,
                func.coalesce(func.sum(models.Expense.amount), 0).label("total_amount"),
                func.count(models.Expense.id).label("expense_count"),
            )
            .where(models.Expense.expense_date.between(start, end))
            .group_by(models.Expense.category)
            .order_by(desc("total_amount"))
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return {
            (row.category or "uncategorized"): {
                "total": _to_float(row.total_amount),
                "count": row.expense_count,
            }
            for row in rows
        }


# =========================
# Secondary snapshot
# =========================

SNAPSHOT_FILES = {
    "customers": "customers.json",
    "products": "products.json",
    "sales": "sales.json",
    "expenses": "expenses.json",
}

DATE_FIELDS = ("created_at", "sale_date", "expense_date")

_datetime_adapter = TypeAdapter(datetime)


def _parse_date(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = _datetime_adapter.validate_python(value)
    except ValidationError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _normalize_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """camelCase keys -> snake_case, dates parsed, amounts as floats."""
    record = {to_snake(key): value for key, value in raw.items()}
    for field in DATE_FIELDS:
        if field in record:
            record[field] = _parse_date(record[field])
    for field in ("amount", "price"):
        if field in record:
            record[field] = _to_float(record[field])
    return record


def _contains(value: Any, needle: str) -> bool:
    return needle.lower() in str(value or "").lower()


def _in_window(value: Optional[datetime], start: datetime, end: datetime) -> bool:
    return value is not None and start <= value <= end


class SecondarySnapshot:
    """
    Read-only fallback dataset, one JSON blob per entity.

    A blob is either a list of records or {"records": [...]}.
    Missing or broken files load as empty lists: no data is a valid answer.
    """

    def __init__(self, data: Dict[str, List[Dict[str, Any]]]):
        self.data = {
            entity: [_normalize_record(item) for item in data.get(entity, []) if isinstance(item, dict)]
            for entity in SNAPSHOT_FILES
        }

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> "SecondarySnapshot":
        base = Path(directory)
        data: Dict[str, List[Dict[str, Any]]] = {}
        for entity, filename in SNAPSHOT_FILES.items():
            path = base / filename
            if not path.exists():
                logger.info(f"Snapshot file not found, using empty {entity}: {path}")
                data[entity] = []
                continue
            try:
                raw = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as error:
                logger.error(f"Error reading snapshot {path}: {error}")
                data[entity] = []
                continue
            records = raw.get("records") if isinstance(raw, dict) else raw
            if not isinstance(records, list):
                logger.error(f"Snapshot {path} holds no record list, using empty {entity}")
                records = []
            data[entity] = records
        return cls(data)

    def records(self, entity: str) -> List[Dict[str, Any]]:
        return list(self.data.get(entity, []))

    async def find_customers(
        self, customer_filter: Optional[CustomerFilter], limit: int
    ) -> List[Dict[str, Any]]:
        return self._filter_customers(customer_filter)[:limit]

    async def count_customers(self, customer_filter: Optional[CustomerFilter]) -> int:
        return len(self._filter_customers(customer_filter))

    async def find_products(
        self, category: Optional[str], stock_below: Optional[int], limit: int
    ) -> List[Dict[str, Any]]:
        return self._filter_products(category, stock_below)[:limit]

    async def count_products(
        self, category: Optional[str], stock_below: Optional[int]
    ) -> int:
        return len(self._filter_products(category, stock_below))

    async def find_sales(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        sales = [s for s in self.records("sales") if _in_window(s.get("sale_date"), start, end)]
        return sorted(sales, key=lambda s: s["sale_date"], reverse=True)

    async def find_expenses(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        expenses = [
            e for e in self.records("expenses") if _in_window(e.get("expense_date"), start, end)
        ]
        return sorted(expenses, key=lambda e: e["expense_date"], reverse=True)

    async def expense_totals_by_category(
        self, start: datetime, end: datetime
    ) -> Dict[str, Dict[str, float]]:
        totals: Dict[str, Dict[str, float]] = {}
        for expense in await self.find_expenses(start, end):
            bucket = totals.setdefault(
                expense.get("category") or "uncategorized", {"total": 0.0, "count": 0}
            )
            bucket["total"] += expense.get("amount", 0.0)
            bucket["count"] += 1
        return dict(sorted(totals.items(), key=lambda item: item[1]["total"], reverse=True))

    def _filter_customers(self, customer_filter: Optional[CustomerFilter]) -> List[Dict[str, Any]]:
        customers = self.records("customers")
        if customer_filter:
            for field in ("name", "email", "company"):
                needle = getattr(customer_filter, field)
                if needle:
                    customers = [c for c in customers if _contains(c.get(field), needle)]
        return sorted(
            customers, key=lambda c: c.get("created_at") or datetime.min, reverse=True
        )

    def _filter_products(
        self, category: Optional[str], stock_below: Optional[int]
    ) -> List[Dict[str, Any]]:
        products = [p for p in self.records("products") if p.get("is_active", True)]
        if category:
            products = [p for p in products if _contains(p.get("category"), category)]
        if stock_below is not None:
            products = [p for p in products if (p.get("stock") or 0) < stock_below]
        return sorted(
            products, key=lambda p: p.get("created_at") or datetime.min, reverse=True
        )
