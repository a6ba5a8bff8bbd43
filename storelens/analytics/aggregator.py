"""
Analytics Aggregator

Pure computation of the dashboard analytics bundle from a snapshot of one
tenant's products, customers and orders. Nothing here touches the database
or caches results; callers decide how fresh the snapshot is.

Growth figures compare the trailing ``growth_period_days`` window ending at
``as_of`` against the window immediately before it. Without orders in the
prior window there is no baseline and growth is reported as ``None``.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple

import polars as pl
import structlog
from pydantic import BaseModel, ValidationError

from storelens.analytics.snapshot import AnalyticsSnapshot
from storelens.database.models import OrderStatus, utcnow
from storelens.repository.schemas import OrderLineItem, order_total, to_money

logger = structlog.get_logger(__name__)

STATUS_ORDER = [
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
]

ORDER_SCHEMA = {
    "id": pl.Utf8,
    "status": pl.Utf8,
    "total": pl.Float64,
    "order_date": pl.Datetime("us"),
}

LINE_ITEM_SCHEMA = {
    "product_id": pl.Utf8,
    "external_product_id": pl.Utf8,
    "quantity": pl.Int64,
    "order_date": pl.Datetime("us"),
}

CUSTOMER_SCHEMA = {
    "id": pl.Utf8,
    "name": pl.Utf8,
    "email": pl.Utf8,
    "total_spent": pl.Float64,
    "total_orders": pl.Int64,
}

PRODUCT_SCHEMA = {
    "id": pl.Utf8,
    "external_id": pl.Utf8,
    "name": pl.Utf8,
    "price": pl.Float64,
    "sales": pl.Int64,
    "revenue": pl.Float64,
}


# =============================================================================
# INPUT / OUTPUT MODELS
# =============================================================================

@dataclass(frozen=True)
class AnalyticsOptions:
    """Aggregation window and list sizes"""
    top_n: int = 5
    trend_days: int = 7
    growth_period_days: int = 30

    @classmethod
    def from_settings(cls, settings) -> "AnalyticsOptions":
        return cls(
            top_n=settings.analytics.top_n,
            trend_days=settings.analytics.trend_days,
            growth_period_days=settings.analytics.growth_period_days,
        )


class TopCustomer(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    total_spent: float
    total_orders: int


class SalesDataPoint(BaseModel):
    date: date
    revenue: float
    orders: int


class StatusShare(BaseModel):
    status: str
    count: int
    percentage: float


class ProductPerformance(BaseModel):
    id: str
    name: str
    revenue: float
    units: int
    growth: Optional[float] = None


class Analytics(BaseModel):
    """Dashboard analytics bundle"""
    total_revenue: float
    total_orders: int
    total_products: int
    total_customers: int
    average_order_value: float
    revenue_growth: Optional[float] = None
    orders_growth: Optional[float] = None
    top_customers: List[TopCustomer]
    sales_trend: List[SalesDataPoint]
    order_status_distribution: List[StatusShare]
    product_performance: List[ProductPerformance]
    inconsistent_orders: int = 0
    growth_period_days: int
    generated_at: datetime


# =============================================================================
# FRAME BUILDERS
# =============================================================================

def _value(status: Any) -> str:
    return status.value if hasattr(status, "value") else str(status)


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _line_items(order: Any) -> Tuple[List[OrderLineItem], bool]:
    """Parse stored line items; second element is False if any were unreadable"""
    items, valid = [], True
    for raw in order.line_items or []:
        try:
            items.append(raw if isinstance(raw, OrderLineItem) else OrderLineItem.model_validate(raw))
        except ValidationError:
            valid = False
    return items, valid


def _orders_frame(orders: Iterable[Any]) -> Tuple[pl.DataFrame, pl.DataFrame, int]:
    order_rows, item_rows, inconsistent = [], [], 0
    for order in orders:
        items, valid = _line_items(order)
        if not valid or to_money(order.total or Decimal("0")) != order_total(items):
            inconsistent += 1
        order_rows.append((str(order.id), _value(order.status), float(order.total or 0), order.order_date))
        for item in items:
            item_rows.append((
                _str_or_none(item.product_id),
                item.external_product_id,
                item.quantity,
                order.order_date,
            ))
    return (
        pl.DataFrame(order_rows, schema=ORDER_SCHEMA, orient="row"),
        pl.DataFrame(item_rows, schema=LINE_ITEM_SCHEMA, orient="row"),
        inconsistent,
    )


def _customers_frame(customers: Iterable[Any]) -> pl.DataFrame:
    rows = [
        (str(c.id), c.name, c.email, float(c.total_spent or 0), int(c.total_orders or 0))
        for c in customers
    ]
    return pl.DataFrame(rows, schema=CUSTOMER_SCHEMA, orient="row")


def _products_frame(products: Iterable[Any]) -> pl.DataFrame:
    rows = []
    for p in products:
        revenue = to_money(Decimal(p.price or 0) * int(p.sales or 0))
        rows.append((
            str(p.id),
            _str_or_none(getattr(p, "external_id", None)),
            p.name,
            float(p.price or 0),
            int(p.sales or 0),
            float(revenue),
        ))
    return pl.DataFrame(rows, schema=PRODUCT_SCHEMA, orient="row")


# =============================================================================
# METRICS
# =============================================================================

def _growth(current: float, previous: float) -> Optional[float]:
    if not previous:
        return None
    return round((current - previous) / previous * 100, 1)


def _in_window(column: str, start: datetime, end: datetime) -> pl.Expr:
    return (pl.col(column) > start) & (pl.col(column) <= end)


def period_growth(orders: pl.DataFrame, as_of: datetime, period_days: int) -> Tuple[Optional[float], Optional[float]]:
    """Revenue and order-count growth (%) of the trailing period vs the one before"""
    period = timedelta(days=period_days)
    current = orders.filter(_in_window("order_date", as_of - period, as_of))
    previous = orders.filter(_in_window("order_date", as_of - 2 * period, as_of - period))
    return (
        _growth(current["total"].sum(), previous["total"].sum()),
        _growth(current.height, previous.height),
    )


def top_customers(customers: pl.DataFrame, n: int) -> List[TopCustomer]:
    """Highest spenders; ties by order count, then id"""
    ranked = customers.sort(
        ["total_spent", "total_orders", "id"],
        descending=[True, True, False],
    ).head(n)
    return [TopCustomer(**row) for row in ranked.to_dicts()]


def rank_customers(customers: Iterable[Any], n: int) -> List[TopCustomer]:
    """Top ``n`` customer records by spend"""
    return top_customers(_customers_frame(customers), n)


def status_distribution(orders: pl.DataFrame) -> List[StatusShare]:
    """Count and share (one decimal) of every order status"""
    total = orders.height
    grouped = orders.group_by("status").agg(pl.len().alias("count"))
    counts = dict(zip(grouped["status"].to_list(), grouped["count"].to_list()))

    shares = []
    for status in STATUS_ORDER:
        count = int(counts.get(status.value, 0))
        percentage = round(count / total * 100, 1) if total else 0.0
        shares.append(StatusShare(status=status.value, count=count, percentage=percentage))
    return shares


def sales_trend(orders: pl.DataFrame, as_of: datetime, days: int) -> List[SalesDataPoint]:
    """Per-day revenue and order count for ``days`` days ending at ``as_of``, zero-filled"""
    end_day = as_of.date()
    start_day = end_day - timedelta(days=days - 1)

    daily = (
        orders.with_columns(pl.col("order_date").dt.date().alias("day"))
        .filter(pl.col("day").is_between(start_day, end_day) & (pl.col("order_date") <= as_of))
        .group_by("day")
        .agg(
            pl.col("total").sum().alias("revenue"),
            pl.len().cast(pl.Int64).alias("orders"),
        )
    )
    calendar = pl.DataFrame(
        {"day": [start_day + timedelta(days=i) for i in range(days)]},
        schema={"day": pl.Date},
    )
    trend = calendar.join(daily, on="day", how="left").fill_null(0).sort("day")

    return [
        SalesDataPoint(date=row["day"], revenue=round(row["revenue"], 2), orders=int(row["orders"]))
        for row in trend.to_dicts()
    ]


def _units_in_window(items: pl.DataFrame, product: dict, start: datetime, end: datetime) -> int:
    matches = pl.col("product_id") == product["id"]
    if product["external_id"] is not None:
        matches = matches | (pl.col("external_product_id") == product["external_id"])
    window = items.filter(matches.fill_null(False) & _in_window("order_date", start, end))
    return int(window["quantity"].sum())


def product_performance(
    products: pl.DataFrame,
    items: pl.DataFrame,
    n: int,
    as_of: datetime,
    period_days: int,
) -> List[ProductPerformance]:
    """Top products by price x cumulative sales, with unit growth from order lines"""
    ranked = products.sort(
        ["revenue", "sales", "id"],
        descending=[True, True, False],
    ).head(n)

    period = timedelta(days=period_days)
    results = []
    for product in ranked.to_dicts():
        current = _units_in_window(items, product, as_of - period, as_of)
        previous = _units_in_window(items, product, as_of - 2 * period, as_of - period)
        results.append(ProductPerformance(
            id=product["id"],
            name=product["name"],
            revenue=product["revenue"],
            units=product["sales"],
            growth=_growth(current, previous),
        ))
    return results


def compute_analytics(
    snapshot: AnalyticsSnapshot,
    options: Optional[AnalyticsOptions] = None,
    as_of: Optional[datetime] = None,
) -> Analytics:
    """
    Compute the analytics bundle for one tenant.

    Args:
        snapshot: Current records of the tenant
        options: Window sizes and list lengths
        as_of: End of the reporting window (naive UTC), defaults to now

    Returns:
        Analytics: Derived metrics; empty snapshots yield zeros and empty lists
    """
    options = options or AnalyticsOptions()
    as_of = as_of or utcnow()

    orders, items, inconsistent = _orders_frame(snapshot.orders)
    customers = _customers_frame(snapshot.customers)
    products = _products_frame(snapshot.products)

    if inconsistent:
        logger.warning("Orders with total not matching line items", count=inconsistent)

    revenue = to_money(sum((Decimal(o.total or 0) for o in snapshot.orders), Decimal("0")))
    total_orders = orders.height
    revenue_growth, orders_growth = period_growth(orders, as_of, options.growth_period_days)

    return Analytics(
        total_revenue=float(revenue),
        total_orders=total_orders,
        total_products=products.height,
        total_customers=customers.height,
        average_order_value=round(float(revenue) / total_orders, 2) if total_orders else 0.0,
        revenue_growth=revenue_growth,
        orders_growth=orders_growth,
        top_customers=top_customers(customers, options.top_n),
        sales_trend=sales_trend(orders, as_of, options.trend_days),
        order_status_distribution=status_distribution(orders),
        product_performance=product_performance(
            products, items, options.top_n, as_of, options.growth_period_days
        ),
        inconsistent_orders=inconsistent,
        growth_period_days=options.growth_period_days,
        generated_at=as_of,
    )
