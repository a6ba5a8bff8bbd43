"""
Unit Tests for the Analytics Aggregator
"""
from datetime import date, datetime, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import UUID

import pytest

from storelens.analytics import AnalyticsOptions, AnalyticsSnapshot, compute_analytics
from storelens.analytics.aggregator import rank_customers
from storelens.database.models import OrderStatus

AS_OF = datetime(2024, 3, 1, 12, 0, 0)


def _uuid(n: int) -> UUID:
    return UUID(int=n)


def make_order(n, days_ago, items, status=OrderStatus.DELIVERED, total=None):
    line_items = [
        {"product_id": str(_uuid(pid)) if pid else None, "external_product_id": None,
         "product_name": f"P{pid}", "quantity": qty, "price": str(price)}
        for pid, qty, price in items
    ]
    computed = sum((Decimal(str(price)) * qty for _, qty, price in items), Decimal("0"))
    return SimpleNamespace(
        id=_uuid(1000 + n),
        status=status,
        total=computed if total is None else Decimal(total),
        order_date=AS_OF - timedelta(days=days_ago),
        line_items=line_items,
    )


def make_customer(n, spent, orders=1):
    return SimpleNamespace(
        id=_uuid(2000 + n),
        name=f"Customer {n}",
        email=f"c{n}@shop.com",
        total_spent=Decimal(spent),
        total_orders=orders,
    )


def make_product(n, price, sales):
    return SimpleNamespace(id=_uuid(n), external_id=None, name=f"P{n}", price=Decimal(price), sales=sales)


class TestEmptySnapshot:
    """A tenant without data"""

    def test_zeros_and_empty_lists(self):
        analytics = compute_analytics(AnalyticsSnapshot(), as_of=AS_OF)

        assert analytics.total_revenue == 0.0
        assert analytics.total_orders == 0
        assert analytics.average_order_value == 0.0
        assert analytics.revenue_growth is None
        assert analytics.orders_growth is None
        assert analytics.top_customers == []
        assert analytics.product_performance == []
        assert all(s.count == 0 and s.percentage == 0.0 for s in analytics.order_status_distribution)

    def test_trend_is_zero_filled(self):
        analytics = compute_analytics(AnalyticsSnapshot(), AnalyticsOptions(trend_days=7), as_of=AS_OF)

        assert [p.date for p in analytics.sales_trend] == [date(2024, 2, 24) + timedelta(days=i) for i in range(7)]
        assert all(p.revenue == 0 and p.orders == 0 for p in analytics.sales_trend)


class TestTotals:
    """Revenue, counts and averages"""

    def test_revenue_and_average(self):
        snapshot = AnalyticsSnapshot(
            products=[make_product(1, "10.00", 3)],
            customers=[make_customer(1, "50")],
            orders=[make_order(1, 1, [(1, 2, "10.00")]), make_order(2, 2, [(1, 1, "5.00")])],
        )
        analytics = compute_analytics(snapshot, as_of=AS_OF)

        assert analytics.total_revenue == 25.0
        assert analytics.total_orders == 2
        assert analytics.total_products == 1
        assert analytics.total_customers == 1
        assert analytics.average_order_value == 12.5

    def test_inconsistent_orders_are_counted(self):
        orders = [make_order(1, 1, [(1, 1, "10.00")], total="12.00"), make_order(2, 1, [(1, 1, "10.00")])]
        analytics = compute_analytics(AnalyticsSnapshot(orders=orders), as_of=AS_OF)
        assert analytics.inconsistent_orders == 1


class TestGrowth:
    """Period-over-period growth"""

    def test_growth_against_prior_period(self):
        orders = [
            make_order(1, 5, [(1, 1, "150.00")]),
            make_order(2, 10, [(1, 1, "50.00")]),
            make_order(3, 40, [(1, 1, "100.00")]),
        ]
        analytics = compute_analytics(AnalyticsSnapshot(orders=orders), AnalyticsOptions(growth_period_days=30), as_of=AS_OF)

        assert analytics.revenue_growth == 100.0
        assert analytics.orders_growth == 100.0

    def test_no_baseline_means_no_growth(self):
        orders = [make_order(1, 5, [(1, 1, "150.00")])]
        analytics = compute_analytics(AnalyticsSnapshot(orders=orders), as_of=AS_OF)

        assert analytics.revenue_growth is None
        assert analytics.orders_growth is None

    def test_decline_is_negative(self):
        orders = [make_order(1, 5, [(1, 1, "25.00")]), make_order(2, 35, [(1, 1, "100.00")])]
        analytics = compute_analytics(AnalyticsSnapshot(orders=orders), as_of=AS_OF)
        assert analytics.revenue_growth == -75.0


class TestStatusDistribution:
    """Order status shares"""

    def test_every_status_is_listed_and_shares_sum_to_100(self):
        orders = [
            make_order(1, 1, [(1, 1, "1")], status=OrderStatus.PENDING),
            make_order(2, 1, [(1, 1, "1")], status=OrderStatus.SHIPPED),
            make_order(3, 1, [(1, 1, "1")], status=OrderStatus.SHIPPED),
            make_order(4, 1, [(1, 1, "1")], status=OrderStatus.CANCELLED),
        ]
        distribution = compute_analytics(AnalyticsSnapshot(orders=orders), as_of=AS_OF).order_status_distribution

        assert [s.status for s in distribution] == ["pending", "processing", "shipped", "delivered", "cancelled"]
        assert {s.status: s.count for s in distribution}["shipped"] == 2
        assert {s.status: s.percentage for s in distribution}["shipped"] == 50.0
        assert sum(s.percentage for s in distribution) == pytest.approx(100.0)

    def test_rounded_shares_stay_close_to_100(self):
        orders = [
            make_order(i, 1, [(1, 1, "1")], status=status)
            for i, status in enumerate([OrderStatus.PENDING, OrderStatus.SHIPPED, OrderStatus.DELIVERED])
        ]
        distribution = compute_analytics(AnalyticsSnapshot(orders=orders), as_of=AS_OF).order_status_distribution
        assert sum(s.percentage for s in distribution) == pytest.approx(100.0, abs=0.2)


class TestRankings:
    """Top customers and product performance"""

    def test_top_customers_by_spend_with_deterministic_ties(self):
        customers = [
            make_customer(1, "100", orders=1),
            make_customer(2, "300", orders=2),
            make_customer(3, "100", orders=4),
            make_customer(4, "100", orders=4),
        ]
        ranked = rank_customers(customers, 3)

        assert [c.name for c in ranked] == ["Customer 2", "Customer 3", "Customer 4"]
        assert ranked[0].total_spent == 300.0

    def test_top_n_limits_list(self):
        customers = [make_customer(i, str(i * 10)) for i in range(10)]
        analytics = compute_analytics(AnalyticsSnapshot(customers=customers), AnalyticsOptions(top_n=5), as_of=AS_OF)
        assert len(analytics.top_customers) == 5
        assert analytics.top_customers[0].name == "Customer 9"

    def test_product_performance_ranks_by_revenue(self):
        products = [make_product(1, "10.00", 5), make_product(2, "100.00", 1), make_product(3, "1.00", 0)]
        orders = [
            make_order(1, 5, [(1, 3, "10.00")]),
            make_order(2, 40, [(1, 1, "10.00")]),
            make_order(3, 5, [(2, 1, "100.00")]),
        ]
        performance = compute_analytics(
            AnalyticsSnapshot(products=products, orders=orders), AnalyticsOptions(top_n=2), as_of=AS_OF
        ).product_performance

        assert [p.name for p in performance] == ["P2", "P1"]
        assert performance[0].revenue == 100.0
        assert performance[0].growth is None
        assert performance[1].units == 5
        assert performance[1].growth == 200.0


class TestSalesTrend:
    """Daily revenue for the trailing window"""

    def test_orders_land_on_their_day(self):
        orders = [
            make_order(1, 0, [(1, 1, "10.00")]),
            make_order(2, 0, [(1, 2, "10.00")]),
            make_order(3, 2, [(1, 1, "5.00")]),
            make_order(4, 10, [(1, 1, "99.00")]),
        ]
        trend = compute_analytics(AnalyticsSnapshot(orders=orders), AnalyticsOptions(trend_days=7), as_of=AS_OF).sales_trend
        by_day = {p.date: p for p in trend}

        assert len(trend) == 7
        assert by_day[date(2024, 3, 1)].revenue == 30.0
        assert by_day[date(2024, 3, 1)].orders == 2
        assert by_day[date(2024, 2, 28)].revenue == 5.0
        assert sum(p.revenue for p in trend) == 35.0
