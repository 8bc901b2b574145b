# Overview: Read-only dashboard aggregates for a store.

"""
Analytics

Balances follow the ledger sign convention (positive = customer credit,
negative = customer owes the store). Receivables and credits are reported
separately rather than as one signed total.

Period grouping uses SQLite strftime.
"""

from __future__ import annotations

from datetime import date, timedelta

from sqlalchemy import case, func

from ..extensions import db
from ..models import Customer, Invoice, Order, OrderItem, Payment, Product
from ..time_utils import day_bounds, utcnow
from .checkout_service import ORDER_CANCELLED
from .ledger_service import INVOICE_CANCELLED, PAYMENT_METHODS


def _growth_percent(current: int, previous: int) -> float:
    """Percentage change; 0.0 when there is no previous baseline."""
    if previous <= 0:
        return 0.0
    return round((current - previous) / previous * 100, 1)


def _month_keys(months: int, today: date) -> list[str]:
    keys = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def dashboard_summary(store_id: int) -> dict:
    customer_count = db.session.query(func.count(Customer.id)).filter(Customer.store_id == store_id).scalar()
    product_count = db.session.query(func.count(Product.id)).filter(Product.store_id == store_id).scalar()

    order_count, total_sales = (
        db.session.query(func.count(Order.id), func.coalesce(func.sum(Order.total_amount_cents), 0))
        .filter(Order.store_id == store_id, Order.status != ORDER_CANCELLED)
        .one()
    )

    # reversals keep the original method, so this is net of reversed payments
    payments_received = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.store_id == store_id, Payment.payment_method.in_(PAYMENT_METHODS))
        .scalar()
    )

    receivables, credits = (
        db.session.query(
            func.coalesce(func.sum(case((Customer.balance_cents < 0, -Customer.balance_cents), else_=0)), 0),
            func.coalesce(func.sum(case((Customer.balance_cents > 0, Customer.balance_cents), else_=0)), 0),
        )
        .filter(Customer.store_id == store_id)
        .one()
    )
    customers_in_debt = (
        db.session.query(func.count(Customer.id))
        .filter(Customer.store_id == store_id, Customer.balance_cents < 0)
        .scalar()
    )

    return {
        "total_customers": int(customer_count or 0),
        "total_products": int(product_count or 0),
        "total_orders": int(order_count or 0),
        "total_sales_cents": int(total_sales or 0),
        "total_payments_received_cents": int(payments_received or 0),
        "receivables_cents": int(receivables or 0),
        "credits_cents": int(credits or 0),
        "customers_in_debt": int(customers_in_debt or 0),
    }


def monthly_revenue(store_id: int, months: int = 6, today: date | None = None) -> dict:
    """
    Invoiced revenue per calendar month for the last N months (oldest
    first), with month-over-month growth of the latest month.
    """
    months = max(1, min(months, 24))
    today = today or utcnow().date()
    keys = _month_keys(months, today)

    period = func.strftime("%Y-%m", Invoice.created_at)
    rows = (
        db.session.query(period.label("period"), func.coalesce(func.sum(Invoice.total_amount_cents), 0))
        .filter(
            Invoice.store_id == store_id,
            Invoice.status != INVOICE_CANCELLED,
            period.in_(keys),
        )
        .group_by(period)
        .all()
    )
    totals = {row[0]: int(row[1] or 0) for row in rows}

    series = [{"month": key, "revenue_cents": totals.get(key, 0)} for key in keys]
    latest = series[-1]["revenue_cents"]
    previous = series[-2]["revenue_cents"] if len(series) > 1 else 0

    return {
        "months": series,
        "revenue_growth_percent": _growth_percent(latest, previous),
    }


def customer_growth(store_id: int, days: int = 30) -> dict:
    """New customers in the last `days` compared with the window before."""
    now = utcnow()
    recent_start = now - timedelta(days=days)
    previous_start = now - timedelta(days=days * 2)

    recent = (
        db.session.query(func.count(Customer.id))
        .filter(Customer.store_id == store_id, Customer.created_at >= recent_start)
        .scalar()
    )
    previous = (
        db.session.query(func.count(Customer.id))
        .filter(
            Customer.store_id == store_id,
            Customer.created_at >= previous_start,
            Customer.created_at < recent_start,
        )
        .scalar()
    )
    return {
        "days": days,
        "new_customers": int(recent or 0),
        "previous_new_customers": int(previous or 0),
        "customer_growth_percent": _growth_percent(int(recent or 0), int(previous or 0)),
    }


def top_products(store_id: int, limit: int = 5) -> list[dict]:
    """Best sellers by revenue from non-cancelled orders."""
    limit = max(1, min(limit, 50))
    revenue = func.sum(OrderItem.total_price_cents)
    rows = (
        db.session.query(
            OrderItem.product_id,
            OrderItem.product_name,
            func.sum(OrderItem.quantity).label("quantity_sold"),
            revenue.label("revenue_cents"),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(Order.store_id == store_id, Order.status != ORDER_CANCELLED)
        .group_by(OrderItem.product_id, OrderItem.product_name)
        .order_by(revenue.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.product_id,
            "product_name": row.product_name,
            "quantity_sold": int(row.quantity_sold or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def daily_sales(store_id: int, day: date | None = None) -> dict:
    """Orders created on one UTC day and their total."""
    day = day or utcnow().date()
    start, end = day_bounds(day)
    orders = (
        db.session.query(Order)
        .filter(
            Order.store_id == store_id,
            Order.created_at >= start,
            Order.created_at < end,
            Order.status != ORDER_CANCELLED,
        )
        .order_by(Order.created_at.asc(), Order.id.asc())
        .all()
    )
    return {
        "date": day.isoformat(),
        "orders": [o.to_dict() for o in orders],
        "order_count": len(orders),
        "total_cents": sum(o.total_amount_cents for o in orders),
    }
