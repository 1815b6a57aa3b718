# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Product, ProductCategory, Sale, SaleLine
from ..time_utils import utcnow
from ..validation import ValidationError
from .sales_service import day_bounds


class ReportError(ValidationError):
    """Raised when report parameters are unusable."""
    pass


def _average(total_cents: int, count: int) -> int:
    return int(round(total_cents / count)) if count else 0


def _range_filter(query, start_dt: datetime | None, end_dt: datetime | None):
    if start_dt:
        query = query.filter(Sale.sold_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.sold_at < end_dt)
    return query


def _top_products(start_dt: datetime | None, end_dt: datetime | None, limit: int) -> list[dict]:
    query = db.session.query(
        Product.id.label("product_id"),
        Product.name.label("name"),
        func.coalesce(func.sum(SaleLine.quantity), 0).label("quantity"),
        func.coalesce(func.sum(SaleLine.subtotal_cents), 0).label("revenue_cents"),
    ).join(SaleLine, SaleLine.product_id == Product.id).join(Sale, Sale.id == SaleLine.sale_id)

    query = _range_filter(query, start_dt, end_dt)

    rows = (
        query.group_by(Product.id, Product.name)
        .order_by(func.sum(SaleLine.quantity).desc(), Product.name.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": row.product_id,
            "name": row.name,
            "quantity": int(row.quantity or 0),
            "revenue_cents": int(row.revenue_cents or 0),
        }
        for row in rows
    ]


def dashboard_stats(now: datetime | None = None) -> dict:
    """
    Home screen figures.

    Month figures cover the calendar month containing now.
    """
    now = now or utcnow()
    month_start = datetime(now.year, now.month, 1)
    if now.month == 12:
        next_month = datetime(now.year + 1, 1, 1)
    else:
        next_month = datetime(now.year, now.month + 1, 1)

    total_customers = db.session.query(func.count(Customer.id)).scalar() or 0

    month_sales = _range_filter(
        db.session.query(
            func.count(Sale.id).label("sales_count"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue"),
        ),
        month_start,
        next_month,
    ).one()

    month_count = int(month_sales.sales_count or 0)
    month_revenue = int(month_sales.revenue or 0)

    newest = (
        db.session.query(Customer)
        .order_by(Customer.registered_at.desc(), Customer.id.desc())
        .limit(5)
        .all()
    )

    return {
        "total_customers": int(total_customers),
        "month_revenue_cents": month_revenue,
        "month_sales_count": month_count,
        "average_ticket_cents": _average(month_revenue, month_count),
        "recent_customers": [c.to_dict() for c in newest],
        "top_products": _top_products(month_start, next_month, limit=5),
    }


def sales_report(start: date | None, end: date | None) -> dict:
    """
    Sales figures for an inclusive calendar date range.

    Either bound may be None (open range).
    """
    if start and end and end < start:
        raise ReportError("end date cannot be before start date")

    start_dt, end_dt = day_bounds(start, end)

    totals = _range_filter(
        db.session.query(
            func.count(Sale.id).label("sales_count"),
            func.count(func.distinct(Sale.customer_id)).label("customer_count"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue"),
        ),
        start_dt,
        end_dt,
    ).one()

    items_sold = _range_filter(
        db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
        .join(Sale, Sale.id == SaleLine.sale_id),
        start_dt,
        end_dt,
    ).scalar()

    period_expr = func.strftime("%Y-%m-%d", Sale.sold_at)
    per_day = _range_filter(
        db.session.query(
            period_expr.label("day"),
            func.count(Sale.id).label("sales_count"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue"),
        ),
        start_dt,
        end_dt,
    ).group_by("day").order_by("day").all()

    per_category = _range_filter(
        db.session.query(
            ProductCategory.id.label("category_id"),
            ProductCategory.name.label("name"),
            func.coalesce(func.sum(SaleLine.subtotal_cents), 0).label("revenue"),
        )
        .join(Product, Product.category_id == ProductCategory.id)
        .join(SaleLine, SaleLine.product_id == Product.id)
        .join(Sale, Sale.id == SaleLine.sale_id),
        start_dt,
        end_dt,
    ).group_by(ProductCategory.id, ProductCategory.name).order_by(
        func.sum(SaleLine.subtotal_cents).desc()
    ).all()

    sales_count = int(totals.sales_count or 0)
    revenue = int(totals.revenue or 0)

    return {
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "total_revenue_cents": revenue,
        "sales_count": sales_count,
        "customer_count": int(totals.customer_count or 0),
        "average_ticket_cents": _average(revenue, sales_count),
        "items_sold": int(items_sold or 0),
        "revenue_by_day": [
            {
                "day": row.day,
                "sales_count": int(row.sales_count or 0),
                "revenue_cents": int(row.revenue or 0),
            }
            for row in per_day
        ],
        "top_products": _top_products(start_dt, end_dt, limit=10),
        "revenue_by_category": [
            {
                "category_id": row.category_id,
                "name": row.name,
                "revenue_cents": int(row.revenue or 0),
            }
            for row in per_category
        ],
    }
