"""
Sales Service - counter sales recorded against a customer

WHY: A sale is written once, with every line and the total in a single
commit. Unit prices are copied from the catalog at that moment and the
total is never recalculated afterwards, so historical sales keep the
price the customer actually paid.
"""

from datetime import date, datetime, time, timedelta

from ..errors import NotFoundError
from ..extensions import db
from ..models import Customer, Product, Sale, SaleLine, PAYMENT_METHODS
from ..time_utils import utcnow
from ..validation import ValidationError
from .persistence import commit_or_raise


MAX_LINE_QUANTITY = 999


class SaleError(ValidationError):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _parse_items(items) -> list[tuple[int, int]]:
    """Validate the cart payload into (product_id, quantity) pairs."""
    if not isinstance(items, list) or not items:
        raise SaleError("Cannot create a sale with no items")

    parsed = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise SaleError(f"Item {index} is not an object")
        product_id = item.get("product_id")
        quantity = item.get("quantity", 1)
        if not isinstance(product_id, int) or isinstance(product_id, bool):
            raise SaleError(f"Item {index}: product_id must be an integer")
        if not isinstance(quantity, int) or isinstance(quantity, bool):
            raise SaleError(f"Item {index}: quantity must be an integer")
        if quantity <= 0 or quantity > MAX_LINE_QUANTITY:
            raise SaleError(f"Item {index}: quantity must be between 1 and {MAX_LINE_QUANTITY}")
        parsed.append((product_id, quantity))
    return parsed


def create_sale(
    customer_id: int,
    items: list[dict],
    payment_method: str = "cash",
    notes: str | None = None,
    user_id: int | None = None,
) -> Sale:
    """
    Record a sale with its lines.

    items: [{"product_id": int, "quantity": int}, ...] in display order.
    Unavailable products are refused with the offending ids in details.
    """
    customer = db.session.get(Customer, customer_id) if customer_id else None
    if not customer:
        raise SaleError("Customer not found")

    if payment_method not in PAYMENT_METHODS:
        raise SaleError(f"payment_method must be one of: {', '.join(sorted(PAYMENT_METHODS))}")

    parsed = _parse_items(items)

    product_ids = {product_id for product_id, _ in parsed}
    products = {
        p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }

    missing = sorted(product_ids - set(products))
    if missing:
        raise SaleError("Product not found", details={"product_ids": missing})

    unavailable = sorted(pid for pid in product_ids if not products[pid].is_available)
    if unavailable:
        raise SaleError("Some products are not available", details={"product_ids": unavailable})

    sale = Sale(
        customer_id=customer.id,
        created_by_user_id=user_id,
        payment_method=payment_method,
        notes=(notes or "").strip() or None,
        sold_at=utcnow(),
    )

    total = 0
    for line_number, (product_id, quantity) in enumerate(parsed, start=1):
        product = products[product_id]
        subtotal = product.price_cents * quantity
        total += subtotal
        sale.lines.append(SaleLine(
            line_number=line_number,
            product_id=product_id,
            quantity=quantity,
            unit_price_cents=product.price_cents,
            subtotal_cents=subtotal,
        ))

    sale.total_cents = total

    db.session.add(sale)
    commit_or_raise()
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def day_bounds(start: date | None, end: date | None) -> tuple[datetime | None, datetime | None]:
    """Inclusive calendar range -> [start 00:00, end+1 00:00) datetimes."""
    start_dt = datetime.combine(start, time.min) if start else None
    end_dt = datetime.combine(end + timedelta(days=1), time.min) if end else None
    return start_dt, end_dt


def list_sales(
    start: date | None = None,
    end: date | None = None,
    customer_id: int | None = None,
) -> list[Sale]:
    """Sales newest first, optionally filtered by inclusive date range and customer."""
    if start and end and end < start:
        raise ValidationError("end date cannot be before start date")

    query = db.session.query(Sale)

    start_dt, end_dt = day_bounds(start, end)
    if start_dt:
        query = query.filter(Sale.sold_at >= start_dt)
    if end_dt:
        query = query.filter(Sale.sold_at < end_dt)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)

    return query.order_by(Sale.sold_at.desc(), Sale.id.desc()).all()
