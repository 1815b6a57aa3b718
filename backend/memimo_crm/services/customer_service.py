# backend/memimo_crm/services/customer_service.py
"""
Customer Service

Customers are hard-deleted on request. A customer with recorded sales is
kept (ConflictError) so the sales history stays intact.
"""
from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import CampaignCustomer, Customer, Sale
from ..time_utils import utcnow
from ..validation import ConflictError
from .persistence import commit_or_raise

CUSTOMER_MUTABLE_FIELDS = {"first_name", "last_name", "national_id", "phone", "email", "notes"}


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def _get_or_404(customer_id: int) -> Customer:
    c = db.session.get(Customer, customer_id)
    if not c:
        raise NotFoundError("Customer not found")
    return c


def list_customers(search: str | None = None, limit: int | None = None) -> list[Customer]:
    """
    Newest customers first.

    search matches first name, last name, national id and phone.
    """
    query = db.session.query(Customer)

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(
            Customer.first_name.ilike(pattern),
            Customer.last_name.ilike(pattern),
            Customer.national_id.ilike(pattern),
            Customer.phone.ilike(pattern),
        ))

    query = query.order_by(Customer.registered_at.desc(), Customer.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()


def get_customer(customer_id: int) -> Customer:
    return _get_or_404(customer_id)


def get_customers_by_ids(customer_ids: list[int]) -> list[Customer]:
    """
    Load customers in the order the ids were given.

    Raises NotFoundError naming the ids that do not exist.
    """
    if not customer_ids:
        return []
    rows = db.session.query(Customer).filter(Customer.id.in_(set(customer_ids))).all()
    by_id = {c.id: c for c in rows}
    missing = [cid for cid in customer_ids if cid not in by_id]
    if missing:
        raise NotFoundError("Customer not found", details={"customer_ids": missing})
    return [by_id[cid] for cid in customer_ids]


def create_customer(patch: dict) -> Customer:
    c = Customer(registered_at=utcnow())
    apply_customer_patch(c, patch)
    db.session.add(c)
    commit_or_raise()
    return c


def update_customer(customer_id: int, patch: dict) -> Customer:
    c = _get_or_404(customer_id)
    apply_customer_patch(c, patch)
    commit_or_raise()
    return c


def delete_customer(customer_id: int) -> None:
    c = _get_or_404(customer_id)

    has_sales = db.session.query(Sale.id).filter(Sale.customer_id == c.id).first()
    if has_sales:
        raise ConflictError("Customer has recorded sales and cannot be deleted")

    # Campaign assignments go with the customer
    db.session.query(CampaignCustomer).filter(CampaignCustomer.customer_id == c.id).delete()
    db.session.delete(c)
    commit_or_raise()


def purchase_history(customer_id: int) -> list[Sale]:
    """Sales for one customer, newest first."""
    c = _get_or_404(customer_id)
    return (
        db.session.query(Sale)
        .filter(Sale.customer_id == c.id)
        .order_by(Sale.sold_at.desc(), Sale.id.desc())
        .all()
    )
