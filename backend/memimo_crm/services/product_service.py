# backend/memimo_crm/services/product_service.py
"""
Products Service

Catalog maintenance for products and their categories.

Products are hard-deleted on request unless a sale line references them;
in that case the operator should mark them unavailable instead.
"""
from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Product, ProductCategory, SaleLine
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .persistence import commit_or_raise

PRODUCT_MUTABLE_FIELDS = {"name", "description", "price_cents", "category_id", "is_available", "is_addon"}

DEFAULT_CATEGORIES = ["Helados", "Paletas", "Bebidas", "Postres", "Toppings"]


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_category(category_id: int | None) -> ProductCategory:
    if category_id is None:
        raise ValidationError("category_id is required")
    category = db.session.get(ProductCategory, category_id)
    if not category:
        raise ValidationError("Category not found")
    return category


def _get_or_404(product_id: int) -> Product:
    p = db.session.get(Product, product_id)
    if not p:
        raise NotFoundError("Product not found")
    return p


def list_products(
    category_id: int | None = None,
    available: bool | None = None,
    search: str | None = None,
) -> list[Product]:
    """Products ordered by name; optional category / availability / name filters."""
    query = db.session.query(Product)

    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if available is not None:
        query = query.filter(Product.is_available.is_(available))
    if search and search.strip():
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))

    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def get_product(product_id: int) -> Product:
    return _get_or_404(product_id)


def create_product(patch: dict) -> Product:
    _require_category(patch.get("category_id"))

    p = Product(created_at=utcnow())
    apply_product_patch(p, patch)

    db.session.add(p)
    commit_or_raise()
    return p


def update_product(product_id: int, patch: dict) -> Product:
    p = _get_or_404(product_id)
    if "category_id" in patch:
        _require_category(patch["category_id"])

    apply_product_patch(p, patch)
    commit_or_raise()
    return p


def delete_product(product_id: int) -> None:
    p = _get_or_404(product_id)

    referenced = db.session.query(SaleLine.id).filter(SaleLine.product_id == p.id).first()
    if referenced:
        raise ConflictError("Product appears in recorded sales; mark it unavailable instead")

    db.session.delete(p)
    commit_or_raise()


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(include_inactive: bool = False) -> list[ProductCategory]:
    query = db.session.query(ProductCategory)
    if not include_inactive:
        query = query.filter(ProductCategory.is_active.is_(True))
    return query.order_by(ProductCategory.name.asc()).all()


def create_category(name: str) -> ProductCategory:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if len(name) > 128:
        raise ValidationError("name exceeds max length 128")

    category = ProductCategory(name=name, is_active=True)
    db.session.add(category)
    commit_or_raise(conflict_message="Category already exists")
    return category


def create_default_categories() -> int:
    """Seed the starter categories if missing. Returns count created."""
    created = 0
    for name in DEFAULT_CATEGORIES:
        if not db.session.query(ProductCategory).filter_by(name=name).first():
            db.session.add(ProductCategory(name=name, is_active=True))
            created += 1
    db.session.commit()
    return created
