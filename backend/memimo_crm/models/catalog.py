from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductCategory(db.Model):
    """Product grouping shown in the catalog and the sales report."""
    __tablename__ = "product_categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
        }


class Product(db.Model):
    """
    Catalog item.

    is_addon marks toppings and extras that are sold alongside a main item.
    Unavailable products stay in the catalog but cannot be sold.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_available", "category_id", "is_available"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    price_cents = db.Column(db.Integer, nullable=False, default=0)

    category_id = db.Column(db.Integer, db.ForeignKey("product_categories.id"), nullable=False, index=True)
    is_available = db.Column(db.Boolean, nullable=False, default=True)
    is_addon = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("ProductCategory", backref=db.backref("products", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "price_cents": self.price_cents,
            "category_id": self.category_id,
            "category": self.category.name if self.category else None,
            "is_available": self.is_available,
            "is_addon": self.is_addon,
            "created_at": to_utc_z(self.created_at),
        }
