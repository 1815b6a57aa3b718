# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/memimo_crm/routes/products.py
"""
Product and category management routes.

SECURITY: All routes require authentication (any role).
"""
from flask import Blueprint, request

from ..decorators import require_auth
from ..models import Product
from ..services import product_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
)
from .responses import failure, parse_bool_arg

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "category_id", "is_available", "is_addon"},
    required_on_create={"name", "price_cents", "category_id"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List products ordered by name.

    Query params:
    - category_id: int (optional)
    - available: bool (optional)
    - search: str (optional) - matches product name
    """
    try:
        products = product_service.list_products(
            category_id=request.args.get("category_id", type=int),
            available=parse_bool_arg(request.args.get("available")),
            search=request.args.get("search"),
        )
        return {"items": [p.to_dict() for p in products], "count": len(products)}
    except Exception as e:
        return failure(e, "list products")


@products_bp.post("")
@require_auth
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)  # Handles price validation including max check
        product = product_service.create_product(patch)
        return {"product": product.to_dict()}, 201
    except Exception as e:
        return failure(e, "create product")


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return {"product": product_service.get_product(product_id).to_dict()}
    except Exception as e:
        return failure(e, "load product")


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = product_service.update_product(product_id, patch)
        return {"product": product.to_dict()}
    except Exception as e:
        return failure(e, "update product")


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    """Hard delete. 409 when a recorded sale references the product."""
    try:
        product_service.delete_product(product_id)
        return {"message": "Product deleted"}
    except Exception as e:
        return failure(e, "delete product")


# =============================================================================
# CATEGORIES
# =============================================================================

@products_bp.get("/categories")
@require_auth
def list_categories_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    categories = product_service.list_categories(include_inactive=include_inactive)
    return {"items": [c.to_dict() for c in categories], "count": len(categories)}


@products_bp.post("/categories")
@require_auth
def create_category_route():
    payload = request.get_json(silent=True) or {}
    try:
        category = product_service.create_category(payload.get("name"))
        return {"category": category.to_dict()}, 201
    except Exception as e:
        return failure(e, "create category")
