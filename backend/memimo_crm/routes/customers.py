# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/memimo_crm/routes/customers.py
"""
Customer management routes.

SECURITY: All routes require authentication (any role).
"""
from flask import Blueprint, request

from ..decorators import require_auth
from ..models import Customer
from ..services import customer_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_customer,
)
from .responses import failure

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "national_id", "phone", "email", "notes"},
    required_on_create={"first_name", "last_name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    """
    List customers, newest first.

    Query params:
    - search: str (optional) - matches names, national id and phone
    - limit: int (optional)
    """
    try:
        customers = customer_service.list_customers(
            search=request.args.get("search"),
            limit=request.args.get("limit", type=int),
        )
        return {"items": [c.to_dict() for c in customers], "count": len(customers)}
    except Exception as e:
        return failure(e, "list customers")


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
        enforce_rules_customer(patch)
        customer = customer_service.create_customer(patch)
        return {"customer": customer.to_dict()}, 201
    except Exception as e:
        return failure(e, "create customer")


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return {"customer": customer_service.get_customer(customer_id).to_dict()}
    except Exception as e:
        return failure(e, "load customer")


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
        enforce_rules_customer(patch)
        customer = customer_service.update_customer(customer_id, patch)
        return {"customer": customer.to_dict()}
    except Exception as e:
        return failure(e, "update customer")


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    """Hard delete. 409 when the customer has recorded sales."""
    try:
        customer_service.delete_customer(customer_id)
        return {"message": "Customer deleted"}
    except Exception as e:
        return failure(e, "delete customer")


@customers_bp.get("/<int:customer_id>/sales")
@require_auth
def customer_sales_route(customer_id: int):
    """Purchase history, newest first, with lines."""
    try:
        sales = customer_service.purchase_history(customer_id)
        return {"items": [s.to_dict(include_lines=True) for s in sales], "count": len(sales)}
    except Exception as e:
        return failure(e, "load purchase history")
