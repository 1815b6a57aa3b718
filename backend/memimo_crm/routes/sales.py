# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/memimo_crm/routes/sales.py
"""Sales API routes"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_auth
from ..services import sales_service
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from .responses import failure


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(name: str):
    raw = request.args.get(name)
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first.

    Query params:
    - start, end: YYYY-MM-DD (inclusive, optional)
    - customer_id: int (optional)
    """
    try:
        sales = sales_service.list_sales(
            start=_date_arg("start"),
            end=_date_arg("end"),
            customer_id=request.args.get("customer_id", type=int),
        )
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)})
    except Exception as e:
        return failure(e, "list sales")


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Record a sale.

    Request body:
    - customer_id: int (required)
    - items: [{"product_id": int, "quantity": int}, ...] (required, non-empty)
    - payment_method: str (optional, default "cash")
    - notes: str (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.create_sale(
            customer_id=data.get("customer_id"),
            items=data.get("items"),
            payment_method=data.get("payment_method") or "cash",
            notes=data.get("notes"),
            user_id=g.current_user.id,
        )
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 201
    except Exception as e:
        return failure(e, "create sale")


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"sale": sale.to_dict(include_lines=True)})
    except Exception as e:
        return failure(e, "load sale")
