# Overview: Flask API routes for reports operations; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth
from ..services import reporting_service
from ..time_utils import parse_iso_date
from ..validation import ValidationError
from .responses import failure

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be a YYYY-MM-DD date")


@reports_bp.get("/dashboard")
@require_auth
def dashboard_route():
    try:
        return reporting_service.dashboard_stats()
    except Exception as e:
        return failure(e, "build dashboard")


@reports_bp.get("/sales")
@require_auth
def sales_report_route():
    """Query params: start, end (YYYY-MM-DD, inclusive, optional)."""
    try:
        return reporting_service.sales_report(_date_arg("start"), _date_arg("end"))
    except Exception as e:
        return failure(e, "build sales report")
