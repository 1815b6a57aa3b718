# Overview: Flask API routes for campaigns operations; parses input and returns JSON responses.

# backend/memimo_crm/routes/campaigns.py
"""
Campaign routes.

- CRUD on campaigns (create here does not send anything)
- PATCH status: admin only
- stats and per-customer "responded" flag
- preview-message: the suggested message for a set of fields
- dispatch: run the four-step wizard in one request and send
- channels: which delivery channels are configured

SECURITY: All routes require authentication.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth
from ..extensions import db
from ..models import Customer
from ..services import campaign_service
from ..services.campaign_wizard import run_wizard
from ..services.dispatch_service import CampaignDispatcher, channel_statuses
from .responses import failure


campaigns_bp = Blueprint("campaigns", __name__, url_prefix="/api/campaigns")


@campaigns_bp.get("")
@require_auth
def list_campaigns_route():
    """Query params: status, channel (optional)."""
    try:
        campaigns = campaign_service.list_campaigns(
            status=request.args.get("status"),
            channel=request.args.get("channel"),
        )
        return jsonify({"items": [c.to_dict() for c in campaigns], "count": len(campaigns)})
    except Exception as e:
        return failure(e, "list campaigns")


@campaigns_bp.post("")
@require_auth
def create_campaign_route():
    try:
        payload = request.get_json(silent=True) or {}
        patch = campaign_service.validate_campaign_fields(payload, partial=False)
        campaign = campaign_service.create_campaign(patch, user_id=g.current_user.id)
        return jsonify({"campaign": campaign.to_dict()}), 201
    except Exception as e:
        return failure(e, "create campaign")


@campaigns_bp.get("/channels")
@require_auth
def channels_route():
    return jsonify({"channels": channel_statuses(current_app.config)})


@campaigns_bp.post("/preview-message")
@require_auth
def preview_message_route():
    """Suggested message for the given campaign fields. Nothing is saved."""
    payload = request.get_json(silent=True) or {}
    fields = payload.get("fields", payload)
    try:
        if not isinstance(fields, dict):
            return jsonify({"error": "fields must be an object", "code": "VALIDATION_ERROR"}), 400
        patch = campaign_service.validate_campaign_fields(fields, partial=True)
        return jsonify({"message": campaign_service.default_message(patch)})
    except Exception as e:
        return failure(e, "preview campaign message")


@campaigns_bp.post("/dispatch")
@require_auth
def dispatch_route():
    """
    Finish the wizard: create the campaign and send it.

    Request body:
    - fields: {name, description, discount_type, discount_value, start_date, end_date, channel}
    - customer_ids: [int, ...] (at least one)
    - message: str (optional; the suggested message is used when absent)
    - campaign_id: int (optional; edit that campaign's fields instead, nothing is sent)

    Per-recipient failures are reported in the summary, not as an error
    status. 409 when the channel has no credentials configured.
    """
    try:
        payload = request.get_json(silent=True) or {}

        campaign = None
        campaign_id = payload.get("campaign_id")
        if campaign_id is not None:
            campaign = campaign_service.get_campaign(campaign_id)

        all_customer_ids = [row.id for row in db.session.query(Customer.id).all()]

        result = run_wizard(
            payload,
            CampaignDispatcher.from_app(),
            user_id=g.current_user.id,
            customer_ids=all_customer_ids,
            campaign=campaign,
        )
        status = 201 if result.mode == "created" else 200
        return jsonify(result.to_dict()), status
    except Exception as e:
        return failure(e, "dispatch campaign")


@campaigns_bp.get("/<int:campaign_id>")
@require_auth
def get_campaign_route(campaign_id: int):
    """Campaign with its assignments."""
    try:
        campaign = campaign_service.get_campaign(campaign_id)
        assignments = campaign_service.list_assignments(campaign_id)
        data = campaign.to_dict()
        data["customers"] = [a.to_dict() for a in assignments]
        return jsonify({"campaign": data})
    except Exception as e:
        return failure(e, "load campaign")


@campaigns_bp.put("/<int:campaign_id>")
@require_auth
def update_campaign_route(campaign_id: int):
    try:
        payload = request.get_json(silent=True) or {}
        campaign = campaign_service.update_campaign(campaign_id, payload)
        return jsonify({"campaign": campaign.to_dict()})
    except Exception as e:
        return failure(e, "update campaign")


@campaigns_bp.delete("/<int:campaign_id>")
@require_auth
def delete_campaign_route(campaign_id: int):
    try:
        campaign_service.delete_campaign(campaign_id)
        return jsonify({"message": "Campaign deleted"})
    except Exception as e:
        return failure(e, "delete campaign")


@campaigns_bp.patch("/<int:campaign_id>/status")
@require_auth
def change_status_route(campaign_id: int):
    """Body: {"status": "active" | "scheduled" | "paused" | "finished"}. Admin only."""
    try:
        payload = request.get_json(silent=True) or {}
        campaign = campaign_service.change_status(campaign_id, payload.get("status"), g.current_user.id)
        return jsonify({"campaign": campaign.to_dict()})
    except Exception as e:
        return failure(e, "change campaign status")


@campaigns_bp.get("/<int:campaign_id>/stats")
@require_auth
def stats_route(campaign_id: int):
    try:
        return jsonify(campaign_service.campaign_stats(campaign_id))
    except Exception as e:
        return failure(e, "load campaign stats")


@campaigns_bp.patch("/<int:campaign_id>/customers/<int:customer_id>")
@require_auth
def mark_responded_route(campaign_id: int, customer_id: int):
    """Body: {"responded": bool} (default true)."""
    try:
        payload = request.get_json(silent=True) or {}
        responded = payload.get("responded", True)
        if not isinstance(responded, bool):
            return jsonify({"error": "responded must be a boolean", "code": "VALIDATION_ERROR"}), 400
        assignment = campaign_service.mark_responded(campaign_id, customer_id, responded)
        return jsonify({"assignment": assignment.to_dict()})
    except Exception as e:
        return failure(e, "update campaign response")
