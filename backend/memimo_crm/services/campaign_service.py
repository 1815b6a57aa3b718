# Overview: Service-layer operations for campaigns; encapsulates business logic and database work.

"""
Campaign Service

Campaign CRUD, status changes, per-campaign statistics and the bulk
assignment write used by the dispatcher.

DISCOUNT VALUE UNITS (same as the model):
- percentage: basis points (1000 = 10%)
- fixed_amount: cents

STATUS: created campaigns start "active". Only an administrator may move a
campaign between active / scheduled / paused / finished; nothing changes
status automatically.
"""

from __future__ import annotations

from datetime import date, datetime

from ..errors import AuthUnauthorized, NotFoundError
from ..extensions import db
from ..models import (
    Campaign,
    CampaignCustomer,
    CAMPAIGN_CHANNELS,
    CAMPAIGN_STATUSES,
    DISCOUNT_TYPES,
)
from ..time_utils import parse_iso_date, utcnow
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_campaign,
    validate_payload,
)
from . import auth_service
from .persistence import commit_or_raise


CAMPAIGN_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "description", "discount_type", "discount_value",
        "start_date", "end_date", "channel",
    },
    required_on_create={"name", "channel"},
)

CAMPAIGN_MUTABLE_FIELDS = CAMPAIGN_POLICY.writable_fields

SHOP_NAME = "Heladería Memimo"


def validate_campaign_fields(payload: dict, partial: bool = False, existing: Campaign | None = None) -> dict:
    """
    Validate wizard / API fields into a clean patch.

    For partial updates the date-order and discount checks run against the
    merged result, so changing only end_date still respects start_date.
    """
    patch = validate_payload(model=Campaign, payload=payload, policy=CAMPAIGN_POLICY, partial=partial)

    merged = dict(patch)
    if existing is not None:
        for key in ("discount_type", "discount_value", "start_date", "end_date"):
            merged.setdefault(key, getattr(existing, key))

    enforce_rules_campaign(merged, CAMPAIGN_CHANNELS, DISCOUNT_TYPES)

    if merged.get("discount_type") and merged.get("discount_value") is None:
        raise ValidationError("discount_value is required when discount_type is set")

    if not partial or "name" in patch:
        if not patch.get("name"):
            raise ValidationError("name is required")

    return patch


def apply_campaign_patch(c: Campaign, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CAMPAIGN_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def _get_or_404(campaign_id: int) -> Campaign:
    c = db.session.get(Campaign, campaign_id)
    if not c:
        raise NotFoundError("Campaign not found")
    return c


def list_campaigns(status: str | None = None, channel: str | None = None) -> list[Campaign]:
    """Newest campaigns first."""
    query = db.session.query(Campaign)
    if status:
        if status not in CAMPAIGN_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(sorted(CAMPAIGN_STATUSES))}")
        query = query.filter(Campaign.status == status)
    if channel:
        query = query.filter(Campaign.channel == channel)
    return query.order_by(Campaign.created_at.desc(), Campaign.id.desc()).all()


def get_campaign(campaign_id: int) -> Campaign:
    return _get_or_404(campaign_id)


def create_campaign(patch: dict, user_id: int | None = None) -> Campaign:
    """Persist a validated patch as a new active campaign."""
    now = utcnow()
    c = Campaign(status="active", created_by_user_id=user_id, created_at=now, updated_at=now)
    apply_campaign_patch(c, patch)
    db.session.add(c)
    commit_or_raise()
    return c


def update_campaign(campaign_id: int, payload: dict) -> Campaign:
    """Validate and apply field updates. Never sends anything."""
    c = _get_or_404(campaign_id)
    patch = validate_campaign_fields(payload, partial=True, existing=c)
    apply_campaign_patch(c, patch)
    c.updated_at = utcnow()
    commit_or_raise()
    return c


def change_status(campaign_id: int, status: str, admin_id: int) -> Campaign:
    if not auth_service.is_admin(admin_id):
        raise AuthUnauthorized("Only administrators can change campaign status")
    if status not in CAMPAIGN_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(CAMPAIGN_STATUSES))}")

    c = _get_or_404(campaign_id)
    c.status = status
    c.updated_at = utcnow()
    commit_or_raise()
    return c


def delete_campaign(campaign_id: int) -> None:
    """Hard delete; assignments go with it."""
    c = _get_or_404(campaign_id)
    db.session.delete(c)
    commit_or_raise()


# =============================================================================
# ASSIGNMENTS
# =============================================================================

def assign_and_mark_sent(campaign_id: int, customer_ids: list[int], sent_at: datetime | None = None) -> int:
    """
    Record every customer as assigned and sent=True in one commit.

    Existing pairs are updated in place, so dispatching twice never
    duplicates a (campaign, customer) row. Returns the number of customers
    recorded.
    """
    _get_or_404(campaign_id)
    sent_at = sent_at or utcnow()

    unique_ids = list(dict.fromkeys(customer_ids))
    if not unique_ids:
        return 0

    existing = {
        a.customer_id: a
        for a in db.session.query(CampaignCustomer).filter(
            CampaignCustomer.campaign_id == campaign_id,
            CampaignCustomer.customer_id.in_(unique_ids),
        ).all()
    }

    for customer_id in unique_ids:
        assignment = existing.get(customer_id)
        if assignment is None:
            assignment = CampaignCustomer(campaign_id=campaign_id, customer_id=customer_id)
            db.session.add(assignment)
        assignment.sent = True
        assignment.sent_at = sent_at

    commit_or_raise()
    return len(unique_ids)


def list_assignments(campaign_id: int) -> list[CampaignCustomer]:
    _get_or_404(campaign_id)
    return (
        db.session.query(CampaignCustomer)
        .filter(CampaignCustomer.campaign_id == campaign_id)
        .order_by(CampaignCustomer.id.asc())
        .all()
    )


def mark_responded(campaign_id: int, customer_id: int, responded: bool = True) -> CampaignCustomer:
    assignment = db.session.query(CampaignCustomer).filter_by(
        campaign_id=campaign_id, customer_id=customer_id
    ).first()
    if not assignment:
        raise NotFoundError("Customer is not assigned to this campaign")

    assignment.responded = bool(responded)
    assignment.responded_at = utcnow() if responded else None
    commit_or_raise()
    return assignment


def campaign_stats(campaign_id: int) -> dict:
    """Assigned / sent / responded counts; response_rate is responded over sent, in percent."""
    _get_or_404(campaign_id)

    base = db.session.query(CampaignCustomer).filter(CampaignCustomer.campaign_id == campaign_id)
    assigned = base.count()
    sent = base.filter(CampaignCustomer.sent.is_(True)).count()
    responded = base.filter(CampaignCustomer.responded.is_(True)).count()

    return {
        "campaign_id": campaign_id,
        "total_assigned": assigned,
        "total_sent": sent,
        "total_responded": responded,
        "response_rate": round(responded * 100.0 / sent, 1) if sent else 0.0,
    }


# =============================================================================
# MESSAGE TEMPLATE
# =============================================================================

def format_discount(discount_type: str | None, discount_value: int | None) -> str | None:
    if not discount_type or discount_value is None:
        return None
    if discount_type == "percentage":
        percent = discount_value / 100
        text = f"{percent:.2f}".rstrip("0").rstrip(".")
        return f"{text}% de descuento"
    return f"S/ {discount_value / 100:.2f} de descuento"


def _as_date(value) -> date | None:
    if value is None or isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        return None


def default_message(fields: dict) -> str:
    """
    Suggested campaign message built from the campaign fields.

    Deterministic: the same fields always give the same text. Lines for
    an absent description, discount or end date are left out.
    """
    parts = ["🍦 ¡PROMOCIÓN ESPECIAL! 🍦", (fields.get("name") or "").strip()]

    description = (fields.get("description") or "").strip()
    if description:
        parts.append(description)

    discount = format_discount(fields.get("discount_type"), fields.get("discount_value"))
    if discount:
        parts.append(f"🎁 {discount}")

    end_date = _as_date(fields.get("end_date"))
    if end_date:
        parts.append(f"📅 Válido hasta el {end_date.strftime('%d/%m/%Y')}")

    parts.append(f"📍 Visítanos en {SHOP_NAME} - Huancayo")
    parts.append("¡No te lo pierdas!")

    return "\n\n".join(parts)
