from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CAMPAIGN_CHANNELS = {"telegram", "email", "whatsapp", "instagram", "facebook"}
CAMPAIGN_STATUSES = {"active", "scheduled", "paused", "finished"}
DISCOUNT_TYPES = {"percentage", "fixed_amount"}


class Campaign(db.Model):
    """
    Marketing campaign.

    DISCOUNT VALUE UNITS:
    - percentage: basis points (1000 = 10%)
    - fixed_amount: cents

    Status only changes through an explicit admin action; campaigns never
    auto-expire when end_date passes.
    """
    __tablename__ = "campaigns"
    __table_args__ = (
        db.Index("ix_campaigns_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=True)

    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    channel = db.Column(db.String(16), nullable=False, default="telegram")
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    assignments = db.relationship(
        "CampaignCustomer",
        backref="campaign",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def editable_fields(self) -> dict:
        """Fields the wizard loads and saves back when editing."""
        return {
            "name": self.name,
            "description": self.description,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "channel": self.channel,
        }

    def to_dict(self) -> dict:
        data = {"id": self.id}
        data.update(self.editable_fields())
        data.update({
            "status": self.status,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at) if self.updated_at else None,
        })
        return data


class CampaignCustomer(db.Model):
    """
    Campaign to customer assignment.

    sent=True means the customer was part of a dispatch, not that the
    message was delivered. responded is set by staff for reporting only.
    """
    __tablename__ = "campaign_customers"
    __table_args__ = (
        db.UniqueConstraint("campaign_id", "customer_id", name="uq_campaign_customers_pair"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    campaign_id = db.Column(db.Integer, db.ForeignKey("campaigns.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    sent = db.Column(db.Boolean, nullable=False, default=False)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    responded = db.Column(db.Boolean, nullable=False, default=False)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    customer = db.relationship("Customer")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "campaign_id": self.campaign_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.full_name if self.customer else None,
            "sent": self.sent,
            "sent_at": to_utc_z(self.sent_at) if self.sent_at else None,
            "responded": self.responded,
            "responded_at": to_utc_z(self.responded_at) if self.responded_at else None,
        }
