from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Shop customers.

    Only the id is unique; two customers may share a phone or email.
    Hard-deleted on request unless sales reference them.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_registered_at", "registered_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    national_id = db.Column(db.String(16), nullable=True, index=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    registered_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "national_id": self.national_id,
            "phone": self.phone,
            "email": self.email,
            "notes": self.notes,
            "registered_at": to_utc_z(self.registered_at),
        }
