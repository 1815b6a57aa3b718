from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Role(db.Model):
    """
    Flat role catalog.

    Exactly two roles ship with the system: "admin" unlocks user
    administration, "standard" covers day-to-day CRM work.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class User(db.Model):
    """
    Staff accounts.

    Users are created by an administrator and only ever soft-deactivated
    (is_active=False); they are never hard-deleted so audit references stay
    valid. created_by_user_id points at the admin that created the account.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False, default="")

    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_access_at = db.Column(db.DateTime(timezone=True), nullable=True)

    role = db.relationship("Role", backref=db.backref("users", lazy=True))
    created_by = db.relationship("User", remote_side=[id])

    @property
    def role_name(self) -> str | None:
        return self.role.name if self.role else None

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_profile(self) -> dict:
        """Profile shape handed out by login and session verification."""
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "display_name": self.display_name,
            "role": self.role_name,
            "is_active": self.is_active,
        }

    def to_dict(self) -> dict:
        data = self.to_profile()
        data.update({
            "role_id": self.role_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "last_access_at": to_utc_z(self.last_access_at) if self.last_access_at else None,
        })
        return data


class SessionToken(db.Model):
    """
    Login sessions.

    Tokens are cryptographically secure random strings (32 bytes = 64 hex
    chars); only their SHA-256 hash is stored. A session is valid while
    now <= expires_at and its user is active. Rows are deleted on logout,
    when found expired, and when the owning user is deactivated.
    """
    __tablename__ = "session_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    # Client information (for security monitoring)
    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "user_agent": self.user_agent,
        }


class AuthLog(db.Model):
    """
    Login attempt audit log.

    IMMUTABLE: Append-only. Keyed by the email that was typed, so attempts
    against unknown accounts are recorded too.
    """
    __tablename__ = "auth_logs"
    __table_args__ = (
        db.Index("ix_auth_logs_email_occurred", "email", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    success = db.Column(db.Boolean, nullable=False, index=True)
    message = db.Column(db.String(255), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "success": self.success,
            "message": self.message,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
