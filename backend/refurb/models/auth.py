from __future__ import annotations

from ..extensions import db
from refurb.time_utils import to_utc_z, utcnow


class User(db.Model):
    """
    One authenticated principal per device.

    Login is email + PIN. The PIN is stored as a bcrypt hash only; there is
    no second password for the same account.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Normalized (stripped, lower-case) on write
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed 4-6 digit PIN
    pin_hash = db.Column(db.String(255), nullable=False)

    display_name = db.Column(db.String(120), nullable=False, default="")

    # Informational only; the lock threshold is fixed (see session_service)
    session_timeout_minutes = db.Column(db.Integer, nullable=False, default=30)

    last_activity = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "session_timeout_minutes": self.session_timeout_minutes,
            "last_activity": to_utc_z(self.last_activity),
            "created_at": to_utc_z(self.created_at),
        }


class SessionToken(db.Model):
    """
    Backend session issued after a successful PIN login.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Plaintext token only returned once at creation
    - locked_at is set when the session goes idle or is locked explicitly;
      a locked session stays valid but only unlock/logout are accepted
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True, passive_deletes=True))

    @property
    def is_locked(self) -> bool:
        return self.locked_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_locked": self.is_locked,
            "locked_at": to_utc_z(self.locked_at),
        }


class AuditLog(db.Model):
    """
    Append-only audit trail (login, logout, signup, pin changes).

    Writes are best-effort: a failure here never fails the operation that
    produced the entry.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)

    # "metadata" is reserved on declarative models
    details = db.Column("metadata", db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "metadata": self.details or {},
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "created_at": to_utc_z(self.created_at),
        }
