"""
Commissioning Report Editor
Auth domain model.

Models:
    - User: email/password account.
    - UserRole: one app role per user (admin | editor | viewer).
    - RoleRequest: a signed-in user's request for a role, decided by an admin.
    - AuthSession: server-side record of an issued capability token; created on
      sign-in or unlock, revoked on sign-out.
"""

import uuid
from datetime import datetime, timezone

from commissioning.models import db

ROLES = ("admin", "editor", "viewer")
EDIT_ROLES = {"admin", "editor"}

REQUEST_STATUSES = ("pending", "approved", "rejected")


def _utcnow():
    return datetime.now(timezone.utc)


# ═══════════════════════════════════════════════════════════════
# 1. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login_at = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    role_assignment = db.relationship(
        "UserRole", back_populates="user", uselist=False,
        cascade="all, delete-orphan",
    )
    sessions = db.relationship(
        "AuthSession", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def role(self) -> str | None:
        return self.role_assignment.role if self.role_assignment else None

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "is_active": self.is_active,
            "role": self.role,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 2. USER ROLES
# ═══════════════════════════════════════════════════════════════
class UserRole(db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    role = db.Column(db.String(20), nullable=False, default="viewer")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    user = db.relationship("User", back_populates="role_assignment")

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.user.email if self.user else None,
            "role": self.role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 3. ROLE REQUESTS
# ═══════════════════════════════════════════════════════════════
class RoleRequest(db.Model):
    __tablename__ = "role_requests"
    __table_args__ = (
        db.Index("ix_role_requests_status", "status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    email = db.Column(db.String(200), nullable=False)
    requested_role = db.Column(db.String(20), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    decided_at = db.Column(db.DateTime(timezone=True))

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "requested_role": self.requested_role,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }


# ═══════════════════════════════════════════════════════════════
# 4. AUTH SESSIONS
# ═══════════════════════════════════════════════════════════════
class AuthSession(db.Model):
    __tablename__ = "auth_sessions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    # NULL for shared-password unlock sessions
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
    )
    jti = db.Column(db.String(64), unique=True, nullable=False)
    role = db.Column(db.String(20), nullable=False)
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    method = db.Column(db.String(20), nullable=False, default="password")  # password | shared
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    revoked_at = db.Column(db.DateTime(timezone=True))

    user = db.relationship("User", back_populates="sessions")

    @property
    def is_expired(self):
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return _utcnow() > expires_at

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "role": self.role,
            "can_edit": self.can_edit,
            "method": self.method,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }
