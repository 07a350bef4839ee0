"""
World Cup 2026 Passenger Capture Portal
Identity model.

Roles are ranked; a lower rank number is more privileged:
    MASTER (1) > ADMIN (2) > CLIENT (3)
"""

from datetime import datetime, timezone

from paxportal.models import db
from paxportal.utils.helpers import iso


class Role:
    MASTER = "MASTER"
    ADMIN = "ADMIN"
    CLIENT = "CLIENT"


ROLE_RANK = {Role.MASTER: 1, Role.ADMIN: 2, Role.CLIENT: 3}
STAFF_ROLES = frozenset({Role.MASTER, Role.ADMIN})


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, default=Role.CLIENT,
                     comment="MASTER | ADMIN | CLIENT")
    must_change_password = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    profile_photo_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def has_role_at_least(self, role: str) -> bool:
        return ROLE_RANK.get(self.role, 99) <= ROLE_RANK[role]

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "must_change_password": self.must_change_password,
            "is_active": self.is_active,
            "profile_photo_url": self.profile_photo_url,
            "created_at": iso(self.created_at),
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} ({self.role})>"
