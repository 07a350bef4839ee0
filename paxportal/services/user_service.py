"""
User Service — staff accounts (MASTER / ADMIN) managed by a MASTER.

CLIENT accounts are created by the capture dispatch flow and managed
through client_service.
"""

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func

from paxportal.core.exceptions import ConflictError, NotFoundError, ValidationError
from paxportal.models import db
from paxportal.models.audit import AuditAction, record_audit
from paxportal.models.auth import STAFF_ROLES, Role, User
from paxportal.utils.crypto import generate_temp_password, hash_password
from paxportal.utils.helpers import paginated

_UPDATABLE = ("name", "role", "is_active")


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _check_role(role) -> str:
    if role not in STAFF_ROLES:
        raise ValidationError(f"role must be one of {sorted(STAFF_ROLES)}", details={"role": role})
    return role


# ═══════════════════════════════════════════════════════════════
# User CRUD
# ═══════════════════════════════════════════════════════════════
def list_users(page: int = 1, page_size: int = 20) -> dict:
    """Staff users, newest first."""
    q = User.query.filter(User.role != Role.CLIENT).order_by(User.created_at.desc(), User.id.desc())
    total = q.count()
    users = q.offset((page - 1) * page_size).limit(page_size).all()
    return paginated([u.to_dict() for u in users], total, page, page_size)


def create_user(email: str, name: str, role: str, password: str = None) -> tuple[User, str | None]:
    """Create a staff user.

    Without ``password`` a temporary one is generated, returned once and
    ``must_change_password`` is set.
    """
    try:
        email = validate_email(email or "", check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email: {e}", details={"email": email})
    if not (name or "").strip():
        raise ValidationError("name is required", details={"name": "required"})
    _check_role(role)

    if User.query.filter(func.lower(User.email) == email.lower()).first():
        raise ConflictError(resource="User", field="email", value=email)

    temp_password = None if password else generate_temp_password()
    user = User(
        email=email,
        name=name.strip(),
        role=role,
        password_hash=hash_password(password or temp_password),
        must_change_password=not password,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    record_audit(AuditAction.USER_CREATED, entity="User", entity_id=user.id,
                 payload={"email": email, "role": role})
    return user, temp_password


def get_user_by_id(user_id: int) -> User:
    return _get_user(user_id)


def update_user(user_id: int, **kwargs) -> User:
    """Update name / role / is_active."""
    user = _get_user(user_id)
    changes = {k: v for k, v in kwargs.items() if k in _UPDATABLE and v is not None}
    if "role" in changes:
        _check_role(changes["role"])
    if "is_active" in changes:
        changes["is_active"] = bool(changes["is_active"])
    for key, val in changes.items():
        setattr(user, key, val)
    db.session.commit()
    if changes:
        record_audit(AuditAction.USER_UPDATED, entity="User", entity_id=user.id,
                     payload={"fields": sorted(changes)})
    return user


def deactivate_user(user_id: int) -> User:
    """Deactivate a user (soft disable)."""
    return update_user(user_id, is_active=False)


def reset_user_password(user_id: int) -> str:
    user = _get_user(user_id)
    temp_password = generate_temp_password()
    user.password_hash = hash_password(temp_password)
    user.must_change_password = True
    db.session.commit()
    record_audit(AuditAction.USER_UPDATED, entity="User", entity_id=user.id,
                 payload={"fields": ["password"]})
    return temp_password
