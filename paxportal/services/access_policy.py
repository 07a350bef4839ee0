"""
Access policy — role → allowed actions, as data.

Every protected route names one action; ``is_allowed`` is the single
decision point. Ownership checks for client-owned resources live in the
forms service (``verify_access_ownership``) because they depend on data,
not on role alone.
"""

from paxportal.models.auth import Role

_STAFF = frozenset({Role.MASTER, Role.ADMIN})
_ALL = frozenset({Role.MASTER, Role.ADMIN, Role.CLIENT})

ACCESS_POLICY: dict[str, frozenset[str]] = {
    "sync.trigger": _STAFF,
    "sync.view": _STAFF,
    "capture.dispatch": _STAFF,
    "capture.schema": _ALL,
    "forms.fill": _ALL,
    "forms.my_proposals": frozenset({Role.CLIENT}),
    "proposals.view": _STAFF,
    "proposals.edit_admin_fields": _STAFF,
    "dashboard.view": _STAFF,
    "clients.manage": _STAFF,
    "users.manage": frozenset({Role.MASTER}),
    "audit.view": _STAFF,
}

# Audit visibility per role: "all" entries, only "own" entries, or "none"
AUDIT_SCOPE: dict[str, str] = {
    Role.MASTER: "all",
    Role.ADMIN: "own",
    Role.CLIENT: "none",
}


def is_allowed(role: str | None, action: str) -> bool:
    if role is None:
        return False
    return role in ACCESS_POLICY.get(action, frozenset())


def audit_scope(role: str | None, admin_sees_own_only: bool = True) -> str:
    scope = AUDIT_SCOPE.get(role, "none")
    if scope == "own" and not admin_sees_own_only:
        return "all"
    return scope


def owns_slots(role: str | None) -> bool:
    """Roles whose slot access is limited to their own proposals."""
    return role == Role.CLIENT
