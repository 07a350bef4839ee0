"""
Permission decorator — policy-table RBAC for route protection.

Usage:
    @bp.route("/api/v1/sync/trigger", methods=["POST"])
    @require_policy("sync.trigger")
    def trigger_sync():
        ...

No authenticated user → 401. Authenticated but role not in
``ACCESS_POLICY[action]`` → 403.
"""

import functools
import logging

from flask import g

from paxportal.services.access_policy import is_allowed
from paxportal.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_policy(action: str):
    """Decorator: require the current user's role to be allowed ``action``."""
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return api_error(E.UNAUTHORIZED, "Authentication required")

            if not is_allowed(user.role, action):
                logger.warning(
                    "User %d (%s) denied: action '%s' on %s",
                    user.id, user.role, action, f.__name__,
                )
                return api_error(E.FORBIDDEN, "Permission denied", details={"required": action})

            return f(*args, **kwargs)
        return decorated
    return decorator
