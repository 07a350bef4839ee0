"""
JWT Auth Middleware — parses the Bearer token and loads ``g.current_user``.

The middleware never rejects a request by itself; routes protected by
``require_policy`` answer 401 when ``g.current_user`` is missing.
Inactive users are treated as anonymous.
"""

import logging

import jwt as pyjwt
from flask import g, request

from paxportal.models import db
from paxportal.models.auth import User
from paxportal.services.jwt_service import decode_access_token

logger = logging.getLogger(__name__)

JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]
        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired JWT on %s", path)
            return
        except pyjwt.InvalidTokenError:
            logger.debug("Invalid JWT on %s", path)
            return

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return
        user = db.session.get(User, user_id)
        if user is None or not user.is_active:
            return
        g.current_user = user
