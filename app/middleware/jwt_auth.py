"""
JWT Auth Middleware — parses the Bearer token and loads ``g.current_user``.

Every /api/ request starts with ``g.current_user = None``.  A valid token for
an active user replaces it with the User row; anything else (missing header,
bad signature, expired token, unknown or deactivated user) leaves it None and
the route's ``@require_roles`` decides between 401 and pass-through.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.models import db
from app.models.auth import User
from app.services.jwt_service import decode_access_token, user_id_from_payload

logger = logging.getLogger(__name__)


# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/static/",
)


def load_user_from_token(token: str):
    """Return the active User for ``token`` or None."""
    try:
        payload = decode_access_token(token)
    except pyjwt.ExpiredSignatureError:
        logger.info("Rejected expired access token on %s", request.path)
        return None
    except pyjwt.InvalidTokenError as exc:
        logger.info("Rejected invalid access token on %s: %s", request.path, exc)
        return None

    user_id = user_id_from_payload(payload)
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None

        path = request.path
        if not path.startswith("/api/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        g.current_user = load_user_from_token(auth_header[7:])
