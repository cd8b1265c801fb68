from __future__ import annotations
import logging
from functools import wraps
from flask import request
from flask_jwt_extended import verify_jwt_in_request
from workshop.errors import ForbiddenError
from workshop.services.policy import current_permissions, current_role, current_user_id

logger = logging.getLogger(__name__)


def require_permissions(*codes: str):
    """Require a valid access token whose `perms` claim holds every code."""
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            missing = [c for c in codes if c not in current_permissions()]
            if missing:
                logger.warning('User %s (%s) denied %s %s: missing %s',
                               current_user_id(), current_role(), request.method, request.path, ','.join(missing))
                raise ForbiddenError('Missing permission', missing=missing)
            return fn(*args, **kwargs)
        return wrapper
    return outer
