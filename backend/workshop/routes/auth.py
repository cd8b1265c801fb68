from __future__ import annotations
import logging
from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, create_refresh_token, jwt_required, get_jwt_identity
from sqlalchemy import select
from workshop import get_db
from workshop.decorators.rate_limit import rate_limit
from workshop.errors import AccountLockedError, ValidationError
from workshop.models.user import User
from workshop.serializers import user_json
from workshop.services.audit import record_audit
from workshop.services.policy import build_claims
from workshop.utils.dates import utcnow

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def _active_user(session, user_id: int) -> User:
    user = session.execute(select(User).where(User.id==user_id, User.is_deleted==False)).scalar_one_or_none()  # noqa: E712
    if not user or user.status != User.STATUS_ACTIVE:
        abort(401, description='User no longer active')
    return user


@auth_bp.post('/login')
@rate_limit('login', 'RATE_LIMIT_LOGIN_MAX', 'RATE_LIMIT_LOGIN_WINDOW')
def login():
    data = request.json or {}
    username = data.get('username'); password = data.get('password')
    if not username or not password:
        raise ValidationError('username & password required')
    session = get_db()
    user = session.execute(select(User).where(User.username==username, User.is_deleted==False)).scalar_one_or_none()  # noqa: E712
    if not user:
        record_audit('AUTH.LOGIN.FAILED', 'auth', 'User', None, {'username': username, 'reason': 'unknown_user'}, level='warn')
        abort(401, description='Invalid credentials')
    now = utcnow()
    if user.is_locked(now):
        minutes = max(1, int((user.lock_until - now).total_seconds() // 60) + 1)
        record_audit('AUTH.LOGIN.LOCKED', 'auth', 'User', user.id, {'username': username, 'minutes_remaining': minutes}, level='warn', actor_id=user.id)
        raise AccountLockedError(f'Account temporarily locked. Try again in {minutes} minutes.')
    if not user.verify_password(password):
        user.register_failed_login(now)
        session.commit()
        logger.warning('Failed login for %s (%s attempts)', username, user.login_attempts)
        record_audit('AUTH.LOGIN.FAILED', 'auth', 'User', user.id, {'username': username, 'attempts': user.login_attempts}, level='warn', actor_id=user.id)
        abort(401, description='Invalid credentials')
    if user.status != User.STATUS_ACTIVE:
        record_audit('AUTH.LOGIN.INACTIVE', 'auth', 'User', user.id, {'username': username}, level='warn', actor_id=user.id)
        abort(403, description='Account is inactive')
    user.register_successful_login(now)
    session.commit()
    claims = build_claims(user)
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    access = create_access_token(identity=str(user.id), additional_claims=claims)
    refresh = create_refresh_token(identity=str(user.id))
    record_audit('AUTH.LOGIN', 'auth', 'User', user.id, {'username': username}, actor_id=user.id)
    return {
        'access_token': access,
        'refresh_token': refresh,
        'user': {'id': user.id, 'username': user.username, 'role': user.role},
    }


@auth_bp.post('/refresh')
@jwt_required(refresh=True)
def refresh():
    session = get_db()
    user = _active_user(session, int(get_jwt_identity()))
    return {'access_token': create_access_token(identity=str(user.id), additional_claims=build_claims(user))}


@auth_bp.get('/me')
@jwt_required()
def me():
    # Identity stored as string, cast back to int for DB lookup
    session = get_db()
    user = _active_user(session, int(get_jwt_identity()))
    body = user_json(user)
    body['perms'] = build_claims(user)['perms']
    return body
