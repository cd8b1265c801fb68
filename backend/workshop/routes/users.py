from __future__ import annotations
from flask import Blueprint, request
from sqlalchemy import select
from workshop import get_db
from workshop.decorators.auth import require_permissions
from workshop.decorators.audit import audit_log
from workshop.errors import ConflictError, NotFoundError, ValidationError
from workshop.models.mechanic import Mechanic
from workshop.models.user import User
from workshop.serializers import user_json, mechanic_json
from workshop.services.cache import cache
from workshop.services.policy import current_user_id
from workshop.utils.filters import apply_filters
from workshop.utils.listing import paginated
from workshop.utils.sorting import apply_multi_sort
from workshop.utils.validation import clean_str, validate_status

users_bp = Blueprint('users', __name__)

USER_FILTERS = {
    'role': {'op': lambda q, v: q.filter(User.role==v), 'validate': lambda v: v in User.ALL_ROLES},
    'status': {'op': lambda q, v: q.filter(User.status==v), 'validate': lambda v: v in User.ALL_STATUSES},
    'search': {'op': lambda q, v: q.filter(User.username.ilike(f"%{v}%"))},
}
USER_SORT = {'username': User.username, 'role': User.role, 'created_at': User.created_at, 'id': User.id}


def _load_user(session, user_id: int, allow_deleted: bool = False) -> User:
    user = session.get(User, user_id)
    if not user or (user.is_deleted and not allow_deleted):
        raise NotFoundError('User not found')
    return user


def _assert_username_free(session, username: str, exclude_id: int = None):
    q = select(User).where(User.username==username)
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    if session.execute(q).scalars().first():
        raise ConflictError('Username already registered')


def _prefetch_user(user_id):
    user = get_db().get(User, user_id)
    return user_json(user) if user else {}


@users_bp.get('')
@require_permissions('USR.MANAGE')
def list_users():
    session = get_db()
    q = session.query(User)
    if request.args.get('include_deleted') != 'true':
        q = q.filter(User.is_deleted==False)  # noqa: E712
    q = apply_filters(q, USER_FILTERS, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), USER_SORT, User.id)
    return paginated(q, user_json)


@users_bp.get('/<int:user_id>')
@require_permissions('USR.MANAGE')
def get_user(user_id: int):
    session = get_db()
    user = _load_user(session, user_id, allow_deleted=True)
    body = user_json(user)
    profile = None
    if user.role == User.ROLE_MECHANIC:
        mech = session.execute(select(Mechanic).where(Mechanic.user_id==user.id)).scalar_one_or_none()
        profile = mechanic_json(mech) if mech else None
    body['mechanic_profile'] = profile
    return body


@users_bp.post('')
@require_permissions('USR.MANAGE')
@audit_log('USER.CREATE', module='users', entity='User', entity_id_key='id', meta_keys=['username', 'role'])
def create_user():
    session = get_db()
    data = request.json or {}
    username = clean_str(data.get('username'), 'username', min_len=3, max_len=50)
    password = clean_str(data.get('password'), 'password', min_len=6)
    role = validate_status(data.get('role') or User.ROLE_MECHANIC, User.ALL_ROLES, 'role')
    _assert_username_free(session, username)
    user = User(username=username, role=role, status=User.STATUS_ACTIVE, password_hash='')
    user.set_password(password)
    session.add(user)
    session.commit()
    return user_json(user), 201


@users_bp.put('/<int:user_id>')
@require_permissions('USR.MANAGE')
@audit_log('USER.UPDATE', module='users', entity='User', entity_id_key='id', diff_keys=['username', 'role'],
           pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')))
def update_user(user_id: int):
    session = get_db()
    user = _load_user(session, user_id)
    data = request.json or {}
    if 'username' in data:
        username = clean_str(data.get('username'), 'username', min_len=3, max_len=50)
        if username != user.username:
            _assert_username_free(session, username, exclude_id=user.id)
            user.username = username
    if 'role' in data:
        user.role = validate_status(data.get('role'), User.ALL_ROLES, 'role')
    session.commit()
    return user_json(user)


@users_bp.put('/<int:user_id>/password')
@require_permissions('USR.MANAGE')
@audit_log('USER.PASSWORD', module='users', entity='User', entity_id_arg='user_id')
def change_password(user_id: int):
    session = get_db()
    user = _load_user(session, user_id)
    data = request.json or {}
    password = clean_str(data.get('new_password'), 'new_password', min_len=6)
    user.set_password(password)
    user.login_attempts = 0
    user.lock_until = None
    session.commit()
    return {'id': user.id, 'message': 'Password changed'}


@users_bp.put('/<int:user_id>/toggle-status')
@require_permissions('USR.MANAGE')
@audit_log('USER.STATUS', module='users', entity='User', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')))
def toggle_status(user_id: int):
    session = get_db()
    user = _load_user(session, user_id)
    if user.id == current_user_id():
        raise ValidationError('You cannot deactivate your own account')
    if user.status == User.STATUS_ACTIVE:
        user.status = User.STATUS_INACTIVE
    else:
        user.status = User.STATUS_ACTIVE
        user.login_attempts = 0
        user.lock_until = None
    session.commit()
    cache.invalidate_mechanics()
    return user_json(user)


@users_bp.delete('/<int:user_id>')
@require_permissions('USR.MANAGE')
@audit_log('USER.DELETE', module='users', entity='User', entity_id_key='id', level='warn')
def delete_user(user_id: int):
    session = get_db()
    user = _load_user(session, user_id)
    if user.id == current_user_id():
        raise ValidationError('You cannot delete your own account')
    user.mark_deleted(current_user_id())
    session.commit()
    return user_json(user)
