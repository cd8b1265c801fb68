from __future__ import annotations
from typing import Optional, Set
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from workshop.constants.permissions import ROLE_MECHANIC, permissions_for_role
from workshop.errors import ForbiddenError
from workshop.models.mechanic import Mechanic
from workshop import get_db


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def current_user_id() -> Optional[int]:
    ident = get_jwt_identity()
    return int(ident) if ident is not None else None


def current_role() -> Optional[str]:
    return get_jwt().get('role')


def build_claims(user) -> dict:
    """Additional JWT claims for a user: role plus the permission preset for it."""
    return {'role': user.role, 'perms': permissions_for_role(user.role)}


def current_mechanic_id() -> Optional[int]:
    """Mechanic profile id for a mechanic-role caller, None for everyone else.

    A mechanic-role user without a profile gets 403: there are no orders they
    could legitimately see.
    """
    if current_role() != ROLE_MECHANIC:
        return None
    session = get_db()
    mech = session.execute(
        select(Mechanic).where(Mechanic.user_id == current_user_id(), Mechanic.is_deleted == False)  # noqa: E712
    ).scalar_one_or_none()
    if not mech:
        raise ForbiddenError('Mechanic profile not found')
    return mech.id


def assert_order_access(order):
    """Mechanics may only see and mutate orders assigned to them."""
    mech_id = current_mechanic_id()
    if mech_id is not None and order.mechanic_id != mech_id:
        raise ForbiddenError('Order is assigned to another mechanic')
