"""Central enum-like definitions to avoid typos in permission/service strings.
Extend cautiously; never rename codes silently, add new ones instead.
"""
from __future__ import annotations
from typing import List, Dict

SERVICES = ['QUO', 'ORD', 'CLI', 'MEC', 'USR', 'LOG', 'DASH']

SERVICE_ACTIONS = {
    'QUO': ['READ', 'MANAGE', 'SEND', 'DECIDE'],
    'ORD': ['READ', 'UPDATE', 'STATUS', 'ASSIGN', 'DELETE'],
    'CLI': ['READ', 'MANAGE'],
    'MEC': ['READ', 'MANAGE'],
    'USR': ['MANAGE'],
    'LOG': ['READ'],
    'DASH': ['READ'],
}


def build_all_permission_codes() -> List[str]:
    codes: List[str] = []
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            codes.append(f"{svc}.{act}")
    return codes

ALL_PERMISSION_CODES = build_all_permission_codes()

ROLE_ADMIN = 'admin'
ROLE_MECHANIC = 'mechanic'
ALL_ROLES = (ROLE_ADMIN, ROLE_MECHANIC)

ROLE_PRESETS: Dict[str, List[str]] = {
    # Mechanics only work their own orders (scoping enforced in services.policy)
    ROLE_MECHANIC: ['ORD.READ', 'ORD.UPDATE', 'ORD.STATUS'],
    ROLE_ADMIN: ['*'],
}


def permissions_for_role(role: str) -> List[str]:
    preset = ROLE_PRESETS.get(role, [])
    if '*' in preset:
        return list(ALL_PERMISSION_CODES)
    return list(preset)
