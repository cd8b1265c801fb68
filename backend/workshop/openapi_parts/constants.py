"""Registries driving the OpenAPI document.

Ordering here is the ordering of the generated document; keep it stable.
"""
from typing import Dict, List, Tuple

# (SchemaName, collection path, id param, service code, operations)
# operations: L=list, R=read, C=create, U=update, D=delete
ENTITIES: List[Tuple[str, str, str, str, str]] = [
    ("User", "users", "user_id", "USR", "LRCUD"),
    ("Client", "clients", "client_id", "CLI", "LRCUD"),
    ("Mechanic", "mechanics", "mechanic_id", "MEC", "LRCUD"),
    ("Quote", "quotes", "quote_id", "QUO", "LRCUD"),
    ("WorkOrder", "orders", "order_id", "ORD", "LRUD"),
    ("AuditLog", "logs", "log_id", "LOG", "L"),
]

# Permission per generic operation when it differs from <SERVICE>.MANAGE / <SERVICE>.READ
OPERATION_PERMISSIONS: Dict[str, Dict[str, str]] = {
    "User": {"L": "USR.MANAGE", "R": "USR.MANAGE"},
    "WorkOrder": {"U": "ORD.UPDATE", "D": "ORD.DELETE"},
}

# State-changing endpoints beyond plain CRUD.
ACTION_REGISTRY: Dict[str, List[Dict[str, str]]] = {
    "User": [
        {"action": "password", "method": "put", "summary": "Reset user password", "permission": "USR.MANAGE"},
        {"action": "toggle-status", "method": "put", "summary": "Activate or deactivate user", "permission": "USR.MANAGE"},
    ],
    "Client": [
        {"action": "history", "method": "get", "summary": "Client quote and order history", "permission": "CLI.READ"},
    ],
    "Mechanic": [
        {"action": "orders", "method": "get", "summary": "Orders assigned to mechanic", "permission": "MEC.READ"},
    ],
    "Quote": [
        {"action": "send-email", "method": "post", "summary": "Email quote with approval links", "permission": "QUO.SEND"},
        {"action": "approve", "method": "put", "summary": "Approve quote manually", "permission": "QUO.DECIDE"},
        {"action": "reject", "method": "put", "summary": "Reject quote manually", "permission": "QUO.DECIDE"},
    ],
    "WorkOrder": [
        {"action": "status", "method": "put", "summary": "Change work order status", "permission": "ORD.STATUS"},
        {"action": "assign", "method": "put", "summary": "Assign mechanic", "permission": "ORD.ASSIGN"},
        {"action": "notify-ready", "method": "post", "summary": "Retry ready-for-pickup email", "permission": "ORD.STATUS"},
    ],
}

SORT_PARAM_MAP = {
    "User": "SortUsersParam",
    "Client": "SortClientsParam",
    "Mechanic": "SortMechanicsParam",
    "Quote": "SortQuotesParam",
    "WorkOrder": "SortOrdersParam",
    "AuditLog": "SortLogsParam",
}

SORT_DETAILS = {
    "SortUsersParam": "Multi-field sort (username,role,created_at,id). Prefix - for desc",
    "SortClientsParam": "Multi-field sort (first_name,last_name_paternal,email,created_at,id). Prefix - for desc",
    "SortMechanicsParam": "Multi-field sort (first_name,last_name_paternal,created_at,id). Prefix - for desc",
    "SortQuotesParam": "Multi-field sort (number,status,estimated_cost,valid_until,created_at,id). Prefix - for desc",
    "SortOrdersParam": "Multi-field sort (number,status,estimated_cost,estimated_delivery,created_at,id). Prefix - for desc",
    "SortLogsParam": "Multi-field sort (created_at,level,action,id). Prefix - for desc",
}

ERROR_CODES = [
    "validation", "unauthorized", "forbidden", "not_found", "conflict", "locked",
    "invalid_transition", "token_error", "rate_limited", "internal",
]

__all__ = [
    "ENTITIES",
    "OPERATION_PERMISSIONS",
    "ACTION_REGISTRY",
    "SORT_PARAM_MAP",
    "SORT_DETAILS",
    "ERROR_CODES",
]
