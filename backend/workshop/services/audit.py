from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from flask import has_request_context, request
from flask_jwt_extended import get_jwt_identity
from workshop import get_db
from workshop.logging_setup import current_request_id
from workshop.models.audit import AuditLog

logger = logging.getLogger(__name__)


def _actor_id() -> Optional[int]:
    try:
        ident = get_jwt_identity()
        return int(ident) if ident is not None else None
    except Exception:
        # no JWT in this request (public token links)
        return None


def add_audit(action: str, module: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
              meta: Optional[Dict[str, Any]] = None, level: str = AuditLog.LEVEL_INFO,
              actor_id: Optional[int] = None):
    """Stage an audit log entry in the current DB session.

    Parameters:
      action: short action code e.g. ORDER.STATUS, QUOTE.APPROVE
      module: owning area (quotes, orders, clients, ...)
      entity: optional entity name (Quote, WorkOrder, ...)
      entity_id: optional primary key
      meta: additional JSON-safe dictionary (shallow copied)
      actor_id: explicit actor; defaults to the JWT identity when present
    """
    session = get_db()
    ip = ua = None
    if has_request_context():
        ip = request.remote_addr
        ua = (request.headers.get('User-Agent') or '')[:255] or None
    log = AuditLog(
        level=level,
        action=action,
        module=module,
        actor_user_id=actor_id if actor_id is not None else _actor_id(),
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
        ip_address=ip,
        user_agent=ua,
        request_id=current_request_id(),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log


def record_audit(action: str, module: str, entity: Optional[str] = None, entity_id: Optional[Any] = None,
                 meta: Optional[Dict[str, Any]] = None, level: str = AuditLog.LEVEL_INFO,
                 actor_id: Optional[int] = None) -> bool:
    """Write one audit entry in its own commit, after the primary commit.

    Failures are logged and rolled back; they never reach the caller.
    """
    session = get_db()
    try:
        add_audit(action, module, entity, entity_id, meta, level, actor_id)
        session.commit()
        return True
    except Exception:
        session.rollback()
        logger.exception('Audit write failed for %s %s:%s', action, entity, entity_id)
        return False
