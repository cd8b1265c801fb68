from __future__ import annotations
"""Audit logging decorator for plain CRUD views.

Usage:

@audit_log('CLIENT.CREATE', module='clients', entity='Client', entity_id_key='id', meta_keys=['email'])
def create_client():
    ... return _client_json(c), 201

@audit_log('CLIENT.UPDATE', module='clients', entity='Client', entity_id_arg='client_id',
           diff_keys=['email', 'phone'], pre_fetch=lambda a, kw: _prefetch(kw['client_id']))
def update_client(client_id): ...

Parameters:
  action: audit action code (e.g. CLIENT.CREATE)
  module: owning area stored on the entry
  entity: optional entity label (Client, Mechanic, User)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: view kwarg used for entity_id when the key is absent.
  meta_keys: keys projected from the returned JSON into meta.
  diff_keys / pre_fetch: before/after snapshot recorded under meta['changes'].
  level: entry level (info, warn, error).

The entry is written after the view returned (so after its commit) and only
for successful responses. A failing audit write is logged by record_audit and
never changes the response.
"""
import logging
from functools import wraps
from typing import Any, Callable, Dict, Iterable, Optional

from workshop.services.audit import record_audit

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return (data, status) for the usual Flask return shapes."""
    if isinstance(rv, tuple) and rv:
        status = rv[1] if len(rv) > 1 and isinstance(rv[1], int) else 200
        return rv[0], status
    return rv, 200


def audit_log(
    action: str,
    *,
    module: str,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    level: str = 'info',
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                before_snapshot = pre_fetch(args, kwargs)
            rv = fn(*args, **kwargs)
            data, status = _extract_payload(rv)
            if status >= 400:
                return rv
            if not isinstance(data, dict):
                data = {}
            entity_id = None
            if entity_id_key and entity_id_key in data:
                entity_id = data.get(entity_id_key)
            elif entity_id_arg and entity_id_arg in kwargs:
                entity_id = kwargs.get(entity_id_arg)
            meta: Dict[str, Any] = {}
            if meta_keys:
                meta = {k: data.get(k) for k in meta_keys if k in data}
            if diff_keys and isinstance(before_snapshot, dict):
                changes = {}
                for k in diff_keys:
                    if k in before_snapshot and k in data and before_snapshot.get(k) != data.get(k):
                        changes[k] = {'before': before_snapshot.get(k), 'after': data.get(k)}
                if changes:
                    meta['changes'] = changes
            record_audit(action, module, entity, entity_id, meta, level=level)
            return rv
        return wrapper
    return outer
