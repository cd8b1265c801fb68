from __future__ import annotations
import math
from typing import Tuple
from flask import request
from sqlalchemy.orm import Query
from workshop.config.pagination import normalize_pagination
from workshop.errors import ValidationError


def apply_pagination(q: Query) -> Tuple[Query, int, int, int]:
    try:
        limit, offset = normalize_pagination(request.args.get('limit'), request.args.get('offset'), request.args.get('page'))
    except ValueError as e:
        raise ValidationError(str(e))
    total = q.count()
    return q.offset(offset).limit(limit), total, limit, offset


def build_list_payload(rows: list, total: int, limit: int, offset: int):
    return {
        'data': rows,
        'pagination': {
            'total': total,
            'limit': limit,
            'offset': offset,
            'returned': len(rows),
            'pages': math.ceil(total / limit) if limit else 0,
        }
    }


def paginated(q: Query, serializer):
    """Paginate, serialize and wrap a query in the standard list payload."""
    paged_q, total, limit, offset = apply_pagination(q)
    rows = [serializer(r) for r in paged_q.all()]
    return build_list_payload(rows, total, limit, offset)

__all__ = ['apply_pagination', 'build_list_payload', 'paginated']
