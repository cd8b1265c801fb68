from __future__ import annotations
"""Logging configuration with per-request correlation ids.

Every record gets a `request_id` attribute: the inbound `X-Request-ID` header
when it is a short token (word characters, dots, dashes), otherwise a
generated uuid4 (see `bind_request_id`).
"""
import logging
import logging.config
import re
import uuid
from flask import Flask, g, has_request_context, request

REQUEST_ID_HEADER = 'X-Request-ID'
# matches the width of audit_logs.request_id
REQUEST_ID_RE = re.compile(r'[\w.-]{1,64}')


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        rid = '-'
        if has_request_context():
            rid = getattr(g, 'request_id', None) or '-'
        record.request_id = rid
        return True


def configure_logging(level: str = 'INFO') -> None:
    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'filters': {'request_id': {'()': RequestIdFilter}},
        'formatters': {
            'default': {'format': '%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s'},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
                'filters': ['request_id'],
            },
        },
        'loggers': {
            'workshop': {'level': level.upper(), 'handlers': ['console'], 'propagate': True},
        },
    })


def bind_request_id(app: Flask) -> None:
    @app.before_request
    def _assign_request_id():
        inbound = request.headers.get(REQUEST_ID_HEADER)
        g.request_id = inbound if inbound and REQUEST_ID_RE.fullmatch(inbound) else uuid.uuid4().hex

    @app.after_request
    def _echo_request_id(resp):
        rid = getattr(g, 'request_id', None)
        if rid:
            resp.headers[REQUEST_ID_HEADER] = rid
        return resp


def current_request_id():
    if has_request_context():
        return getattr(g, 'request_id', None)
    return None


__all__ = ['configure_logging', 'bind_request_id', 'current_request_id', 'RequestIdFilter']
