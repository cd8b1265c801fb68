from __future__ import annotations
"""Environment driven settings for the workshop API.

`env_config()` is read once by `create_app`; anything passed to
`create_app(config=...)` overrides these values (tests rely on that).
"""
import os
from datetime import timedelta
from typing import Any, Dict, List


def _bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


def _int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == '':
        return default
    return int(raw)


def parse_delays(raw: str) -> List[float]:
    """Parse a comma separated list of retry delays in seconds ('0,1,3')."""
    out: List[float] = []
    for part in (raw or '').split(','):
        part = part.strip()
        if part:
            out.append(float(part))
    return out or [0.0]


def env_config() -> Dict[str, Any]:
    return {
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///workshop.db'),
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'JWT_ACCESS_TOKEN_EXPIRES': timedelta(seconds=_int('JWT_ACCESS_TOKEN_EXPIRES', 15 * 60)),
        'JWT_REFRESH_TOKEN_EXPIRES': timedelta(seconds=_int('JWT_REFRESH_TOKEN_EXPIRES', 7 * 24 * 3600)),
        # Cache / rate limiting (empty URL disables both)
        'REDIS_URL': os.getenv('REDIS_URL', ''),
        'CACHE_TTL_DEFAULT': _int('CACHE_TTL_DEFAULT', 300),
        'RATE_LIMIT_PUBLIC_MAX': _int('RATE_LIMIT_PUBLIC_MAX', 10),
        'RATE_LIMIT_PUBLIC_WINDOW': _int('RATE_LIMIT_PUBLIC_WINDOW', 3600),
        'RATE_LIMIT_LOGIN_MAX': _int('RATE_LIMIT_LOGIN_MAX', 5),
        'RATE_LIMIT_LOGIN_WINDOW': _int('RATE_LIMIT_LOGIN_WINDOW', 15 * 60),
        # Outbound email
        'MAIL_SERVER': os.getenv('SMTP_HOST', 'localhost'),
        'MAIL_PORT': _int('SMTP_PORT', 587),
        'MAIL_USERNAME': os.getenv('SMTP_USER'),
        'MAIL_PASSWORD': os.getenv('SMTP_PASS'),
        'MAIL_USE_TLS': _bool('SMTP_USE_TLS', True),
        'MAIL_DEFAULT_SENDER': os.getenv('MAIL_DEFAULT_SENDER') or os.getenv('WORKSHOP_EMAIL', 'contacto@taller.com'),
        'MAIL_TIMEOUT': _int('EMAIL_TIMEOUT', 10),
        'MAIL_SUPPRESS_SEND': _bool('MAIL_SUPPRESS_SEND', False),
        'EMAIL_MAX_RETRIES': _int('EMAIL_MAX_RETRIES', 3),
        'EMAIL_RETRY_DELAYS': parse_delays(os.getenv('EMAIL_RETRY_DELAYS', '0,1,3')),
        # Workshop identity used in emails and public pages
        'PUBLIC_BASE_URL': os.getenv('PUBLIC_BASE_URL', 'http://localhost:5000'),
        'WORKSHOP_NAME': os.getenv('WORKSHOP_NAME', 'Taller Mecánico'),
        'WORKSHOP_EMAIL': os.getenv('WORKSHOP_EMAIL', 'contacto@taller.com'),
        'WORKSHOP_PHONE': os.getenv('WORKSHOP_PHONE', '+56912345678'),
        'WORKSHOP_ADDRESS': os.getenv('WORKSHOP_ADDRESS', 'Dirección del taller'),
        'QUOTE_VALIDITY_DAYS': _int('QUOTE_VALIDITY_DAYS', 7),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
    }


__all__ = ['env_config', 'parse_delays']
