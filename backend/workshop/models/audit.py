from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, event
from workshop.models.user import Base  # reuse same metadata
from workshop.utils.dates import utcnow


class AuditLog(Base):
    __tablename__ = 'audit_logs'
    LEVEL_INFO = 'info'
    LEVEL_WARN = 'warn'
    LEVEL_ERROR = 'error'
    ALL_LEVELS = (LEVEL_INFO, LEVEL_WARN, LEVEL_ERROR)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    level: Mapped[str] = mapped_column(String(8), nullable=False, default=LEVEL_INFO, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    module: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    # Null for unauthenticated flows (public token links)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    entity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    request_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)


@event.listens_for(AuditLog, 'before_update')
def _refuse_update(mapper, connection, target):
    raise ValueError('Audit log entries are immutable')


@event.listens_for(AuditLog, 'before_delete')
def _refuse_delete(mapper, connection, target):
    raise ValueError('Audit log entries are immutable')
