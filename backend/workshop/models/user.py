from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, DateTime
from workshop.utils.dates import utcnow

Base = declarative_base()

MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(minutes=15)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class SoftDeleteMixin(TimestampMixin):
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    def mark_deleted(self, actor_id: Optional[int]):
        self.is_deleted = True
        self.deleted_at = utcnow()
        self.deleted_by = actor_id


class User(SoftDeleteMixin, Base):
    __tablename__ = 'users'
    ROLE_ADMIN = 'admin'
    ROLE_MECHANIC = 'mechanic'
    ALL_ROLES = (ROLE_ADMIN, ROLE_MECHANIC)
    STATUS_ACTIVE = 'active'
    STATUS_INACTIVE = 'inactive'
    ALL_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_MECHANIC)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_ACTIVE)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def set_password(self, raw: str):
        from werkzeug.security import generate_password_hash
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        from werkzeug.security import check_password_hash
        return check_password_hash(self.password_hash, raw)

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return bool(self.lock_until and self.lock_until > now)

    def register_failed_login(self, now: Optional[datetime] = None):
        """Count a failed attempt; the fifth consecutive failure locks the account."""
        now = now or utcnow()
        if self.lock_until and self.lock_until <= now:
            # previous lock expired, start a fresh window
            self.login_attempts = 1
            self.lock_until = None
            return
        self.login_attempts = (self.login_attempts or 0) + 1
        if self.login_attempts >= MAX_LOGIN_ATTEMPTS and not self.is_locked(now):
            self.lock_until = now + LOCK_DURATION

    def register_successful_login(self, now: Optional[datetime] = None):
        self.login_attempts = 0
        self.lock_until = None
        self.last_login_at = now or utcnow()
