from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey
from workshop.models.user import Base, SoftDeleteMixin
from workshop.utils.dates import utcnow


class Quote(SoftDeleteMixin, Base):
    __tablename__ = 'quotes'
    NUMBER_PREFIX = 'PRES'
    # Status constants
    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    ALL_STATUSES = (STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[Optional[str]] = mapped_column(String(16), unique=True, index=True, nullable=True)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    vehicle_brand: Mapped[str] = mapped_column(String(100), nullable=False)
    vehicle_model: Mapped[str] = mapped_column(String(100), nullable=False)
    vehicle_year: Mapped[int] = mapped_column(Integer, nullable=False)
    vehicle_plate: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    vehicle_mileage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    proposed_work: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    email_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Plain column: work_orders already references quotes
    work_order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    client = relationship('Client')
    tokens = relationship('ApprovalToken', back_populates='quote', cascade='all, delete-orphan', order_by='ApprovalToken.id')

    __mapper_args__ = {'version_id_col': version_id}

    @property
    def vehicle(self) -> Dict[str, Any]:
        return {
            'brand': self.vehicle_brand,
            'model': self.vehicle_model,
            'year': self.vehicle_year,
            'license_plate': self.vehicle_plate,
            'mileage': self.vehicle_mileage,
        }

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.valid_until < (now or utcnow())

    def can_edit(self) -> bool:
        return self.status == self.STATUS_PENDING and not self.is_deleted

    def can_delete(self) -> bool:
        return self.status == self.STATUS_PENDING and not self.work_order_id and not self.is_deleted


class ApprovalToken(Base):
    __tablename__ = 'quote_approval_tokens'
    TYPE_APPROVE = 'approve'
    TYPE_REJECT = 'reject'
    ALL_TYPES = (TYPE_APPROVE, TYPE_REJECT)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    quote_id: Mapped[int] = mapped_column(ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False, index=True)
    token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    quote = relationship('Quote', back_populates='tokens')
