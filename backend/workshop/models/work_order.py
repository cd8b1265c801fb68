from __future__ import annotations
from datetime import datetime
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Boolean, DateTime, ForeignKey
from workshop.models.user import Base, SoftDeleteMixin
from workshop.utils.dates import utcnow


class WorkOrder(SoftDeleteMixin, Base):
    __tablename__ = 'work_orders'
    NUMBER_PREFIX = 'ORD'
    # Status constants
    STATUS_PENDING_ASSIGNMENT = 'pendiente_asignacion'
    STATUS_ASSIGNED = 'asignada'
    STATUS_IN_PROGRESS = 'en_progreso'
    STATUS_READY = 'listo'
    STATUS_DELIVERED = 'entregado'
    ALL_STATUSES = (STATUS_PENDING_ASSIGNMENT, STATUS_ASSIGNED, STATUS_IN_PROGRESS, STATUS_READY, STATUS_DELIVERED)
    ACTIVE_STATUSES = (STATUS_PENDING_ASSIGNMENT, STATUS_ASSIGNED, STATUS_IN_PROGRESS, STATUS_READY)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    number: Mapped[Optional[str]] = mapped_column(String(16), unique=True, index=True, nullable=True)
    quote_id: Mapped[int] = mapped_column(ForeignKey('quotes.id'), unique=True, nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey('clients.id'), nullable=False, index=True)
    mechanic_id: Mapped[Optional[int]] = mapped_column(ForeignKey('mechanics.id'), nullable=True, index=True)
    # Vehicle snapshot taken at approval time, never updated afterwards
    vehicle_brand: Mapped[str] = mapped_column(String(100), nullable=False)
    vehicle_model: Mapped[str] = mapped_column(String(100), nullable=False)
    vehicle_year: Mapped[int] = mapped_column(Integer, nullable=False)
    vehicle_plate: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    vehicle_mileage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    work_description: Mapped[str] = mapped_column(Text, nullable=False)
    estimated_cost: Mapped[int] = mapped_column(Integer, nullable=False)
    final_cost: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_PENDING_ASSIGNMENT, index=True)
    estimated_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_delivery: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    additional_notes: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    additional_work: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    ready_email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ready_email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    quote = relationship('Quote', foreign_keys=[quote_id])
    client = relationship('Client')
    mechanic = relationship('Mechanic')
    history = relationship('StatusHistory', back_populates='work_order', cascade='all, delete-orphan', order_by='StatusHistory.id')
    notifications = relationship('OrderNotification', back_populates='work_order', cascade='all, delete-orphan', order_by='OrderNotification.id')

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

    def can_delete(self) -> bool:
        return self.status == self.STATUS_PENDING_ASSIGNMENT and not self.is_deleted

    def repair_time(self) -> Optional[Dict[str, int]]:
        """Elapsed time from creation to delivery; None until delivered."""
        if not self.actual_delivery or not self.created_at:
            return None
        total_seconds = int((self.actual_delivery - self.created_at).total_seconds())
        total_hours = total_seconds // 3600
        return {'days': total_hours // 24, 'hours': total_hours % 24, 'total_hours': total_hours}


class StatusHistory(Base):
    __tablename__ = 'work_order_status_history'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    previous_status: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    changed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    note: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    work_order = relationship('WorkOrder', back_populates='history')


class OrderNotification(Base):
    __tablename__ = 'work_order_notifications'
    TYPE_READY = 'listo'
    STATUS_SENT = 'enviado'
    STATUS_FAILED = 'fallido'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    work_order_id: Mapped[int] = mapped_column(ForeignKey('work_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False, default='email')
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    work_order = relationship('WorkOrder', back_populates='notifications')
