from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, ForeignKey
from workshop.models.user import Base, SoftDeleteMixin


class Mechanic(SoftDeleteMixin, Base):
    __tablename__ = 'mechanics'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id'), unique=True, nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name_paternal: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name_maternal: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    user = relationship('User')

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name_paternal} {self.last_name_maternal or ''}".strip()
