from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String
from workshop.models.user import Base, SoftDeleteMixin


class Client(SoftDeleteMixin, Base):
    __tablename__ = 'clients'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name_paternal: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name_maternal: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name_paternal} {self.last_name_maternal or ''}".strip()
